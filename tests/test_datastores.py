"""Unit tests for the in-memory registry, notification feed and protocol catalogue."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.schemas import Notification, NotificationLevel
from datastore.device_registry import DeviceRegistry
from datastore.notification_feed import NotificationFeed
from datastore.protocol_catalog import ProtocolCatalog
from models.catalog import PROTOCOL_INFO, initial_devices
from models.records import NOTIFICATION_LIMIT


def _notification(index: int, is_read: bool = False) -> Notification:
    return Notification(
        id=f"n-{index}",
        device_id="cnc-001",
        device_name="CNC Machine Alpha",
        message=f"event {index}",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        level=NotificationLevel.warning,
        is_read=is_read,
    )


def test_registry_preserves_insertion_order_and_returns_copies() -> None:
    registry = DeviceRegistry(initial_devices())

    devices = registry.scan()
    assert [device.id for device in devices] == ["cnc-001", "rbt-002", "pmp-003", "asm-004", "vlv-005"]

    devices[0].name = "mutated"
    assert registry.require("cnc-001").name == "CNC Machine Alpha"


def test_registry_rejects_duplicate_ids() -> None:
    registry = DeviceRegistry(initial_devices())

    with pytest.raises(ValueError):
        registry.add(initial_devices()[0])


def test_registry_modify_and_delete() -> None:
    registry = DeviceRegistry(initial_devices())

    updated = registry.modify("rbt-002", lambda device: device.model_copy(update={"name": "Robot"}))
    assert updated is not None and updated.name == "Robot"
    assert registry.modify("missing", lambda device: device) is None

    registry.delete("rbt-002")
    assert "rbt-002" not in registry
    assert registry.get("rbt-002") is None
    with pytest.raises(KeyError):
        registry.delete("rbt-002")
    with pytest.raises(KeyError):
        registry.require("rbt-002")


def test_registry_merge_skips_deleted_devices() -> None:
    registry = DeviceRegistry(initial_devices())
    snapshot = registry.scan()
    registry.delete("cnc-001")

    registry.merge(device.model_copy(update={"name": device.name + "!"}) for device in snapshot)

    assert "cnc-001" not in registry
    assert registry.require("rbt-002").name == "Welding Robot Beta!"
    assert len(registry) == 4


def test_feed_is_capped_and_most_recent_first() -> None:
    feed = NotificationFeed()

    for index in range(NOTIFICATION_LIMIT + 10):
        feed.prepend([_notification(index)])

    items = feed.list()
    assert len(items) == NOTIFICATION_LIMIT
    assert items[0].id == f"n-{NOTIFICATION_LIMIT + 9}"
    assert items[-1].id == "n-10"


def test_feed_prepends_batches_in_order() -> None:
    feed = NotificationFeed()
    feed.prepend([_notification(0)])

    feed.prepend([_notification(1), _notification(2)])

    assert [item.id for item in feed.list()] == ["n-1", "n-2", "n-0"]


def test_feed_mark_all_read() -> None:
    feed = NotificationFeed()
    feed.prepend([_notification(0), _notification(1, is_read=True), _notification(2)])

    assert feed.unread_count() == 2
    assert feed.mark_all_read() == 2
    assert feed.unread_count() == 0
    assert all(item.is_read for item in feed.list())


def test_protocol_catalog_lists_builtins_and_accepts_custom_labels() -> None:
    catalog = ProtocolCatalog()

    names = [protocol.name for protocol in catalog.list()]
    assert names == list(PROTOCOL_INFO)
    modbus = catalog.get("Modbus RTU")
    assert modbus is not None
    assert [field.name for field in modbus.fields][:2] == ["slaveAddress", "baudRate"]

    custom = catalog.add("  CANopen ", "CAN-based higher layer protocol.")
    assert custom.name == "CANopen"
    assert custom.fields == []
    assert catalog.get("CANopen") is not None

    with pytest.raises(ValueError):
        catalog.add("CANopen", "duplicate")
    with pytest.raises(ValueError):
        catalog.add("   ", "blank")

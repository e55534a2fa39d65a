"""Periodic device update cycle, connection lifecycle and alert emission."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from contextlib import suppress
from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Dict, List, Optional
from uuid import uuid4

from app.schemas import (
    ConnectionStatus,
    DataSourceMode,
    Device,
    DeviceCreate,
    DeviceStatus,
    DeviceUpdate,
    HistoryResponse,
    Notification,
    NotificationLevel,
    Reading,
)
from datastore.device_registry import DeviceRegistry
from datastore.notification_feed import NotificationFeed
from models.catalog import initial_devices
from services.connections import ConnectionManager, MockConnector
from services.device_state import apply_reading, is_alert_transition
from services.history import HistoryExplorer
from services.simulator import create_new_device, simulate_tick
from settings import get_settings

logger = logging.getLogger(__name__)


class MonitorService:
    """Drives the update cycle over the device registry.

    Cycles are serialized: the background loop awaits each cycle before
    sleeping again, and manual cycles wait on the same lock.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        feed: NotificationFeed,
        connector: MockConnector,
        tick_seconds: float = 2.0,
        mode: DataSourceMode = DataSourceMode.simulation,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.registry = registry
        self.feed = feed
        self.connector = connector
        self.connections = ConnectionManager()
        self.history_explorer = HistoryExplorer()
        self.tick_seconds = tick_seconds
        self._mode = mode
        self._rng = rng or random.Random()
        self._previous_statuses: Dict[str, DeviceStatus] = {
            device.id: device.status for device in registry.scan()
        }
        self._cycle_lock = asyncio.Lock()
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._connect_tasks: Dict[str, asyncio.Task[None]] = {}

    @property
    def mode(self) -> DataSourceMode:
        return self._mode

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    # Lifecycle

    async def start(self) -> None:
        if self.running:
            return
        if self._mode == DataSourceMode.live:
            self._connect_all()
        self._loop_task = asyncio.create_task(self._run_loop(), name="device-update-cycle")
        logger.info("Update cycle started", extra={"mode": self._mode})

    async def stop(self) -> None:
        task, self._loop_task = self._loop_task, None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        await self._cancel_pending_connects()
        self.connections.disconnect_all()
        logger.info("Update cycle stopped", extra={"mode": self._mode})

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            try:
                await self.run_cycle()
            except Exception:  # noqa: BLE001 - one bad tick must not end the loop
                logger.exception("Update cycle failed", extra={"mode": self._mode})

    # Update cycle

    async def run_cycle(self) -> List[Notification]:
        """Produce one new reading per device and emit any resulting alerts."""
        async with self._cycle_lock:
            start_time = time.perf_counter()
            if self._mode == DataSourceMode.simulation:
                self.registry.merge(simulate_tick(self.registry.scan(), self._rng))
            else:
                await self._poll_live_devices()

            devices = self.registry.scan()
            notifications = self._detect_alerts(devices)
            if notifications:
                self.feed.prepend(notifications)
            self._previous_statuses = {device.id: device.status for device in devices}

            logger.debug(
                "Update cycle finished",
                extra={
                    "mode": self._mode,
                    "notification_count": len(notifications),
                    "cycle_ms": int((time.perf_counter() - start_time) * 1000),
                },
            )
            return notifications

    async def _poll_live_devices(self) -> None:
        devices = self.registry.scan()
        readings = await asyncio.gather(*(self._poll_device(device) for device in devices))
        for device, reading in zip(devices, readings):
            if reading is None:
                continue
            self.registry.modify(
                device.id,
                lambda current, new=reading: apply_reading(current, new, ConnectionStatus.connected),
            )

    async def _poll_device(self, device: Device) -> Optional[Reading]:
        connection = self.connections.get(device.id)
        if connection is None or device.connection_status != ConnectionStatus.connected:
            return None
        try:
            return await connection.fetch_data()
        except Exception as exc:  # noqa: BLE001 - failures stay isolated to this device
            logger.warning(
                "Polling failed, dropping connection",
                extra={"device_id": device.id, "protocol": device.protocol, "reason": str(exc)},
            )
            self.connections.disconnect(device.id)
            self._set_connection_status(device.id, ConnectionStatus.error)
            return None

    def _detect_alerts(self, devices: List[Device]) -> List[Notification]:
        notifications = []
        for device in devices:
            previous = self._previous_statuses.get(device.id)
            if not is_alert_transition(previous, device.status):
                continue
            logger.info(
                "Device entered alert state",
                extra={
                    "device_id": device.id,
                    "previous_status": previous,
                    "status": device.status,
                },
            )
            notifications.append(
                _build_notification(
                    device,
                    level=NotificationLevel(device.status.value),
                    message=f"Status changed to {device.status.value}.",
                )
            )
        return notifications

    # Connection lifecycle

    async def set_mode(self, mode: DataSourceMode) -> DataSourceMode:
        # Waits for an in-flight cycle so its poll results land before the reset.
        async with self._cycle_lock:
            if mode == self._mode:
                return self._mode
            self._mode = mode
            logger.info("Switching data source", extra={"mode": mode})
            if mode == DataSourceMode.live:
                self._connect_all()
            else:
                await self._cancel_pending_connects()
                self.connections.disconnect_all()
                for device in self.registry.scan():
                    self._set_connection_status(device.id, ConnectionStatus.disconnected)
            return self._mode

    async def wait_for_connections(self) -> None:
        """Block until every pending connection attempt has settled."""
        pending = list(self._connect_tasks.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _connect_all(self) -> None:
        for device in self.registry.scan():
            if device.id not in self.connections and device.id not in self._connect_tasks:
                self._begin_connect(device)

    def _begin_connect(self, device: Device) -> None:
        self._set_connection_status(device.id, ConnectionStatus.connecting)
        task = asyncio.create_task(self._connect(device), name=f"connect-{device.id}")
        self._connect_tasks[device.id] = task

        def _forget(done: asyncio.Task[None], device_id: str = device.id) -> None:
            if self._connect_tasks.get(device_id) is done:
                del self._connect_tasks[device_id]

        task.add_done_callback(_forget)

    async def _connect(self, device: Device) -> None:
        try:
            connection = await self.connector.connect(device)
        except Exception as exc:  # noqa: BLE001 - any connector failure ends in the error state
            logger.warning(
                "Connection failed",
                extra={"device_id": device.id, "protocol": device.protocol, "reason": str(exc)},
            )
            self._set_connection_status(device.id, ConnectionStatus.error)
            return

        if self._mode != DataSourceMode.live or device.id not in self.registry:
            connection.disconnect()
            return
        self.connections.register(connection)
        self._set_connection_status(device.id, ConnectionStatus.connected)
        logger.info(
            "Connection established",
            extra={"device_id": device.id, "protocol": device.protocol},
        )

    async def _cancel_pending_connects(self) -> None:
        pending = list(self._connect_tasks.values())
        self._connect_tasks.clear()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _set_connection_status(self, device_id: str, status: ConnectionStatus) -> None:
        self.registry.modify(
            device_id, lambda device: device.model_copy(update={"connection_status": status})
        )

    # Device registry

    def list_devices(self) -> List[Device]:
        return self.registry.scan()

    def get_device(self, device_id: str) -> Device:
        return self.registry.require(device_id)

    async def add_device(self, payload: DeviceCreate) -> Device:
        device = create_new_device(
            payload.id, payload.name, payload.protocol, payload.connection_params, self._rng
        )
        self.registry.add(device)
        self._previous_statuses[device.id] = device.status
        logger.info(
            "Device added",
            extra={"device_id": device.id, "device_name": device.name, "protocol": device.protocol},
        )
        if self._mode == DataSourceMode.live:
            self._begin_connect(device)
        return self.registry.require(device.id)

    def update_device(self, device_id: str, payload: DeviceUpdate) -> Device:
        updated = self.registry.modify(
            device_id,
            lambda device: device.model_copy(
                update={
                    "name": payload.name,
                    "protocol": payload.protocol,
                    "connection_params": dict(payload.connection_params),
                }
            ),
        )
        if updated is None:
            raise KeyError(f"Device {device_id!r} not found.")
        return updated

    def delete_device(self, device_id: str) -> None:
        task = self._connect_tasks.pop(device_id, None)
        if task is not None:
            task.cancel()
        self.connections.disconnect(device_id)
        self.registry.delete(device_id)
        self._previous_statuses.pop(device_id, None)
        logger.info("Device deleted", extra={"device_id": device_id})

    def history(
        self,
        device_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> HistoryResponse:
        device = self.registry.require(device_id)
        readings = self.history_explorer.filter(device.history, start, end)
        return HistoryResponse(
            device_id=device_id,
            readings=readings,
            stats=self.history_explorer.summarize(readings),
        )

    # Notifications

    def notifications(self) -> List[Notification]:
        return self.feed.list()

    def unread_count(self) -> int:
        return self.feed.unread_count()

    def mark_notifications_read(self) -> int:
        return self.feed.mark_all_read()

    def simulate_notification(self, level: NotificationLevel) -> Optional[Notification]:
        devices = self.registry.scan()
        if not devices:
            return None
        device = self._rng.choice(devices)
        notification = _build_notification(
            device,
            level=level,
            message=f"Simulated {level.value.lower()} event detected.",
        )
        self.feed.prepend([notification])
        return notification


def _build_notification(device: Device, level: NotificationLevel, message: str) -> Notification:
    return Notification(
        id=uuid4().hex,
        device_id=device.id,
        device_name=device.name,
        message=message,
        timestamp=datetime.now(timezone.utc),
        level=level,
    )


@lru_cache
def build_default_monitor() -> MonitorService:
    """Factory that wires the monitor with the demo fleet and mock connector."""
    settings = get_settings()
    return MonitorService(
        registry=DeviceRegistry(initial_devices()),
        feed=NotificationFeed(),
        connector=MockConnector(),
        tick_seconds=settings.tick_seconds,
        mode=DataSourceMode(settings.start_mode),
    )

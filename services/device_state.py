"""Pure state transitions applied to a device when a new reading arrives."""

from __future__ import annotations

from typing import Optional

from app.schemas import ConnectionStatus, Device, DeviceStatus, Reading
from models.records import CHANNELS, HISTORY_LIMIT

_ALERT_STATUSES = {DeviceStatus.warning, DeviceStatus.critical}


def derive_status(reading: Reading) -> DeviceStatus:
    """Map a reading to its health tier; critical thresholds win over warning ones."""
    values = [(channel, getattr(reading, channel.name)) for channel in CHANNELS]
    if any(value > channel.critical_above for channel, value in values):
        return DeviceStatus.critical
    if any(value > channel.warning_above for channel, value in values):
        return DeviceStatus.warning
    return DeviceStatus.normal


def apply_reading(
    device: Device,
    reading: Reading,
    connection_status: Optional[ConnectionStatus] = None,
) -> Device:
    """Return a copy of ``device`` with ``reading`` appended and status recomputed."""
    history = [*device.history, reading][-HISTORY_LIMIT:]
    update = {
        "current_data": reading,
        "history": history,
        "status": derive_status(reading),
    }
    if connection_status is not None:
        update["connection_status"] = connection_status
    return device.model_copy(update=update)


def is_alert_transition(previous: Optional[DeviceStatus], current: DeviceStatus) -> bool:
    """Only entering warning or critical straight from normal raises an alert."""
    return previous == DeviceStatus.normal and current in _ALERT_STATUSES

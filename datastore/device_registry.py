from __future__ import annotations

from threading import Lock
from typing import Callable, Dict, Iterable, Optional

from app.schemas import Device


class DeviceRegistry:
    """In-memory, insertion-ordered store of device records.

    Callers always receive deep copies so that state changes only happen
    through ``add``, ``modify`` and ``merge``.
    """

    def __init__(self, devices: Iterable[Device] = ()) -> None:
        self._items: Dict[str, Device] = {}
        self._lock = Lock()
        for device in devices:
            self._items[device.id] = device.model_copy(deep=True)

    def __contains__(self, device_id: object) -> bool:
        with self._lock:
            return device_id in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def add(self, device: Device) -> None:
        with self._lock:
            if device.id in self._items:
                raise ValueError(f"Device with id {device.id!r} already exists.")
            self._items[device.id] = device.model_copy(deep=True)

    def modify(self, device_id: str, change: Callable[[Device], Device]) -> Optional[Device]:
        """Apply ``change`` to a stored device atomically; ``None`` if it is gone."""
        with self._lock:
            item = self._items.get(device_id)
            if item is None:
                return None
            updated = change(item.model_copy(deep=True))
            self._items[device_id] = updated
            return updated.model_copy(deep=True)

    def get(self, device_id: str) -> Optional[Device]:
        with self._lock:
            item = self._items.get(device_id)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def require(self, device_id: str) -> Device:
        device = self.get(device_id)
        if device is None:
            raise KeyError(f"Device {device_id!r} not found.")
        return device

    def delete(self, device_id: str) -> Device:
        with self._lock:
            try:
                return self._items.pop(device_id)
            except KeyError:
                raise KeyError(f"Device {device_id!r} not found.") from None

    def scan(self) -> list[Device]:
        """Return deep copies of all devices in registration order."""

        with self._lock:
            return [item.model_copy(deep=True) for item in self._items.values()]

    def merge(self, devices: Iterable[Device]) -> None:
        """Write back updated devices, skipping any deleted in the meantime."""
        with self._lock:
            for device in devices:
                if device.id in self._items:
                    self._items[device.id] = device.model_copy(deep=True)

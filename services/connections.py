"""Mock live connections to field devices, one handle per device."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from app.schemas import Device, Reading
from models.records import PRESSURE, TEMPERATURE, VIBRATION

logger = logging.getLogger(__name__)


class DeviceConnectionError(Exception):
    """Raised when a connection cannot be opened or a poll fails."""


class LiveConnection:
    """Handle for an open device connection."""

    def __init__(
        self,
        device_id: str,
        protocol: str,
        endpoint: Dict[str, Any],
        fetcher: Callable[[], Awaitable[Reading]],
    ) -> None:
        self.device_id = device_id
        self.protocol = protocol
        self.endpoint = endpoint
        self._fetcher = fetcher
        self.closed = False

    async def fetch_data(self) -> Reading:
        if self.closed:
            raise DeviceConnectionError(f"Connection to {self.device_id!r} is closed.")
        return await self._fetcher()

    def disconnect(self) -> None:
        self.closed = True
        logger.info(
            "Disconnected device",
            extra={"device_id": self.device_id, "protocol": self.protocol},
        )


class MockReadingFeed:
    """Slow random walk from the device's last reading, standing in for a real poll."""

    def __init__(
        self,
        base: Reading,
        rng: random.Random,
        delay: Tuple[float, float] = (0.1, 0.3),
    ) -> None:
        self._last = base
        self._rng = rng
        self._delay = delay

    async def __call__(self) -> Reading:
        low, high = self._delay
        if high > 0:
            await asyncio.sleep(self._rng.uniform(low, high))
        last = self._last
        self._last = Reading(
            time=datetime.now(timezone.utc),
            temperature=TEMPERATURE.clamp(last.temperature + (self._rng.random() - 0.5) * 0.5),
            pressure=PRESSURE.clamp(last.pressure + (self._rng.random() - 0.5) * 2),
            vibration=VIBRATION.clamp(last.vibration + (self._rng.random() - 0.5) * 0.1),
        )
        return self._last


@dataclass(frozen=True)
class ConnectorProfile:
    """Latency and reliability of one family of transports."""

    name: str
    latency: Tuple[float, float]
    failure_rate: float
    failure_message: str


NETWORK_PROFILE = ConnectorProfile(
    name="network",
    latency=(0.5, 1.5),
    failure_rate=0.1,
    failure_message="Connection timed out for {name}",
)
SERIAL_PROFILE = ConnectorProfile(
    name="serial",
    latency=(0.3, 0.8),
    failure_rate=0.15,
    failure_message="Serial port could not be opened for {name}",
)
GENERIC_PROFILE = ConnectorProfile(
    name="generic",
    latency=(0.4, 1.2),
    failure_rate=0.1,
    failure_message="Generic connection failed for {name}",
)

_PROFILES_BY_PROTOCOL = {
    "Ethernet/IP": NETWORK_PROFILE,
    "EtherCAT": NETWORK_PROFILE,
    "Modbus TCP/IP": NETWORK_PROFILE,
    "Modbus RTU": SERIAL_PROFILE,
    "Profibus": SERIAL_PROFILE,
}


def profile_for(protocol: str) -> ConnectorProfile:
    return _PROFILES_BY_PROTOCOL.get(protocol, GENERIC_PROFILE)


class MockConnector:
    """Opens simulated connections with per-protocol latency and failure odds."""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        latency_scale: float = 1.0,
        fetch_delay: Tuple[float, float] = (0.1, 0.3),
        failure_rate: Optional[float] = None,
    ) -> None:
        self._rng = rng or random.Random()
        self._latency_scale = latency_scale
        self._fetch_delay = fetch_delay
        self._failure_rate = failure_rate

    async def connect(self, device: Device) -> LiveConnection:
        profile = profile_for(device.protocol)
        logger.info(
            "Opening %s connection",
            profile.name,
            extra={"device_id": device.id, "protocol": device.protocol},
        )
        latency = self._rng.uniform(*profile.latency) * self._latency_scale
        if latency > 0:
            await asyncio.sleep(latency)

        failure_rate = profile.failure_rate if self._failure_rate is None else self._failure_rate
        if self._rng.random() < failure_rate:
            raise DeviceConnectionError(profile.failure_message.format(name=device.name))

        feed = MockReadingFeed(device.current_data, self._rng, delay=self._fetch_delay)
        return LiveConnection(
            device_id=device.id,
            protocol=device.protocol,
            endpoint=dict(device.connection_params),
            fetcher=feed,
        )


class ConnectionManager:
    """Owns the open connection handles, keyed by device id."""

    def __init__(self) -> None:
        self._connections: Dict[str, LiveConnection] = {}

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def get(self, device_id: str) -> Optional[LiveConnection]:
        return self._connections.get(device_id)

    def register(self, connection: LiveConnection) -> None:
        previous = self._connections.get(connection.device_id)
        if previous is not None and previous is not connection:
            self._close(previous)
        self._connections[connection.device_id] = connection

    def disconnect(self, device_id: str) -> bool:
        connection = self._connections.pop(device_id, None)
        if connection is None:
            return False
        self._close(connection)
        return True

    def disconnect_all(self) -> int:
        device_ids = list(self._connections)
        for device_id in device_ids:
            self.disconnect(device_id)
        return len(device_ids)

    @staticmethod
    def _close(connection: LiveConnection) -> None:
        try:
            connection.disconnect()
        except Exception:  # noqa: BLE001 - a failing close must not keep the handle alive
            logger.exception(
                "Error during disconnection", extra={"device_id": connection.device_id}
            )

"""Random-walk sensor simulation used when the monitor runs in simulation mode."""

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from app.schemas import Device, Reading
from models.records import CHANNELS, ChannelSpec
from services.device_state import apply_reading


def _step(channel: ChannelSpec, value: float, rng: random.Random) -> float:
    drift = channel.drift_up if value > channel.drift_pivot else channel.drift_down
    noise = (rng.random() - channel.noise_bias) * channel.noise_scale
    return channel.clamp(value + drift + noise)


def next_reading(
    current: Reading,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> Reading:
    """Advance every channel one tick from ``current``."""
    rng = rng or random.Random()
    values = {channel.name: _step(channel, getattr(current, channel.name), rng) for channel in CHANNELS}
    return Reading(time=now or datetime.now(timezone.utc), **values)


def simulate_tick(
    devices: Iterable[Device],
    rng: Optional[random.Random] = None,
) -> List[Device]:
    rng = rng or random.Random()
    return [apply_reading(device, next_reading(device.current_data, rng)) for device in devices]


def create_new_device(
    device_id: str,
    name: str,
    protocol: str,
    connection_params: Dict[str, Any],
    rng: Optional[random.Random] = None,
) -> Device:
    """Build a freshly registered device around a slightly randomized baseline."""
    rng = rng or random.Random()
    reading = Reading(
        time=datetime.now(timezone.utc),
        temperature=50 + (rng.random() - 0.5) * 10,
        pressure=120 + (rng.random() - 0.5) * 20,
        vibration=1.5 + (rng.random() - 0.5) * 0.5,
    )
    return Device(
        id=device_id,
        name=name,
        protocol=protocol,
        connection_params=dict(connection_params),
        current_data=reading,
        history=[reading],
    )

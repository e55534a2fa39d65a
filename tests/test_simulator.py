"""Unit tests for the random-walk simulator."""

from __future__ import annotations

import random
from datetime import datetime, timezone

import pytest

from app.schemas import ConnectionStatus, DeviceStatus, Reading
from models.catalog import initial_devices
from models.records import HISTORY_LIMIT, PRESSURE, TEMPERATURE, VIBRATION
from services.simulator import create_new_device, next_reading, simulate_tick


class FixedRandom(random.Random):
    """Random source that always draws the same value."""

    def __init__(self, value: float) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


def _reading(temperature: float, pressure: float, vibration: float) -> Reading:
    return Reading(
        time=datetime(2024, 1, 1, tzinfo=timezone.utc),
        temperature=temperature,
        pressure=pressure,
        vibration=vibration,
    )


def test_values_below_pivot_relax_toward_baseline() -> None:
    reading = next_reading(_reading(60, 100, 1.0), FixedRandom(0.5))

    assert reading.temperature == pytest.approx(60 - 0.2 + 0.05 * 1.5)
    assert reading.pressure == pytest.approx(100 - 0.5)
    assert reading.vibration == pytest.approx(1.0 - 0.05 + 0.02 * 0.15)


def test_values_above_pivot_run_away() -> None:
    reading = next_reading(_reading(80, 170, 4.0), FixedRandom(0.5))

    assert reading.temperature == pytest.approx(80 + 0.5 + 0.05 * 1.5)
    assert reading.pressure == pytest.approx(170 + 1.0)
    assert reading.vibration == pytest.approx(4.0 + 0.1 + 0.02 * 0.15)


def test_values_are_clamped_to_physical_ranges() -> None:
    high = next_reading(_reading(99.9, 249.9, 9.99), FixedRandom(0.99))
    low = next_reading(_reading(20.1, 50.1, 0.01), FixedRandom(0.0))

    assert (high.temperature, high.pressure, high.vibration) == (100.0, 250.0, 10.0)
    assert (low.temperature, low.pressure, low.vibration) == (20.0, 50.0, 0.0)


def test_long_simulation_respects_ranges_and_history_cap() -> None:
    rng = random.Random(1234)
    devices = initial_devices()

    for _ in range(300):
        devices = simulate_tick(devices, rng)
        for device in devices:
            data = device.current_data
            assert TEMPERATURE.lower <= data.temperature <= TEMPERATURE.upper
            assert PRESSURE.lower <= data.pressure <= PRESSURE.upper
            assert VIBRATION.lower <= data.vibration <= VIBRATION.upper
            assert len(device.history) <= HISTORY_LIMIT

    assert all(len(device.history) == HISTORY_LIMIT for device in devices)


def test_simulate_tick_recomputes_status() -> None:
    device = initial_devices()[0].model_copy(
        update={"current_data": _reading(74.5, 100, 1.0)}
    )

    [updated] = simulate_tick([device], FixedRandom(0.99))

    assert updated.current_data.temperature > 75
    assert updated.status == DeviceStatus.warning
    assert len(updated.history) == len(device.history) + 1


def test_create_new_device_starts_near_baseline() -> None:
    device = create_new_device("new-1", "Lathe", "Modbus TCP/IP", {"ipAddress": "10.0.0.5"}, random.Random(3))

    assert device.status == DeviceStatus.normal
    assert device.connection_status == ConnectionStatus.disconnected
    assert device.history == [device.current_data]
    assert 45 <= device.current_data.temperature <= 55
    assert 110 <= device.current_data.pressure <= 130
    assert 1.25 <= device.current_data.vibration <= 1.75
    assert device.connection_params == {"ipAddress": "10.0.0.5"}

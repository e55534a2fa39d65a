"""Domain constants and value objects shared across services."""

from __future__ import annotations

from dataclasses import dataclass

HISTORY_LIMIT = 50
NOTIFICATION_LIMIT = 50


@dataclass(frozen=True, slots=True)
class ChannelSpec:
    """Physical range, random-walk shape and alarm thresholds of one sensor channel.

    Below ``drift_pivot`` the value relaxes by ``drift_down`` each tick, above it
    the value runs away by ``drift_up``. Noise is ``(u - noise_bias) * noise_scale``
    for ``u`` uniform in [0, 1).
    """

    name: str
    lower: float
    upper: float
    drift_pivot: float
    drift_down: float
    drift_up: float
    noise_bias: float
    noise_scale: float
    warning_above: float
    critical_above: float

    def clamp(self, value: float) -> float:
        return max(self.lower, min(self.upper, value))


TEMPERATURE = ChannelSpec(
    name="temperature",
    lower=20.0,
    upper=100.0,
    drift_pivot=70.0,
    drift_down=-0.2,
    drift_up=0.5,
    noise_bias=0.45,
    noise_scale=1.5,
    warning_above=75.0,
    critical_above=85.0,
)

PRESSURE = ChannelSpec(
    name="pressure",
    lower=50.0,
    upper=250.0,
    drift_pivot=160.0,
    drift_down=-0.5,
    drift_up=1.0,
    noise_bias=0.5,
    noise_scale=4.0,
    warning_above=180.0,
    critical_above=200.0,
)

VIBRATION = ChannelSpec(
    name="vibration",
    lower=0.0,
    upper=10.0,
    drift_pivot=3.0,
    drift_down=-0.05,
    drift_up=0.1,
    noise_bias=0.48,
    noise_scale=0.15,
    warning_above=3.5,
    critical_above=5.0,
)

CHANNELS = (TEMPERATURE, PRESSURE, VIBRATION)

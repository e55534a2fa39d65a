"""Date-range filtering and statistics over a device's reading history."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timezone
from typing import Iterable, List, Optional

from app.schemas import ChannelStats, HistoryStats, Reading
from models.records import CHANNELS


@dataclass
class _RunningStats:
    count: int = 0
    total: float = 0.0
    min_value: float = math.inf
    max_value: float = -math.inf

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.min_value = min(self.min_value, value)
        self.max_value = max(self.max_value, value)

    def to_schema(self) -> ChannelStats:
        return ChannelStats(min=self.min_value, max=self.max_value, mean=self.total / self.count)


class HistoryExplorer:
    """Pure history component that can be unit tested in isolation."""

    def filter(
        self,
        readings: Iterable[Reading],
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[Reading]:
        """Keep readings whose UTC calendar day falls within ``[start, end]``."""
        selected = []
        for reading in readings:
            day = reading.time.astimezone(timezone.utc).date()
            if start is not None and day < start:
                continue
            if end is not None and day > end:
                continue
            selected.append(reading)
        return selected

    def summarize(self, readings: Iterable[Reading]) -> Optional[HistoryStats]:
        running = {channel.name: _RunningStats() for channel in CHANNELS}
        for reading in readings:
            for name, stats in running.items():
                stats.add(getattr(reading, name))

        if not running["temperature"].count:
            return None
        return HistoryStats(**{name: stats.to_schema() for name, stats in running.items()})

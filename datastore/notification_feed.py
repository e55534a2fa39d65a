from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Deque, Iterable

from app.schemas import Notification
from models.records import NOTIFICATION_LIMIT


class NotificationFeed:
    """Capped notification list, most recent first."""

    def __init__(self, limit: int = NOTIFICATION_LIMIT) -> None:
        self.limit = limit
        self._items: Deque[Notification] = deque(maxlen=limit)
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def prepend(self, notifications: Iterable[Notification]) -> None:
        """Push a batch to the front, keeping the batch's own order."""
        batch = list(notifications)
        with self._lock:
            for notification in reversed(batch):
                self._items.appendleft(notification.model_copy(deep=True))

    def list(self) -> list[Notification]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._items]

    def unread_count(self) -> int:
        with self._lock:
            return sum(1 for item in self._items if not item.is_read)

    def mark_all_read(self) -> int:
        """Flag every notification as read and return how many changed."""
        with self._lock:
            changed = 0
            for index, item in enumerate(self._items):
                if not item.is_read:
                    self._items[index] = item.model_copy(update={"is_read": True})
                    changed += 1
            return changed

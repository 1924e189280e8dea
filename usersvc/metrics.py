"""In-process lifecycle counters for user records."""

from __future__ import annotations

import threading
from typing import Dict

USERS_CREATED = "users_created_total"
USERS_UPDATED = "users_updated_total"
USERS_DELETED = "users_deleted_total"


class LifecycleMetrics:
    """Monotonic counters for created, updated and deleted users."""

    def __init__(self) -> None:
        self._counters: Dict[str, int] = {
            USERS_CREATED: 0,
            USERS_UPDATED: 0,
            USERS_DELETED: 0,
        }
        self._lock = threading.Lock()

    def increment(self, name: str) -> int:
        with self._lock:
            if name not in self._counters:
                raise KeyError(f"Unknown counter '{name}'")
            self._counters[name] += 1
            return self._counters[name]

    def value(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)


__all__ = ["LifecycleMetrics", "USERS_CREATED", "USERS_UPDATED", "USERS_DELETED"]

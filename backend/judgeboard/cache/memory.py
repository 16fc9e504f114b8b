"""Process-local freshness cache."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable, Dict, Iterable, List

from ..user_record import CacheEntry, UserRecord, normalize_username
from .base import utcnow


class InMemoryFreshnessCache:
    """Dictionary-backed cache; entries vanish with the process."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, keys: Iterable[str]) -> Dict[str, CacheEntry]:
        with self._lock:
            found = {}
            for key in keys:
                normalized = normalize_username(key)
                entry = self._entries.get(normalized)
                if entry is not None:
                    found[normalized] = entry.model_copy(deep=True)
            return found

    def put(self, key: str, record: UserRecord) -> CacheEntry:
        normalized = normalize_username(key)
        with self._lock:
            fetched_at = self._clock()
            previous = self._entries.get(normalized)
            if previous is not None and previous.last_fetch > fetched_at:
                fetched_at = previous.last_fetch
            stored = record.model_copy(update={"last_fetch": fetched_at}, deep=True)
            entry = CacheEntry(key=normalized, record=stored, last_fetch=fetched_at)
            self._entries[normalized] = entry
            return entry.model_copy(deep=True)

    def snapshot_all(self) -> List[CacheEntry]:
        with self._lock:
            return [entry.model_copy(deep=True) for entry in self._entries.values()]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["InMemoryFreshnessCache"]

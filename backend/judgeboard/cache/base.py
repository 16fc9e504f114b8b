"""Freshness cache contract shared by every storage adapter."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Protocol

from ..user_record import CacheEntry, UserRecord


class StorageError(RuntimeError):
    """Raised by an adapter when its backing store cannot be read or written."""


class FreshnessCache(Protocol):
    """Per-user record store keyed by roster username.

    Reads return absence rather than raising for unknown keys. ``put`` is an
    independent upsert per key and stamps ``lastFetch`` with the adapter clock,
    never moving it backwards for an existing key.
    """

    def get(self, keys: Iterable[str]) -> Dict[str, CacheEntry]:  # pragma: no cover - protocol definition
        ...

    def put(self, key: str, record: UserRecord) -> CacheEntry:  # pragma: no cover - protocol definition
        ...

    def snapshot_all(self) -> List[CacheEntry]:  # pragma: no cover - protocol definition
        ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_fresh(entry: CacheEntry, now: datetime, ttl_seconds: float) -> bool:
    return (now - entry.last_fetch).total_seconds() < ttl_seconds


__all__ = ["FreshnessCache", "StorageError", "is_fresh", "utcnow"]

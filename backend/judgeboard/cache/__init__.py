"""Freshness cache adapters shared by the refresh orchestrator."""

from __future__ import annotations

from pathlib import Path

from ..config import Settings
from .base import FreshnessCache, StorageError, is_fresh, utcnow
from .database import DatabaseFreshnessCache
from .file_store import FileFreshnessCache
from .memory import InMemoryFreshnessCache


def build_freshness_cache(settings: Settings) -> FreshnessCache:
    """Instantiate the adapter selected by ``JUDGEBOARD_CACHE_BACKEND``."""
    if settings.cache_backend == "memory":
        return InMemoryFreshnessCache()
    if settings.cache_backend == "file":
        return FileFreshnessCache(Path(settings.cache_file) if settings.cache_file else None)

    from ..db.session import get_engine, get_session_factory, init_schema

    init_schema(get_engine())
    return DatabaseFreshnessCache(get_session_factory())


__all__ = [
    "DatabaseFreshnessCache",
    "FileFreshnessCache",
    "FreshnessCache",
    "InMemoryFreshnessCache",
    "StorageError",
    "build_freshness_cache",
    "is_fresh",
    "utcnow",
]

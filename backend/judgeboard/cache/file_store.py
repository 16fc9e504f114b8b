"""JSON-file freshness cache used for single-node and offline deployments."""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Tuple

from pydantic import ValidationError

from ..user_record import CacheEntry, UserRecord, normalize_username
from .base import StorageError, utcnow

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class FileFreshnessCache:
    """Stores every entry in one JSON document guarded by a process lock."""

    def __init__(self, path: Path | None = None, clock: Callable[[], datetime] = utcnow) -> None:
        self._path = path or DATA_DIR / "judge_users.json"
        self._lock = threading.RLock()
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    def _load_unlocked(self) -> Tuple[Dict[str, CacheEntry], Dict[str, Any]]:
        """Return parsed entries and the raw payloads of entries that failed to parse."""
        if not self._path.exists():
            return {}, {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, ValueError) as exc:
            raise StorageError(f"Failed to read cache file {self._path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise StorageError(f"Cache file {self._path} does not hold a JSON object")
        entries: Dict[str, CacheEntry] = {}
        unparsed: Dict[str, Any] = {}
        for key, payload in raw.items():
            try:
                entries[key] = CacheEntry.model_validate(payload)
            except ValidationError:
                logger.exception("Failed to parse cached judge user %s", key)
                unparsed[key] = payload
        return entries, unparsed

    def _write_unlocked(self, entries: Dict[str, CacheEntry], unparsed: Dict[str, Any]) -> None:
        # Unreadable entries are kept verbatim; nothing is ever dropped from the file.
        payload: Dict[str, Any] = {key: value for key, value in unparsed.items() if key not in entries}
        payload.update({key: entry.model_dump(mode="json") for key, entry in entries.items()})
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise StorageError(f"Failed to write cache file {self._path}: {exc}") from exc

    def get(self, keys: Iterable[str]) -> Dict[str, CacheEntry]:
        wanted = {normalize_username(key) for key in keys}
        with self._lock:
            entries, _ = self._load_unlocked()
        return {key: entry for key, entry in entries.items() if key in wanted}

    def put(self, key: str, record: UserRecord) -> CacheEntry:
        normalized = normalize_username(key)
        with self._lock:
            entries, unparsed = self._load_unlocked()
            fetched_at = self._clock()
            previous = entries.get(normalized)
            if previous is not None and previous.last_fetch > fetched_at:
                fetched_at = previous.last_fetch
            stored = record.model_copy(update={"last_fetch": fetched_at}, deep=True)
            entry = CacheEntry(key=normalized, record=stored, last_fetch=fetched_at)
            entries[normalized] = entry
            self._write_unlocked(entries, unparsed)
        return entry

    def snapshot_all(self) -> List[CacheEntry]:
        with self._lock:
            entries, _ = self._load_unlocked()
        return list(entries.values())


__all__ = ["FileFreshnessCache"]

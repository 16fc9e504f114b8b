"""SQLAlchemy-backed freshness cache."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..db.session import session_scope
from ..repositories.judge_users import JudgeUserRepository, judge_users
from ..user_record import CacheEntry, UserRecord
from .base import StorageError, utcnow


class DatabaseFreshnessCache:
    """Stores entries in ``judge_users``; each ``put`` commits on its own."""

    def __init__(
        self,
        factory: Optional[sessionmaker[Session]] = None,
        *,
        repository: JudgeUserRepository = judge_users,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._factory = factory
        self._repo = repository
        self._clock = clock

    def get(self, keys: Iterable[str]) -> Dict[str, CacheEntry]:
        try:
            with session_scope(commit=False, factory=self._factory) as session:
                return self._repo.get_many(session, keys)
        except (SQLAlchemyError, ValidationError) as exc:
            raise StorageError(f"Failed to read cached judge users: {exc}") from exc

    def put(self, key: str, record: UserRecord) -> CacheEntry:
        try:
            with session_scope(factory=self._factory) as session:
                return self._repo.upsert(session, key, record, self._clock())
        except (SQLAlchemyError, ValidationError) as exc:
            raise StorageError(f"Failed to store judge user {key}: {exc}") from exc

    def snapshot_all(self) -> List[CacheEntry]:
        try:
            with session_scope(commit=False, factory=self._factory) as session:
                return self._repo.list_all(session)
        except (SQLAlchemyError, ValidationError) as exc:
            raise StorageError(f"Failed to read judge user snapshot: {exc}") from exc


__all__ = ["DatabaseFreshnessCache"]

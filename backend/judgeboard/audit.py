"""Append-only audit sinks for refresh cycles."""

from __future__ import annotations

import logging
import threading
from typing import List, Optional, Protocol

from sqlalchemy.orm import Session, sessionmaker

from .config import Settings
from .db.session import get_session_factory, session_scope
from .repositories.judge_users import JudgeUserRepository, judge_users
from .user_record import AuditEntry

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    def append(self, entry: AuditEntry) -> None:  # pragma: no cover - protocol definition
        ...


class MemoryAuditSink:
    """Keeps audit entries in process memory."""

    def __init__(self) -> None:
        self._entries: List[AuditEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)
        logger.debug("Audit entry recorded success=%s error=%s", entry.success, entry.error)

    @property
    def entries(self) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries)


class DatabaseAuditSink:
    """Writes audit entries to the ``fetch_logs`` table."""

    def __init__(
        self,
        factory: Optional[sessionmaker[Session]] = None,
        *,
        repository: JudgeUserRepository = judge_users,
    ) -> None:
        self._factory = factory
        self._repo = repository

    def append(self, entry: AuditEntry) -> None:
        with session_scope(factory=self._factory) as session:
            self._repo.append_fetch_log(session, entry)


def build_audit_sink(settings: Settings) -> AuditSink:
    if settings.cache_backend == "database":
        return DatabaseAuditSink(get_session_factory())
    return MemoryAuditSink()


def record_audit(sink: AuditSink, entry: AuditEntry) -> None:
    """Append to ``sink``; a failing sink is logged rather than raised."""
    try:
        sink.append(entry)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to append audit entry (success=%s, error=%s)", entry.success, entry.error)


__all__ = ["AuditSink", "DatabaseAuditSink", "MemoryAuditSink", "build_audit_sink", "record_audit"]

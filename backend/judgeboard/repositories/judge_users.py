"""Database-backed repository for cached judge users."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.models import FetchLogModel, JudgeUserModel
from ..user_record import (
    AuditEntry,
    CacheEntry,
    ProblemsByDifficulty,
    StreakSummary,
    UserRecord,
    normalize_username,
)


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class JudgeUserRepository:
    """Maps :class:`CacheEntry` objects onto the ``judge_users`` table."""

    def get_many(self, session: Session, keys: Iterable[str]) -> Dict[str, CacheEntry]:
        normalized = [normalize_username(key) for key in keys]
        if not normalized:
            return {}
        stmt = select(JudgeUserModel).where(JudgeUserModel.cache_key.in_(normalized))
        models = session.execute(stmt).scalars().all()
        return {model.cache_key: self._to_domain(model) for model in models}

    def list_all(self, session: Session) -> List[CacheEntry]:
        stmt = select(JudgeUserModel).order_by(JudgeUserModel.cache_key)
        return [self._to_domain(model) for model in session.execute(stmt).scalars().all()]

    def upsert(self, session: Session, key: str, record: UserRecord, fetched_at: datetime) -> CacheEntry:
        normalized = normalize_username(key)
        model = session.get(JudgeUserModel, normalized)
        if model is None:
            model = JudgeUserModel(cache_key=normalized)
            session.add(model)
        elif model.last_fetch is not None:
            fetched_at = max(fetched_at, _aware(model.last_fetch))

        difficulties = record.problems_by_difficulty
        model.judge_id = record.id
        model.name = record.name
        model.avatar = record.avatar
        model.total_solved = record.total_solved
        model.easy_count = difficulties.easy
        model.medium_count = difficulties.medium
        model.hard_count = difficulties.hard
        model.submissions = record.submissions
        model.current_streak = record.streak.current
        model.max_streak = record.streak.max
        model.submission_calendar = {str(ts): 1 for ts in record.accepted_submissions}
        model.last_fetch = fetched_at
        session.flush()
        return self._to_domain(model)

    def append_fetch_log(self, session: Session, entry: AuditEntry) -> None:
        session.add(FetchLogModel(success=entry.success, error=entry.error, timestamp=entry.timestamp))

    @staticmethod
    def _to_domain(model: JudgeUserModel) -> CacheEntry:
        last_fetch = _aware(model.last_fetch)
        record = UserRecord(
            id=model.judge_id,
            name=model.name,
            avatar=model.avatar,
            total_solved=model.total_solved,
            problems_by_difficulty=ProblemsByDifficulty(
                easy=model.easy_count,
                medium=model.medium_count,
                hard=model.hard_count,
            ),
            submissions=model.submissions,
            accepted_submissions=sorted(int(ts) for ts in (model.submission_calendar or {})),
            streak=StreakSummary(current=model.current_streak, max=model.max_streak),
            last_fetch=last_fetch,
        )
        return CacheEntry(key=model.cache_key, record=record, last_fetch=last_fetch)


judge_users = JudgeUserRepository()

__all__ = ["JudgeUserRepository", "judge_users"]

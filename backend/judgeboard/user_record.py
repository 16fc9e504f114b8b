"""Domain models for judge users, cache entries and refresh cycles."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_username(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError("Username cannot be empty.")
    return normalized


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class StreakSummary(BaseModel):
    current: int = Field(default=0, ge=0)
    max: int = Field(default=0, ge=0)


class ProblemsByDifficulty(BaseModel):
    easy: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    hard: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.easy + self.medium + self.hard


class UserRecord(_CamelModel):
    id: str
    name: str
    avatar: str = ""
    total_solved: int = Field(default=0, ge=0, alias="totalSolved")
    problems_by_difficulty: ProblemsByDifficulty = Field(
        default_factory=ProblemsByDifficulty, alias="problemsByDifficulty"
    )
    submissions: int = Field(default=0, ge=0)
    accepted_submissions: List[int] = Field(default_factory=list, alias="acceptedSubmissions")
    streak: StreakSummary = Field(default_factory=StreakSummary)
    last_fetch: Optional[datetime] = Field(default=None, alias="lastFetch")

    @model_validator(mode="after")
    def _total_matches_difficulties(self) -> "UserRecord":
        expected = self.problems_by_difficulty.total
        if self.total_solved != expected:
            raise ValueError(
                f"totalSolved ({self.total_solved}) must equal easy+medium+hard ({expected})."
            )
        return self


class ErrorRecord(BaseModel):
    username: str
    error: str


class CacheEntry(BaseModel):
    key: str
    record: UserRecord
    last_fetch: datetime


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class RefreshCycleResult(_CamelModel):
    users: List[UserRecord] = Field(default_factory=list)
    errors: List[ErrorRecord] = Field(default_factory=list)
    from_cache: bool = Field(default=False, alias="fromCache")
    rate_limited: bool = Field(default=False, alias="rateLimited")
    refreshing: List[str] = Field(default_factory=list)
    status: int = 200


__all__ = [
    "AuditEntry",
    "CacheEntry",
    "ErrorRecord",
    "ProblemsByDifficulty",
    "RefreshCycleResult",
    "StreakSummary",
    "UserRecord",
    "normalize_username",
]

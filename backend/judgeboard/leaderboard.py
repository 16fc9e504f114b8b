"""Time-windowed ranking of cached judge users."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .user_record import ProblemsByDifficulty, StreakSummary, UserRecord

TimeRange = Literal["week", "month", "year", "all"]

WINDOW_DAYS: Dict[str, int] = {"week": 7, "month": 30, "year": 365}
SECONDS_PER_DAY = 86400


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rank: int
    id: str
    name: str
    avatar: str = ""
    total_solved: int = Field(alias="totalSolved")
    problems_by_difficulty: ProblemsByDifficulty = Field(alias="problemsByDifficulty")
    submissions: int
    difficulty_score: int = Field(alias="difficultyScore")
    streak: StreakSummary


def difficulty_score(problems: ProblemsByDifficulty) -> int:
    return problems.easy + problems.medium * 2 + problems.hard * 3


def _windowed(user: UserRecord, time_range: TimeRange, now: datetime) -> tuple[int, ProblemsByDifficulty, int]:
    if time_range == "all":
        return user.total_solved, user.problems_by_difficulty, user.submissions
    cutoff = now.timestamp() - WINDOW_DAYS[time_range] * SECONDS_PER_DAY
    solved = sum(1 for ts in user.accepted_submissions if ts >= cutoff)
    totals = user.problems_by_difficulty
    # The calendar has no per-difficulty breakdown, so each bucket is capped by the window count.
    problems = ProblemsByDifficulty(
        easy=min(solved, totals.easy),
        medium=min(solved, totals.medium),
        hard=min(solved, totals.hard),
    )
    return solved, problems, min(solved * 2, user.submissions)


def rank_users(
    users: Sequence[UserRecord],
    time_range: TimeRange = "week",
    now: Optional[datetime] = None,
) -> List[LeaderboardEntry]:
    """Rank users by problems solved within ``time_range``; ties keep input order."""
    reference = now or datetime.now(timezone.utc)
    scored = []
    for user in users:
        solved, problems, submissions = _windowed(user, time_range, reference)
        scored.append((solved, problems, submissions, user))
    scored.sort(key=lambda item: item[0], reverse=True)
    return [
        LeaderboardEntry(
            rank=position,
            id=user.id,
            name=user.name,
            avatar=user.avatar,
            total_solved=solved,
            problems_by_difficulty=problems,
            submissions=submissions,
            difficulty_score=difficulty_score(problems),
            streak=user.streak,
        )
        for position, (solved, problems, submissions, user) in enumerate(scored, start=1)
    ]


__all__ = ["LeaderboardEntry", "TimeRange", "difficulty_score", "rank_users"]

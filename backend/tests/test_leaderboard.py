from __future__ import annotations

from datetime import datetime, timezone

from judgeboard.leaderboard import difficulty_score, rank_users
from judgeboard.user_record import ProblemsByDifficulty, UserRecord

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
DAY = 86400


def _user(username: str, easy: int, medium: int, hard: int, days_ago: list[int], submissions: int = 100) -> UserRecord:
    now_ts = int(NOW.timestamp())
    return UserRecord(
        id=username,
        name=username,
        total_solved=easy + medium + hard,
        problems_by_difficulty=ProblemsByDifficulty(easy=easy, medium=medium, hard=hard),
        submissions=submissions,
        accepted_submissions=[now_ts - days * DAY for days in days_ago],
    )


def test_all_time_ranking_uses_totals() -> None:
    users = [_user("low", 1, 0, 0, [1]), _user("high", 10, 5, 2, [40])]

    ranked = rank_users(users, "all", NOW)

    assert [entry.id for entry in ranked] == ["high", "low"]
    assert [entry.rank for entry in ranked] == [1, 2]
    assert ranked[0].total_solved == 17
    assert ranked[0].difficulty_score == 10 + 5 * 2 + 2 * 3


def test_weekly_window_counts_recent_submissions_only() -> None:
    users = [
        _user("veteran", 100, 50, 10, [30, 40, 50], submissions=500),
        _user("active", 2, 1, 0, [0, 1, 2], submissions=5),
    ]

    ranked = rank_users(users, "week", NOW)

    assert [entry.id for entry in ranked] == ["active", "veteran"]
    active = ranked[0]
    assert active.total_solved == 3
    assert active.problems_by_difficulty == ProblemsByDifficulty(easy=2, medium=1, hard=0)
    assert active.submissions == 5
    assert ranked[1].total_solved == 0


def test_month_window_caps_difficulties_and_estimates_submissions() -> None:
    ranked = rank_users([_user("mid", 10, 10, 10, [3, 10, 20, 60], submissions=100)], "month", NOW)

    entry = ranked[0]
    assert entry.total_solved == 3
    assert entry.problems_by_difficulty == ProblemsByDifficulty(easy=3, medium=3, hard=3)
    assert entry.submissions == 6


def test_ties_keep_roster_order() -> None:
    users = [_user("first", 1, 0, 0, [1]), _user("second", 1, 0, 0, [2])]

    ranked = rank_users(users, "week", NOW)

    assert [entry.id for entry in ranked] == ["first", "second"]


def test_difficulty_score_weights() -> None:
    assert difficulty_score(ProblemsByDifficulty(easy=1, medium=1, hard=1)) == 6

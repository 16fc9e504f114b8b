"""Streak metrics derived from accepted-submission timestamps.

Timestamps are grouped into UTC day buckets (``timestamp // 86400``) so several
submissions on the same day count once. The current streak is anchored on the
most recent 24 hours and walks backward over consecutive populated days. The
max streak is a forward pass that tolerates a single missed day between
populated days.
"""

from __future__ import annotations

import time
from typing import Iterable, Optional

from .user_record import StreakSummary

SECONDS_PER_DAY = 86400
MAX_GAP_DAYS = 2


def day_bucket(timestamp: int) -> int:
    return int(timestamp) // SECONDS_PER_DAY


def _current_streak(timestamps: list[int], days: set[int], now: float) -> int:
    window_start = now - SECONDS_PER_DAY
    recent = [ts for ts in timestamps if window_start < ts <= now]
    if not recent:
        return 0
    # The anchoring submission may sit in yesterday's bucket when today is still empty.
    cursor = day_bucket(max(recent))
    current = 0
    while cursor in days:
        current += 1
        cursor -= 1
    return current


def _max_streak(days: set[int]) -> int:
    best = 0
    run = 0
    previous: Optional[int] = None
    for day in sorted(days):
        if previous is not None and day - previous <= MAX_GAP_DAYS:
            run += 1
        else:
            run = 1
        best = max(best, run)
        previous = day
    return best


def compute_streak(timestamps: Iterable[int], now: Optional[float] = None) -> StreakSummary:
    """Return ``{current, max}`` streak lengths in days for the given timestamps."""
    values = [int(ts) for ts in timestamps]
    if not values:
        return StreakSummary(current=0, max=0)
    reference = time.time() if now is None else now
    days = {day_bucket(ts) for ts in values}
    current = _current_streak(values, days, reference)
    longest = max(_max_streak(days), current)
    return StreakSummary(current=current, max=longest)


__all__ = ["MAX_GAP_DAYS", "SECONDS_PER_DAY", "compute_streak", "day_bucket"]

"""Builds the outward dashboard payload from cached and fetched records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .user_record import ErrorRecord, RefreshCycleResult, UserRecord


def assemble_response(
    roster: Sequence[str],
    records: Mapping[str, UserRecord],
    errors: Sequence[ErrorRecord],
    *,
    from_cache: bool = False,
    rate_limited: bool = False,
    refreshing: Sequence[str] = (),
    status: int = 200,
) -> RefreshCycleResult:
    """Order ``records`` by roster position; keys outside the roster go last, sorted."""
    users: List[UserRecord] = [records[username] for username in roster if username in records]
    listed = set(roster)
    users.extend(records[key] for key in sorted(records) if key not in listed)
    return RefreshCycleResult(
        users=users,
        errors=list(errors),
        from_cache=from_cache,
        rate_limited=rate_limited,
        refreshing=list(refreshing),
        status=status,
    )


def to_payload(result: RefreshCycleResult, generated_at: Optional[datetime] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "users": [user.model_dump(mode="json", by_alias=True) for user in result.users],
        "errors": [error.model_dump(mode="json") for error in result.errors],
    }
    if result.from_cache:
        payload["fromCache"] = True
    if result.rate_limited:
        payload["rateLimited"] = True
    if result.refreshing:
        payload["refreshing"] = list(result.refreshing)
    payload["timestamp"] = (generated_at or datetime.now(timezone.utc)).isoformat()
    return payload


__all__ = ["assemble_response", "to_payload"]

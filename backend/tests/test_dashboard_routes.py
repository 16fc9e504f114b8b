from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, Union

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("JUDGEBOARD_CACHE_BACKEND", "memory")

from judgeboard.audit import MemoryAuditSink  # noqa: E402
from judgeboard.cache import InMemoryFreshnessCache  # noqa: E402
from judgeboard.config import Settings, get_settings  # noqa: E402
from judgeboard.fetch_client import RateLimitedError, TransientFetchError  # noqa: E402
from judgeboard.main import app  # noqa: E402
from judgeboard.refresh import RefreshOrchestrator  # noqa: E402
from judgeboard.services import get_orchestrator  # noqa: E402
from judgeboard.user_record import ProblemsByDifficulty, UserRecord  # noqa: E402

ROSTER = ["Kho_ja", "agadev", "Daydi"]


def _record(username: str, solved_days_ago: List[int]) -> UserRecord:
    now_ts = int(datetime.now(timezone.utc).timestamp())
    return UserRecord(
        id=username,
        name=username,
        total_solved=6,
        problems_by_difficulty=ProblemsByDifficulty(easy=3, medium=2, hard=1),
        submissions=12,
        accepted_submissions=[now_ts - days * 86400 for days in solved_days_ago],
    )


class _StubFetchClient:
    def __init__(self, outcomes: Dict[str, Union[UserRecord, Exception]]) -> None:
        self.outcomes = outcomes

    async def fetch(self, username: str) -> UserRecord:
        outcome = self.outcomes.get(username) or TransientFetchError(username, "Upstream returned HTTP 503.")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class _Harness:
    def __init__(
        self,
        outcomes: Dict[str, Union[UserRecord, Exception]],
        cache: InMemoryFreshnessCache | None = None,
    ) -> None:
        self.settings = Settings(
            roster=ROSTER,
            cache_backend="memory",
            batch_delay_seconds=0,
            fetch_min_delay_seconds=0,
        )
        self.cache = cache or InMemoryFreshnessCache()
        self.audit = MemoryAuditSink()
        self.orchestrator = RefreshOrchestrator(
            self.settings,
            self.cache,
            _StubFetchClient(outcomes),  # type: ignore[arg-type]
            self.audit,
        )


@pytest.fixture
def harness_factory() -> Iterator:
    def build(
        outcomes: Dict[str, Union[UserRecord, Exception]] | None = None,
        cache: InMemoryFreshnessCache | None = None,
    ) -> _Harness:
        harness = _Harness(outcomes or {}, cache)
        app.dependency_overrides[get_orchestrator] = lambda: harness.orchestrator
        app.dependency_overrides[get_settings] = lambda: harness.settings
        return harness

    yield build
    app.dependency_overrides.clear()


def test_healthz_reports_backend() -> None:
    with TestClient(app) as client:
        response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_dashboard_serves_fresh_cache(harness_factory) -> None:
    harness = harness_factory()
    for username in ROSTER:
        harness.cache.put(username, _record(username, [0]))

    with TestClient(app) as client:
        response = client.get("/api/leetcode")

    assert response.status_code == 200
    body = response.json()
    assert [user["id"] for user in body["users"]] == ROSTER
    assert body["fromCache"] is True
    assert "refreshing" not in body
    assert "rateLimited" not in body
    assert body["errors"] == []
    first = body["users"][0]
    assert first["totalSolved"] == 6
    assert first["problemsByDifficulty"] == {"easy": 3, "medium": 2, "hard": 1}
    assert datetime.fromisoformat(body["timestamp"]).tzinfo is not None
    assert len(harness.audit.entries) == 1


def test_dashboard_lists_users_refreshing_in_background(harness_factory) -> None:
    harness = harness_factory({username: _record(username, [0]) for username in ROSTER})
    harness.cache.put("Kho_ja", _record("Kho_ja", [0]))

    with TestClient(app) as client:
        response = client.get("/api/leetcode")
        client.portal.call(harness.orchestrator.supervisor.drain)

    body = response.json()
    assert response.status_code == 200
    assert [user["id"] for user in body["users"]] == ["Kho_ja"]
    assert body["refreshing"] == ["agadev", "Daydi"]
    assert set(harness.cache.get(ROSTER)) == set(ROSTER)


def test_dashboard_returns_500_without_any_data(harness_factory) -> None:
    harness_factory()

    with TestClient(app) as client:
        response = client.get("/api/leetcode")

    assert response.status_code == 500
    body = response.json()
    assert body["users"] == []
    assert body["errors"][-1]["username"] == "ALL"


def test_dashboard_returns_429_when_rate_limited_without_fallback(harness_factory) -> None:
    harness_factory({username: RateLimitedError(username, "Upstream rate limit reached.") for username in ROSTER})

    with TestClient(app) as client:
        response = client.get("/api/leetcode")

    assert response.status_code == 429
    assert response.json()["rateLimited"] is True


def test_dashboard_serves_stale_snapshot_when_upstream_fails(harness_factory) -> None:
    stale = InMemoryFreshnessCache(clock=lambda: datetime.now(timezone.utc) - timedelta(days=2))
    stale.put("agadev", _record("agadev", [5]))
    harness_factory(cache=stale)

    with TestClient(app) as client:
        response = client.get("/api/leetcode")

    assert response.status_code == 200
    body = response.json()
    assert body["fromCache"] is True
    assert [user["id"] for user in body["users"]] == ["agadev"]


def test_user_endpoint_returns_cached_record(harness_factory) -> None:
    harness = harness_factory()
    harness.cache.put("agadev", _record("agadev", [0, 1]))

    with TestClient(app) as client:
        found = client.get("/api/leetcode/users/agadev")
        missing = client.get("/api/leetcode/users/nobody")

    assert found.status_code == 200
    assert found.json()["id"] == "agadev"
    assert missing.status_code == 404


def test_leaderboard_ranks_cached_users_by_window(harness_factory) -> None:
    harness = harness_factory()
    harness.cache.put("Kho_ja", _record("Kho_ja", [20]))
    harness.cache.put("agadev", _record("agadev", [0, 1, 2]))

    with TestClient(app) as client:
        response = client.get("/api/leetcode/leaderboard", params={"range": "week"})

    assert response.status_code == 200
    body = response.json()
    assert body["range"] == "week"
    assert [entry["id"] for entry in body["entries"]] == ["agadev", "Kho_ja"]
    assert body["entries"][0]["rank"] == 1
    assert body["entries"][0]["totalSolved"] == 3
    assert body["missing"] == ["Daydi"]


def test_leaderboard_rejects_unknown_range(harness_factory) -> None:
    harness_factory()

    with TestClient(app) as client:
        response = client.get("/api/leetcode/leaderboard", params={"range": "decade"})

    assert response.status_code == 422

from __future__ import annotations

import asyncio
import json
from typing import Callable, List

import httpx
import pytest

from judgeboard.config import Settings
from judgeboard.fetch_client import (
    JudgeFetchClient,
    MalformedResponseError,
    RateLimitedError,
    TransientFetchError,
    UserNotFoundError,
    parse_matched_user,
)


def _settings() -> Settings:
    return Settings(
        fetch_max_retries=2,
        fetch_retry_delay_seconds=1.0,
        fetch_min_delay_seconds=0.1,
        cache_backend="memory",
    )


def _matched_user(username: str = "Kho_ja", *, real_name: str = "Kho Ja", calendar: str | None = None) -> dict:
    return {
        "username": username,
        "profile": {"realName": real_name, "userAvatar": "https://assets.leetcode.com/a.png"},
        "submitStats": {
            "acSubmissionNum": [
                {"difficulty": "All", "count": 60, "submissions": 140},
                {"difficulty": "Easy", "count": 30, "submissions": 50},
                {"difficulty": "Medium", "count": 25, "submissions": 70},
                {"difficulty": "Hard", "count": 5, "submissions": 20},
            ]
        },
        "submissionCalendar": calendar if calendar is not None else json.dumps({"1700000000": 2, "1699900000": 1}),
    }


class _Recorder:
    def __init__(self, responses: List[Callable[[httpx.Request], httpx.Response]]) -> None:
        self._responses = responses
        self.requests: List[httpx.Request] = []
        self.sleeps: List[float] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self._responses)) - 1
        return self._responses[index](request)

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)


def _run(recorder: _Recorder, username: str = "Kho_ja"):
    async def scenario():
        client = httpx.AsyncClient(transport=httpx.MockTransport(recorder.handler))
        fetcher = JudgeFetchClient(_settings(), client=client, sleep=recorder.sleep)
        try:
            return await fetcher.fetch(username)
        finally:
            await client.aclose()

    return asyncio.run(scenario())


def _ok(payload: dict) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(200, json={"data": {"matchedUser": payload}})


def _status(code: int) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(code, text="upstream says no")


def test_fetch_parses_profile_and_waits_before_first_attempt() -> None:
    recorder = _Recorder([_ok(_matched_user())])

    record = _run(recorder)

    assert record.id == "Kho_ja"
    assert record.name == "Kho Ja"
    assert record.problems_by_difficulty.model_dump() == {"easy": 30, "medium": 25, "hard": 5}
    assert record.total_solved == 60
    assert record.submissions == 140
    assert record.accepted_submissions == [1699900000, 1700000000]
    assert recorder.sleeps == [0.1]
    body = json.loads(recorder.requests[0].content)
    assert body["variables"] == {"username": "Kho_ja"}
    assert "matchedUser" in body["query"]


def test_blank_real_name_falls_back_to_username() -> None:
    record = parse_matched_user(_matched_user(real_name="  ", calendar=""), "Kho_ja")
    assert record.name == "Kho_ja"
    assert record.accepted_submissions == []


def test_rate_limit_is_not_retried() -> None:
    recorder = _Recorder([_status(429)])

    with pytest.raises(RateLimitedError):
        _run(recorder)

    assert len(recorder.requests) == 1


def test_missing_user_is_not_retried() -> None:
    missing = lambda request: httpx.Response(  # noqa: E731
        200,
        json={"data": {"matchedUser": None}, "errors": [{"message": "That user does not exist."}]},
    )
    recorder = _Recorder([missing])

    with pytest.raises(UserNotFoundError) as excinfo:
        _run(recorder, "ghost")

    assert excinfo.value.username == "ghost"
    assert len(recorder.requests) == 1


def test_transient_failures_retry_with_linear_backoff() -> None:
    recorder = _Recorder([_status(502), _status(503), _ok(_matched_user())])

    record = _run(recorder)

    assert record.total_solved == 60
    assert len(recorder.requests) == 3
    assert recorder.sleeps == [0.1, 1.0, 0.1, 2.0, 0.1]


def test_transient_failures_give_up_after_retry_budget() -> None:
    recorder = _Recorder([_status(500)])

    with pytest.raises(TransientFetchError):
        _run(recorder)

    assert len(recorder.requests) == 3


def test_network_errors_are_transient() -> None:
    def explode(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    recorder = _Recorder([explode])

    with pytest.raises(TransientFetchError):
        _run(recorder)

    assert len(recorder.requests) == 3


def test_invalid_json_is_malformed_and_retried() -> None:
    recorder = _Recorder([lambda request: httpx.Response(200, text="<html>oops</html>")])

    with pytest.raises(MalformedResponseError):
        _run(recorder)

    assert len(recorder.requests) == 3


def test_unparsable_calendar_is_malformed() -> None:
    recorder = _Recorder([_ok(_matched_user(calendar="{not json"))])

    with pytest.raises(MalformedResponseError):
        _run(recorder)

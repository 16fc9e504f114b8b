"""Async client for the LeetCode GraphQL profile endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from .config import Settings
from .user_record import ProblemsByDifficulty, UserRecord, normalize_username

logger = logging.getLogger(__name__)

USER_PROFILE_QUERY = """
query getUserProfile($username: String!) {
  matchedUser(username: $username) {
    username
    profile { realName userAvatar }
    submitStats { acSubmissionNum { difficulty count submissions } }
    submissionCalendar
  }
}
"""

REQUEST_HEADERS = {
    "Content-Type": "application/json",
    "Origin": "https://leetcode.com",
    "Referer": "https://leetcode.com/",
    "User-Agent": "judgeboard/0.1",
}

_NOT_FOUND_MARKERS = ("does not exist", "not found", "no such user")


class FetchError(Exception):
    """Base class for failures resolving a single username upstream."""

    retryable = False

    def __init__(self, username: str, message: str) -> None:
        super().__init__(message)
        self.username = username


class RateLimitedError(FetchError):
    pass


class UserNotFoundError(FetchError):
    pass


class TransientFetchError(FetchError):
    retryable = True


class MalformedResponseError(FetchError):
    retryable = True


class _SubmissionCount(BaseModel):
    difficulty: str
    count: int = 0
    submissions: int = 0


class _SubmitStats(BaseModel):
    ac_submission_num: List[_SubmissionCount] = Field(default_factory=list, alias="acSubmissionNum")


class _Profile(BaseModel):
    real_name: Optional[str] = Field(default=None, alias="realName")
    user_avatar: Optional[str] = Field(default=None, alias="userAvatar")


class _MatchedUser(BaseModel):
    username: str
    profile: Optional[_Profile] = None
    submit_stats: Optional[_SubmitStats] = Field(default=None, alias="submitStats")
    submission_calendar: Optional[str] = Field(default=None, alias="submissionCalendar")


def _parse_calendar(raw: Optional[str], username: str) -> List[int]:
    if not raw:
        return []
    try:
        calendar = json.loads(raw)
        return sorted(int(key) for key in calendar)
    except (TypeError, ValueError) as exc:
        raise MalformedResponseError(username, f"Unparsable submission calendar: {exc}") from exc


def parse_matched_user(payload: Dict[str, Any], username: str) -> UserRecord:
    """Translate a ``matchedUser`` GraphQL object into a :class:`UserRecord`."""
    try:
        matched = _MatchedUser.model_validate(payload)
    except ValidationError as exc:
        raise MalformedResponseError(username, f"Unexpected profile shape: {exc}") from exc

    counts: Dict[str, _SubmissionCount] = {}
    if matched.submit_stats:
        counts = {row.difficulty: row for row in matched.submit_stats.ac_submission_num}

    def _count(difficulty: str) -> int:
        row = counts.get(difficulty)
        return row.count if row else 0

    difficulties = ProblemsByDifficulty(
        easy=_count("Easy"),
        medium=_count("Medium"),
        hard=_count("Hard"),
    )
    everything = counts.get("All")
    profile = matched.profile or _Profile()
    return UserRecord(
        id=matched.username,
        name=(profile.real_name or "").strip() or matched.username,
        avatar=profile.user_avatar or "",
        total_solved=difficulties.total,
        problems_by_difficulty=difficulties,
        submissions=everything.submissions if everything else 0,
        accepted_submissions=_parse_calendar(matched.submission_calendar, username),
    )


class JudgeFetchClient:
    """Fetches one user profile per call with bounded retries.

    Rate limiting and missing users propagate immediately; transient and
    malformed responses are retried ``fetch_max_retries`` times with a delay
    that grows linearly with the attempt number. Every attempt, including the
    first, waits ``fetch_min_delay_seconds`` before hitting the upstream.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._url = settings.upstream_url
        self._max_retries = settings.fetch_max_retries
        self._retry_delay = settings.fetch_retry_delay_seconds
        self._min_delay = settings.fetch_min_delay_seconds
        self._client = client or httpx.AsyncClient(timeout=settings.fetch_timeout_seconds, headers=REQUEST_HEADERS)
        self._owns_client = client is None
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, username: str) -> UserRecord:
        username = normalize_username(username)
        attempts = self._max_retries + 1
        last_error: Optional[FetchError] = None
        for attempt in range(1, attempts + 1):
            await self._sleep(self._min_delay)
            try:
                return await self._fetch_once(username)
            except FetchError as exc:
                if not exc.retryable:
                    raise
                last_error = exc
                if attempt == attempts:
                    break
                logger.warning(
                    "Fetch attempt %s/%s for %s failed: %s", attempt, attempts, username, exc
                )
                await self._sleep(self._retry_delay * attempt)
        assert last_error is not None
        raise last_error

    async def _fetch_once(self, username: str) -> UserRecord:
        body = {"query": USER_PROFILE_QUERY, "variables": {"username": username}}
        try:
            response = await self._client.post(self._url, json=body)
        except httpx.HTTPError as exc:
            raise TransientFetchError(username, f"Upstream request failed: {exc}") from exc

        if response.status_code == 429:
            raise RateLimitedError(username, "Upstream rate limit reached.")
        if response.status_code != 200:
            raise TransientFetchError(username, f"Upstream returned HTTP {response.status_code}.")

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError(username, f"Upstream returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise MalformedResponseError(username, "Upstream returned a non-object body.")

        section = data.get("data") or {}
        if not isinstance(section, dict):
            raise MalformedResponseError(username, "Upstream 'data' is not an object.")
        matched = section.get("matchedUser")
        if matched is None:
            self._raise_for_missing_user(username, data)
        if not isinstance(matched, dict):
            raise MalformedResponseError(username, "matchedUser is not an object.")
        return parse_matched_user(matched, username)

    @staticmethod
    def _raise_for_missing_user(username: str, data: Dict[str, Any]) -> None:
        errors = data.get("errors") or []
        messages = [str(err.get("message", "")) for err in errors if isinstance(err, dict)]
        if "data" not in data and not messages:
            raise MalformedResponseError(username, "Upstream response is missing 'data'.")
        joined = "; ".join(message for message in messages if message)
        lowered = joined.lower()
        if "too many" in lowered or "rate limit" in lowered:
            raise RateLimitedError(username, joined)
        if not messages or any(marker in lowered for marker in _NOT_FOUND_MARKERS):
            raise UserNotFoundError(username, joined or "User does not exist.")
        raise TransientFetchError(username, f"Upstream GraphQL error: {joined}")


__all__ = [
    "FetchError",
    "JudgeFetchClient",
    "MalformedResponseError",
    "RateLimitedError",
    "TransientFetchError",
    "USER_PROFILE_QUERY",
    "UserNotFoundError",
    "parse_matched_user",
]

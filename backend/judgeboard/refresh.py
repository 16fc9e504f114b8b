"""Stale-while-revalidate orchestration of the judge user cache.

A request cycle partitions the roster into fresh and stale/missing entries.
Fresh data is returned immediately while the rest is refreshed by a supervised
background task. When nothing is fresh, a small prefix of the roster is fetched
synchronously so the response is not empty, and the remainder goes to the
background. If that also fails, the last-known snapshot is served; only when
the snapshot is empty does the cycle fail with 429 or 500.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .assembler import assemble_response
from .audit import AuditSink, record_audit
from .cache.base import FreshnessCache, StorageError, is_fresh, utcnow
from .config import Settings
from .fetch_client import FetchError, JudgeFetchClient, RateLimitedError
from .streaks import compute_streak
from .telemetry import emit_event
from .user_record import AuditEntry, CacheEntry, ErrorRecord, RefreshCycleResult, UserRecord

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = "The LeetCode API is currently rate limiting requests. Please try again later."
SKIPPED_MESSAGE = "Not fetched: upstream rate limit reached earlier in this refresh."


@dataclass
class CacheCheck:
    fresh: Dict[str, CacheEntry] = field(default_factory=dict)
    stale_or_missing: List[str] = field(default_factory=list)


@dataclass
class RefreshRunOutcome:
    records: Dict[str, UserRecord] = field(default_factory=dict)
    errors: List[ErrorRecord] = field(default_factory=list)
    rate_limited: bool = False
    skipped: List[str] = field(default_factory=list)
    batches: int = 0


RefreshRunner = Callable[[List[str]], Awaitable[RefreshRunOutcome]]


class RefreshSupervisor:
    """Owns background refresh tasks that no request ever awaits.

    Tasks are kept referenced until they finish. Any exception escaping a run
    is logged and written to the audit sink here, since nothing else observes
    the task. Usernames with a refresh already in flight are not scheduled
    again.
    """

    def __init__(self, audit_sink: AuditSink) -> None:
        self._audit = audit_sink
        self._tasks: Set[asyncio.Task[None]] = set()
        self._pending: Set[str] = set()

    @property
    def pending(self) -> Set[str]:
        return set(self._pending)

    def spawn(self, usernames: Sequence[str], runner: RefreshRunner) -> List[str]:
        scheduled = [username for username in usernames if username not in self._pending]
        if not scheduled:
            return []
        self._pending.update(scheduled)
        task = asyncio.get_running_loop().create_task(self._supervise(scheduled, runner))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Background refresh scheduled for %s user(s)", len(scheduled))
        return scheduled

    async def drain(self) -> None:
        """Wait for every outstanding background refresh to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _supervise(self, usernames: List[str], runner: RefreshRunner) -> None:
        try:
            outcome = await runner(usernames)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Background refresh crashed for %s", usernames)
            record_audit(self._audit, AuditEntry(success=False, error=f"Background refresh failed: {exc}"))
        else:
            if outcome.rate_limited:
                logger.warning(
                    "Background refresh halted by rate limit; %s user(s) left stale",
                    len(outcome.skipped),
                )
            for error in outcome.errors:
                logger.warning("Background refresh failed for %s: %s", error.username, error.error)
        finally:
            self._pending.difference_update(usernames)


class RefreshOrchestrator:
    def __init__(
        self,
        settings: Settings,
        cache: FreshnessCache,
        fetch_client: JudgeFetchClient,
        audit_sink: AuditSink,
        *,
        supervisor: Optional[RefreshSupervisor] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._settings = settings
        self._cache = cache
        self._fetch = fetch_client
        self._audit = audit_sink
        self._supervisor = supervisor or RefreshSupervisor(audit_sink)
        self._sleep = sleep
        self._clock = clock

    @property
    def supervisor(self) -> RefreshSupervisor:
        return self._supervisor

    async def check_cache(self, roster: Sequence[str], now: datetime) -> CacheCheck:
        entries = await self._read_entries(roster)
        check = CacheCheck()
        for username in roster:
            entry = entries.get(username)
            if entry is not None and is_fresh(entry, now, self._settings.cache_ttl_seconds):
                check.fresh[username] = entry
            else:
                check.stale_or_missing.append(username)
        return check

    async def cached_entries(self, usernames: Sequence[str]) -> Dict[str, CacheEntry]:
        return await self._read_entries(usernames)

    async def refresh_usernames(self, usernames: Sequence[str]) -> RefreshRunOutcome:
        """Fetch ``usernames`` in bounded concurrent batches and upsert successes."""
        outcome = RefreshRunOutcome()
        size = self._settings.max_concurrent_requests
        batches = [list(usernames[i : i + size]) for i in range(0, len(usernames), size)]
        for index, batch in enumerate(batches):
            if outcome.rate_limited:
                outcome.skipped.extend(batch)
                continue
            if index:
                await self._sleep(self._settings.batch_delay_seconds)
            outcome.batches += 1
            results = await asyncio.gather(*(self._refresh_one(username) for username in batch))
            for username, result in results:
                if isinstance(result, UserRecord):
                    outcome.records[username] = result
                    continue
                outcome.errors.append(ErrorRecord(username=username, error=str(result)))
                if isinstance(result, RateLimitedError):
                    outcome.rate_limited = True
        outcome.errors.extend(ErrorRecord(username=username, error=SKIPPED_MESSAGE) for username in outcome.skipped)
        emit_event(
            "refresh_run",
            requested=len(usernames),
            fetched=len(outcome.records),
            failed=len(outcome.errors) - len(outcome.skipped),
            skipped=len(outcome.skipped),
            batches=outcome.batches,
            rate_limited=outcome.rate_limited,
        )
        return outcome

    async def run_cycle(self, roster: Optional[Iterable[str]] = None) -> RefreshCycleResult:
        """Run one request cycle; always appends exactly one audit entry."""
        usernames = list(self._settings.roster if roster is None else roster)
        try:
            result = await self._run_cycle(usernames)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Refresh cycle failed unexpectedly")
            message = f"An unexpected error occurred: {exc}"
            record_audit(self._audit, AuditEntry(success=False, error=message))
            return RefreshCycleResult(errors=[ErrorRecord(username="ALL", error=message)], status=500)

        failure = None
        if result.status != 200:
            failure = "; ".join(error.error for error in result.errors) or "Refresh cycle failed."
        elif result.errors:
            failure = f"{len(result.errors)} user(s) could not be resolved."
        record_audit(self._audit, AuditEntry(success=result.status == 200, error=failure))
        emit_event(
            "refresh_cycle",
            status=result.status,
            users=len(result.users),
            errors=len(result.errors),
            from_cache=result.from_cache,
            rate_limited=result.rate_limited,
            refreshing=len(result.refreshing),
        )
        return result

    async def _run_cycle(self, roster: List[str]) -> RefreshCycleResult:
        if not roster:
            return RefreshCycleResult()

        check = await self.check_cache(roster, self._clock())
        if check.fresh:
            self._spawn_background(check.stale_or_missing)
            return assemble_response(
                roster,
                {username: entry.record for username, entry in check.fresh.items()},
                [],
                from_cache=True,
                refreshing=check.stale_or_missing,
            )

        # Usernames still refreshing from an earlier request are left to that run.
        in_flight = self._supervisor.pending
        quick = [username for username in check.stale_or_missing if username not in in_flight]
        quick = quick[: self._settings.quick_fetch_count]
        remainder = [username for username in check.stale_or_missing if username not in quick]
        outcome = await self.refresh_usernames(quick)
        errors = list(outcome.errors)
        if outcome.rate_limited:
            refreshing = [username for username in remainder if username in in_flight]
            errors.extend(
                ErrorRecord(username=username, error=SKIPPED_MESSAGE)
                for username in remainder
                if username not in in_flight
            )
        else:
            self._spawn_background(remainder)
            refreshing = remainder

        if outcome.records:
            return assemble_response(
                roster,
                outcome.records,
                errors,
                rate_limited=outcome.rate_limited,
                refreshing=refreshing,
            )

        snapshot = await self._read_snapshot()
        if snapshot:
            logger.warning("Quick fetch returned nothing; serving %s stale cached user(s)", len(snapshot))
            cached = {entry.key: entry.record for entry in snapshot}
            return assemble_response(
                roster,
                cached,
                errors,
                from_cache=True,
                rate_limited=outcome.rate_limited,
                refreshing=refreshing,
            )

        if outcome.rate_limited:
            errors.append(ErrorRecord(username="ALL", error=RATE_LIMITED_MESSAGE))
            return assemble_response(roster, {}, errors, rate_limited=True, refreshing=refreshing, status=429)
        errors.append(ErrorRecord(username="ALL", error="No judge data could be fetched and no cached data exists."))
        return assemble_response(roster, {}, errors, refreshing=refreshing, status=500)

    def _spawn_background(self, usernames: Sequence[str]) -> List[str]:
        if not usernames:
            return []
        return self._supervisor.spawn(usernames, self.refresh_usernames)

    async def _refresh_one(self, username: str) -> Tuple[str, Union[UserRecord, Exception]]:
        try:
            record = await self._fetch.fetch(username)
        except FetchError as exc:
            logger.warning("Failed to fetch %s (%s): %s", username, type(exc).__name__, exc)
            emit_event("fetch_failed", username=username, error=type(exc).__name__, retryable=exc.retryable)
            return username, exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error fetching %s", username)
            return username, exc

        now = self._clock()
        record = record.model_copy(update={"streak": compute_streak(record.accepted_submissions, now.timestamp())})
        try:
            entry = await asyncio.to_thread(self._cache.put, username, record)
        except StorageError as exc:
            logger.warning("Failed to cache %s, serving uncached record: %s", username, exc)
            return username, record.model_copy(update={"last_fetch": now})
        return username, entry.record

    async def _read_entries(self, usernames: Sequence[str]) -> Dict[str, CacheEntry]:
        if not usernames:
            return {}
        try:
            return await asyncio.to_thread(self._cache.get, list(usernames))
        except StorageError as exc:
            logger.warning("Cache read failed, treating as miss: %s", exc)
            return {}

    async def _read_snapshot(self) -> List[CacheEntry]:
        try:
            return await asyncio.to_thread(self._cache.snapshot_all)
        except StorageError as exc:
            logger.warning("Cache snapshot failed: %s", exc)
            return []


__all__ = [
    "CacheCheck",
    "RATE_LIMITED_MESSAGE",
    "RefreshOrchestrator",
    "RefreshRunOutcome",
    "RefreshSupervisor",
]

"""Refresh every roster user synchronously, e.g. from a cron job before peak traffic.

Unlike a dashboard request this waits for all batches to finish, so the next
request finds a fully fresh cache. Exits non-zero when nothing could be fetched.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

from judgeboard.audit import AuditSink, build_audit_sink, record_audit
from judgeboard.cache import FreshnessCache, build_freshness_cache
from judgeboard.config import Settings, get_settings
from judgeboard.fetch_client import JudgeFetchClient
from judgeboard.refresh import RefreshOrchestrator, RefreshRunOutcome
from judgeboard.user_record import AuditEntry

LOGGER = logging.getLogger("judgeboard.warm_cache")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warm the judge user cache.")
    parser.add_argument(
        "--username",
        action="append",
        dest="usernames",
        help="Username to refresh (repeatable). Defaults to the configured roster.",
    )
    return parser.parse_args(argv)


async def warm(
    usernames: list[str],
    settings: Settings,
    cache: FreshnessCache,
    audit_sink: AuditSink,
    fetch_client: JudgeFetchClient,
) -> RefreshRunOutcome:
    orchestrator = RefreshOrchestrator(settings, cache, fetch_client, audit_sink)
    outcome = await orchestrator.refresh_usernames(usernames)
    failure = None
    if outcome.errors:
        failure = f"Cache warm left {len(outcome.errors)} user(s) unresolved."
    record_audit(audit_sink, AuditEntry(success=bool(outcome.records) or not usernames, error=failure))
    return outcome


async def _run(usernames: list[str], settings: Settings) -> RefreshRunOutcome:
    fetch_client = JudgeFetchClient(settings)
    try:
        return await warm(
            usernames,
            settings,
            build_freshness_cache(settings),
            build_audit_sink(settings),
            fetch_client,
        )
    finally:
        await fetch_client.aclose()


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=os.getenv("JUDGEBOARD_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv)
    try:
        settings = get_settings()
        usernames = args.usernames or list(settings.roster)
        outcome = asyncio.run(_run(usernames, settings))
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Cache warm failed: %s", exc)
        return 1

    print(
        json.dumps(
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "refreshed": sorted(outcome.records),
                "errors": [error.model_dump() for error in outcome.errors],
                "rate_limited": outcome.rate_limited,
            }
        )
    )
    if usernames and not outcome.records:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

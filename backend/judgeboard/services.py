"""Process-wide wiring of the cache, fetch client and orchestrator."""

from __future__ import annotations

import logging
from typing import Optional

from .audit import build_audit_sink
from .cache import build_freshness_cache
from .config import get_settings
from .fetch_client import JudgeFetchClient
from .refresh import RefreshOrchestrator

logger = logging.getLogger(__name__)

_orchestrator: Optional[RefreshOrchestrator] = None
_fetch_client: Optional[JudgeFetchClient] = None


def get_orchestrator() -> RefreshOrchestrator:
    global _orchestrator, _fetch_client
    if _orchestrator is None:
        settings = get_settings()
        _fetch_client = JudgeFetchClient(settings)
        _orchestrator = RefreshOrchestrator(
            settings,
            build_freshness_cache(settings),
            _fetch_client,
            build_audit_sink(settings),
        )
        logger.info(
            "Refresh orchestrator ready (backend=%s, roster=%s users)",
            settings.cache_backend,
            len(settings.roster),
        )
    return _orchestrator


async def shutdown_services() -> None:
    """Let background refreshes finish, then release the HTTP client."""
    global _orchestrator, _fetch_client
    if _orchestrator is not None:
        await _orchestrator.supervisor.drain()
    if _fetch_client is not None:
        await _fetch_client.aclose()
    _orchestrator = None
    _fetch_client = None


__all__ = ["get_orchestrator", "shutdown_services"]

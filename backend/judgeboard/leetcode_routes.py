"""Dashboard feed endpoints consumed by the web client."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from .assembler import to_payload
from .config import Settings, get_settings
from .leaderboard import TimeRange, rank_users
from .refresh import RefreshOrchestrator
from .services import get_orchestrator
from .user_record import normalize_username

router = APIRouter(prefix="/api/leetcode", tags=["leetcode"])
logger = logging.getLogger(__name__)


@router.get("")
async def get_dashboard(orchestrator: RefreshOrchestrator = Depends(get_orchestrator)) -> JSONResponse:
    result = await orchestrator.run_cycle()
    if result.status != status.HTTP_200_OK:
        logger.warning("Dashboard cycle answered %s with %s error(s)", result.status, len(result.errors))
    return JSONResponse(to_payload(result), status_code=result.status)


@router.get("/leaderboard")
async def get_leaderboard(
    time_range: TimeRange = Query("week", alias="range"),
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    entries = await orchestrator.cached_entries(settings.roster)
    users = [entries[username].record for username in settings.roster if username in entries]
    ranked = rank_users(users, time_range)
    missing: List[str] = [username for username in settings.roster if username not in entries]
    return {
        "range": time_range,
        "entries": [entry.model_dump(mode="json", by_alias=True) for entry in ranked],
        "missing": missing,
    }


@router.get("/users/{username}")
async def get_user(
    username: str,
    orchestrator: RefreshOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    try:
        key = normalize_username(username)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    entries = await orchestrator.cached_entries([key])
    entry = entries.get(key)
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No cached data for '{key}'.",
        )
    return entry.record.model_dump(mode="json", by_alias=True)

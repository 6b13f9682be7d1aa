"""
Match REST endpoints. Cache-only, like the snapshot routes.

GET /v1/matches/find?home=&away= — Fuzzy team-name lookup in the schedule.
GET /v1/matches/{id}             — One match from the live or schedule snapshot.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ingest.fetcher import SnapshotFetcher
from shared.utils.logging import get_logger
from shared.utils.team_names import find_in_matches

from api.dependencies import get_fetcher

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/matches", tags=["matches"])


@router.get("/find")
async def find_match(
    home: str = Query(..., min_length=1),
    away: str = Query(..., min_length=1),
    fetcher: SnapshotFetcher = Depends(get_fetcher),
) -> dict[str, Any]:
    """First scheduled fixture whose teams pair with home/away."""
    schedule = fetcher.peek_schedule()
    match = find_in_matches(schedule.matches, home, away)
    if match is None:
        logger.debug("match_lookup_miss", home=home, away=away, scanned=schedule.count)
        raise HTTPException(status_code=404, detail="No fixture matches those teams")
    return {"match": match.model_dump(mode="json"), "source": schedule.source}


@router.get("/{match_id}")
async def get_match(
    match_id: str,
    fetcher: SnapshotFetcher = Depends(get_fetcher),
) -> dict[str, Any]:
    match = fetcher.peek_match_details(match_id)
    if match is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return {"match": match.model_dump(mode="json")}

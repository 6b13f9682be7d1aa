"""
Snapshot REST endpoints. Cache-only: these never reach an upstream provider.

GET /v1/live      — Most recent live snapshot.
GET /v1/schedule  — Most recent schedule snapshot (today + lookahead).
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ingest.fetcher import SnapshotFetcher

from api.dependencies import get_fetcher

router = APIRouter(prefix="/v1", tags=["snapshots"])


@router.get("/live")
async def get_live(fetcher: SnapshotFetcher = Depends(get_fetcher)) -> dict[str, Any]:
    return fetcher.peek_live().to_payload()


@router.get("/schedule")
async def get_schedule(fetcher: SnapshotFetcher = Depends(get_fetcher)) -> dict[str, Any]:
    return fetcher.peek_schedule().to_payload()

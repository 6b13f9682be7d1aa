"""
Flashscore provider connector.

Runs the Flashscore live-scraper actor synchronously through the Apify REST
API and reads the resulting dataset in the same call. Every run costs
platform credit, so keys are rotated: a key answering 401/402/403 is
disabled and the next one is tried within the same fetch.
"""
from __future__ import annotations

import re
import uuid
from datetime import date
from typing import Any, Optional

import httpx

from shared.models.domain import CanonicalMatch, MatchEvent
from shared.models.enums import MatchStatus, ProviderName
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

from ingest.credentials import Credential, CredentialPool
from ingest.providers.base import BaseProvider, dedupe_events, parse_utc, to_score

logger = get_logger(__name__)

APIFY_BASE = "https://api.apify.com/v2"
DEFAULT_ACTOR = "statanow~flashscore-scraper-live"

_MINUTE_RE = re.compile(r"^\d+(\+\d+)?'?$")

_LIVE = {"live", "in play", "1st half", "2nd half", "extra time", "penalties"}
_HALF_TIME = {"ht", "half time", "halftime", "half-time", "break time"}
_FINISHED = {"ft", "finished", "aet", "pen", "after pen.", "after penalties",
             "after extra time", "ended"}
_SCHEDULED = {"scheduled", "ns", "not started"}


def _map_status(status: Optional[str], status_time: Optional[str] = None) -> MatchStatus:
    """Map the scraper's free-text status (and clock) to MatchStatus."""
    s = (status or "").strip().lower()
    if s in _HALF_TIME:
        return MatchStatus.HALF_TIME
    if s in _FINISHED:
        return MatchStatus.FINISHED
    if s in _LIVE or _MINUTE_RE.match(s):
        return MatchStatus.LIVE
    if s in _SCHEDULED:
        return MatchStatus.SCHEDULED
    if not s and status_time and _MINUTE_RE.match(status_time.strip()):
        return MatchStatus.LIVE
    return MatchStatus.UNKNOWN


def derive_match_id(home: str, away: str, start_time: Any) -> str:
    """Stable id for a fixture the scraper does not identify itself."""
    key = f"{home}|{away}|{start_time or ''}".lower()
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"flashscore:match:{key}"))


class FlashscoreProvider(BaseProvider):
    """Flashscore live scores via the Apify actor run-sync endpoint."""

    def __init__(
        self,
        credentials: CredentialPool,
        actor: str = DEFAULT_ACTOR,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        # Actor runs are billed, so a failed run is not retried at this layer.
        http_client = ProviderHTTPClient(
            provider_name=ProviderName.FLASHSCORE.value,
            base_url=APIFY_BASE,
            timeout_s=timeout_s,
            max_retries=1,
            transport=transport,
        )
        super().__init__(
            name=ProviderName.FLASHSCORE,
            http_client=http_client,
            credentials=credentials,
        )
        self._actor = actor.replace("/", "~")

    async def _run_actor(self, credential: Credential, operation: str) -> list[CanonicalMatch]:
        resp = await self._http.post(
            f"/acts/{self._actor}/run-sync-get-dataset-items",
            json={},
            extra_headers={"Authorization": f"Bearer {credential.secret}"},
            operation=operation,
        )
        items = resp.json()
        if not isinstance(items, list):
            raise ValueError(f"unexpected dataset payload: {type(items).__name__}")
        matches = [self._parse_item(item) for item in items if isinstance(item, dict)]
        logger.debug(
            "flashscore_dataset_parsed",
            operation=operation,
            items=len(items),
            matches=len(matches),
            key=credential.hint,
        )
        return matches

    async def _fetch_live(self, credential: Credential) -> list[CanonicalMatch]:
        matches = await self._run_actor(credential, "live")
        return [m for m in matches if m.status.is_live]

    async def _fetch_schedule(
        self, credential: Credential, date_from: date, date_to: date
    ) -> list[CanonicalMatch]:
        """Dataset items dated inside the window; undated items are kept."""
        matches = await self._run_actor(credential, "schedule")
        return [
            m for m in matches
            if m.start_time is None or date_from <= m.start_time.date() <= date_to
        ]

    def _parse_item(self, item: dict[str, Any]) -> CanonicalMatch:
        home = item.get("home_team") or "Unknown"
        away = item.get("away_team") or "Unknown"
        status_time = item.get("status_time")
        history = item.get("history") if isinstance(item.get("history"), list) else []
        events = [
            MatchEvent(
                time=_as_text(h.get("time")),
                action=_as_text(h.get("action")),
                player=_as_text(h.get("player")),
                team=_as_text(h.get("team")),
            )
            for h in history
            if isinstance(h, dict) and h.get("kind", "event") == "event"
        ]
        return CanonicalMatch(
            id=derive_match_id(home, away, item.get("start_time")),
            home_team=home,
            away_team=away,
            league=item.get("league") or "Unknown",
            status=_map_status(item.get("status"), _as_text(status_time)),
            minute=_as_text(status_time),
            home_score=to_score(item.get("home_score")),
            away_score=to_score(item.get("away_score")),
            start_time=parse_utc(item.get("start_time")),
            source=self.source_tag,
            events=dedupe_events(events),
        )


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)

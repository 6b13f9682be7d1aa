"""
Football-Data.org (football-data.org) provider connector.
Soccer only: live matches and dated fixtures from the v4 /matches endpoint.
Uses X-Auth-Token. Free tier: 10 requests/min.
"""
from __future__ import annotations

from datetime import date
from typing import Any

import httpx

from shared.models.domain import CanonicalMatch, MatchEvent
from shared.models.enums import MatchStatus, ProviderName
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

from ingest.credentials import Credential, CredentialPool
from ingest.providers.base import BaseProvider, dedupe_events, parse_utc, to_score

logger = get_logger(__name__)

FOOTBALL_DATA_BASE = "https://api.football-data.org/v4"

_STATUS_MAP = {
    "SCHEDULED": MatchStatus.SCHEDULED,
    "TIMED": MatchStatus.SCHEDULED,
    "IN_PLAY": MatchStatus.LIVE,
    "LIVE": MatchStatus.LIVE,
    "PAUSED": MatchStatus.HALF_TIME,
    "FINISHED": MatchStatus.FINISHED,
    "AWARDED": MatchStatus.FINISHED,
}


def _map_status(status: str | None) -> MatchStatus:
    """Map football-data.org status to MatchStatus."""
    return _STATUS_MAP.get((status or "").strip().upper(), MatchStatus.UNKNOWN)


def _pick_score(score: dict[str, Any], side: str) -> int | None:
    """Full-time score, else half-time, else None."""
    for period in ("fullTime", "halfTime"):
        value = to_score((score.get(period) or {}).get(side))
        if value is not None:
            return value
    return None


class FootballDataProvider(BaseProvider):
    """Football-Data.org v4 API (soccer only)."""

    def __init__(
        self,
        credentials: CredentialPool,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        http_client = ProviderHTTPClient(
            provider_name=ProviderName.FOOTBALL_DATA.value,
            base_url=FOOTBALL_DATA_BASE,
            timeout_s=timeout_s,
            max_retries=2,
            transport=transport,
        )
        super().__init__(
            name=ProviderName.FOOTBALL_DATA,
            http_client=http_client,
            credentials=credentials,
        )

    async def _fetch_live(self, credential: Credential) -> list[CanonicalMatch]:
        """GET /matches?status=LIVE."""
        resp = await self._http.get(
            "/matches",
            params={"status": "LIVE"},
            extra_headers={"X-Auth-Token": credential.secret},
            operation="live",
        )
        return self._parse_matches(resp.json())

    async def _fetch_schedule(
        self, credential: Credential, date_from: date, date_to: date
    ) -> list[CanonicalMatch]:
        """GET /matches?dateFrom=&dateTo= across all competitions on the plan."""
        resp = await self._http.get(
            "/matches",
            params={"dateFrom": date_from.isoformat(), "dateTo": date_to.isoformat()},
            extra_headers={"X-Auth-Token": credential.secret},
            operation="schedule",
        )
        return self._parse_matches(resp.json())

    def _parse_matches(self, data: dict[str, Any]) -> list[CanonicalMatch]:
        matches: list[CanonicalMatch] = []
        for raw in data.get("matches") or []:
            if raw.get("id") is None:
                logger.debug("football_data_match_without_id", raw_keys=sorted(raw))
                continue
            matches.append(self._parse_match(raw))
        return matches

    def _parse_match(self, data: dict[str, Any]) -> CanonicalMatch:
        """Build CanonicalMatch from football-data match JSON."""
        home = data.get("homeTeam") or {}
        away = data.get("awayTeam") or {}
        score = data.get("score") or {}

        minute = None
        if data.get("minute"):
            minute = f"{data['minute']}'"
            if data.get("injuryTime"):
                minute = f"{data['minute']}+{data['injuryTime']}'"

        return CanonicalMatch(
            id=str(data["id"]),
            home_team=home.get("name") or home.get("shortName") or "Unknown",
            away_team=away.get("name") or away.get("shortName") or "Unknown",
            league=(data.get("competition") or {}).get("name") or "Unknown",
            status=_map_status(data.get("status")),
            minute=minute,
            home_score=_pick_score(score, "home"),
            away_score=_pick_score(score, "away"),
            start_time=parse_utc(data.get("utcDate")),
            source=self.source_tag,
            events=self._parse_goals_and_bookings(data),
        )

    def _parse_goals_and_bookings(self, data: dict[str, Any]) -> tuple[MatchEvent, ...]:
        """Build MatchEvents from goals and bookings arrays when the plan includes them."""
        events: list[MatchEvent] = []
        for g in data.get("goals") or []:
            kind = (g.get("type") or "").upper()
            events.append(MatchEvent(
                time=f"{g.get('minute')}'" if g.get("minute") is not None else None,
                action="Penalty" if kind == "PENALTY" else "Goal",
                player=(g.get("scorer") or {}).get("name"),
                team=(g.get("team") or {}).get("name"),
            ))
        for b in data.get("bookings") or []:
            card = (b.get("card") or "").upper()
            events.append(MatchEvent(
                time=f"{b.get('minute')}'" if b.get("minute") is not None else None,
                action="Red Card" if "RED" in card else "Yellow Card",
                player=(b.get("player") or {}).get("name"),
                team=(b.get("team") or {}).get("name"),
            ))
        return dedupe_events(events)

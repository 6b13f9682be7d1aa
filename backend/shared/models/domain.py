"""
Pydantic v2 domain models for the TrackIT live engine.
These are the canonical wire/internal representations shared by the
providers, the snapshot cache, the correlation engine and the API.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.models.enums import BetStatus, MatchStatus, SnapshotSource


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class FrozenModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, frozen=True)


# ── Matches ─────────────────────────────────────────────────────────────
class MatchEvent(FrozenModel):
    """One play-by-play entry (goal, card, substitution) from a provider feed."""
    time: Optional[str] = None
    action: Optional[str] = None
    player: Optional[str] = None
    team: Optional[str] = None

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.time or "", self.action or "", self.player or "")


class CanonicalMatch(FrozenModel):
    """One live or scheduled fixture, normalized regardless of provider."""
    id: str
    home_team: str
    away_team: str
    league: str = "Unknown"
    status: MatchStatus = MatchStatus.UNKNOWN
    minute: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    start_time: Optional[datetime] = None
    source: str
    events: tuple[MatchEvent, ...] = ()


class Snapshot(FrozenModel):
    """Immutable bundle of matches plus provenance; unit of caching and broadcast."""
    matches: tuple[CanonicalMatch, ...] = ()
    source: str = SnapshotSource.NONE.value
    fetched_at: datetime = Field(default_factory=utcnow)

    @property
    def count(self) -> int:
        return len(self.matches)

    @classmethod
    def empty(cls, source: SnapshotSource | str = SnapshotSource.NONE) -> "Snapshot":
        tag = source.value if isinstance(source, SnapshotSource) else source
        return cls(matches=(), source=tag)

    def tagged(self, source: SnapshotSource | str) -> "Snapshot":
        """Same matches and timestamp, different provenance tag."""
        tag = source.value if isinstance(source, SnapshotSource) else source
        return self.model_copy(update={"source": tag})

    def to_payload(self) -> dict:
        """JSON-safe dict including the derived count."""
        data = self.model_dump(mode="json")
        data["count"] = self.count
        return data


# ── Bets ────────────────────────────────────────────────────────────────
class Selection(DomainModel):
    home_team: str
    away_team: str
    market: Optional[str] = None
    choice: Optional[str] = None


class TrackedBet(DomainModel):
    """A user's betting slip as held by the bet store; read-only to the engine."""
    id: str
    selections: list[Selection] = Field(default_factory=list)
    status: BetStatus = BetStatus.PENDING


class Subscription(DomainModel):
    bet_id: str
    channel: str = "log"
    target: str = ""


class LiveInfo(FrozenModel):
    """Subset of a CanonicalMatch attached to a correlated selection."""
    id: str
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    status: MatchStatus = MatchStatus.UNKNOWN
    minute: Optional[str] = None
    source: str

    @classmethod
    def from_match(cls, match: CanonicalMatch) -> "LiveInfo":
        return cls(
            id=match.id,
            home_score=match.home_score,
            away_score=match.away_score,
            status=match.status,
            minute=match.minute,
            source=match.source,
        )


class EnrichedSelection(Selection):
    live: Optional[LiveInfo] = None


class EnrichedBet(DomainModel):
    """Per-cycle derived view of a bet with live data attached where it matched."""
    bet_id: str
    selections: list[EnrichedSelection] = Field(default_factory=list)

    @property
    def live_selections(self) -> list[EnrichedSelection]:
        return [s for s in self.selections if s.live is not None]

"""Domain enumerations for the TrackIT live engine."""
from __future__ import annotations

from enum import Enum


class MatchStatus(str, Enum):
    SCHEDULED = "Scheduled"
    LIVE = "Live"
    HALF_TIME = "HalfTime"
    FINISHED = "Finished"
    UNKNOWN = "Unknown"

    @property
    def is_live(self) -> bool:
        return self in (MatchStatus.LIVE, MatchStatus.HALF_TIME)


class ProviderName(str, Enum):
    FOOTBALL_DATA = "football_data"
    FLASHSCORE = "flashscore"

    @property
    def source_tag(self) -> str:
        """Value written to `source` on snapshots and matches from this provider."""
        return self.value.replace("_", "-")


class SnapshotSource(str, Enum):
    """Non-provider provenance tags for snapshots."""
    RATE_LIMITED = "rate-limited"
    ERROR = "error"
    NONE = "none"


class ErrorClass(str, Enum):
    """Classified provider failure; drives cache policy and credential rotation."""
    CONFIG_MISSING = "config_missing"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXHAUSTED = "quota_exhausted"
    TRANSIENT = "transient"


class BetStatus(str, Enum):
    PENDING = "pending"
    LIVE = "live"
    WON = "won"
    LOST = "lost"
    VOID = "void"
    SETTLED = "settled"

    @property
    def is_terminal(self) -> bool:
        return self in (BetStatus.WON, BetStatus.LOST, BetStatus.VOID, BetStatus.SETTLED)


class Topic(str, Enum):
    LIVE_UPDATE = "live:update"
    BET_LIVE_UPDATE = "bet:live-update"


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"

"""
Process-local snapshot cache with per-key single-flight guard.

Three policies:
  ttl(d)           entry is absent once d seconds have elapsed
  daily(ttl=None)  entry is absent once the local calendar day changes
                   (and, optionally, after a TTL as well)
  rate_limited(d)  records that the last upstream attempt was throttled;
                   suppresses refetching for d seconds and leaves the
                   stored value untouched

The most recent good value per key is retained separately from the live
entry so callers can serve stale data after expiry.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Callable, Optional

from shared.models.domain import Snapshot
from shared.utils.logging import get_logger
from shared.utils.metrics import CACHE_LOOKUPS

logger = get_logger(__name__)


def local_day_key() -> str:
    return date.today().isoformat()


def _metric_key(key: str) -> str:
    """Metric label for a cache key: everything before the first colon."""
    return key.split(":", 1)[0]


class PolicyKind(str, Enum):
    TTL = "ttl"
    DAILY = "daily"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class CachePolicy:
    kind: PolicyKind
    duration_s: Optional[float] = None

    @classmethod
    def ttl(cls, duration_s: float) -> "CachePolicy":
        return cls(PolicyKind.TTL, duration_s)

    @classmethod
    def daily(cls, ttl_s: Optional[float] = None) -> "CachePolicy":
        return cls(PolicyKind.DAILY, ttl_s)

    @classmethod
    def rate_limited(cls, duration_s: float) -> "CachePolicy":
        return cls(PolicyKind.RATE_LIMITED, duration_s)


@dataclass
class CacheEntry:
    value: Snapshot
    stored_at: float
    expires_at: Optional[float] = None
    day_key: Optional[str] = None


class CacheLayer:
    """
    Keyed snapshot store.

    `get()` drops entries whose TTL or day key has lapsed. Cooldowns are
    tracked per key and removed once their window passes. `try_acquire()` /
    `release()` implement the single-flight guard: while a key is held,
    other callers are expected to serve whatever is cached instead of
    going upstream.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        day_key: Callable[[], str] = local_day_key,
    ) -> None:
        self._clock = clock
        self._day_key = day_key
        self._entries: dict[str, CacheEntry] = {}
        self._last_good: dict[str, Snapshot] = {}
        self._cooldown_until: dict[str, float] = {}
        self._inflight: set[str] = set()

    # ── Reads ───────────────────────────────────────────────────────────
    def get(self, key: str) -> Optional[Snapshot]:
        entry = self._entries.get(key)
        if entry is None:
            CACHE_LOOKUPS.labels(key=_metric_key(key), result="miss").inc()
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            CACHE_LOOKUPS.labels(key=_metric_key(key), result="expired").inc()
            return None
        if entry.day_key is not None and entry.day_key != self._day_key():
            del self._entries[key]
            logger.debug("cache_day_rollover", key=key, day_key=entry.day_key)
            CACHE_LOOKUPS.labels(key=_metric_key(key), result="expired").inc()
            return None
        CACHE_LOOKUPS.labels(key=_metric_key(key), result="hit").inc()
        return entry.value

    def last_good(self, key: str) -> Optional[Snapshot]:
        """Most recent value stored under key, even if its entry has expired."""
        return self._last_good.get(key)

    def age_s(self, key: str) -> Optional[float]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.stored_at

    # ── Writes ──────────────────────────────────────────────────────────
    def set(self, key: str, snapshot: Optional[Snapshot], policy: CachePolicy) -> None:
        now = self._clock()
        if policy.kind == PolicyKind.RATE_LIMITED:
            self._cooldown_until[key] = now + (policy.duration_s or 0.0)
            logger.info("cache_cooldown_started", key=key, cooldown_s=policy.duration_s)
            return
        if snapshot is None:
            raise ValueError(f"cache policy {policy.kind.value} needs a snapshot")

        entry = CacheEntry(value=snapshot, stored_at=now)
        if policy.duration_s is not None:
            entry.expires_at = now + policy.duration_s
        if policy.kind == PolicyKind.DAILY:
            entry.day_key = self._day_key()
        self._entries[key] = entry
        self._last_good[key] = snapshot
        self._cooldown_until.pop(key, None)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    # ── Rate-limit cooldowns ────────────────────────────────────────────
    def is_rate_limited(self, key: str) -> bool:
        return self.cooldown_remaining(key) > 0

    def cooldown_remaining(self, key: str) -> float:
        until = self._cooldown_until.get(key)
        if until is None:
            return 0.0
        remaining = until - self._clock()
        if remaining <= 0:
            del self._cooldown_until[key]
            return 0.0
        return remaining

    # ── Single-flight ───────────────────────────────────────────────────
    def try_acquire(self, key: str) -> bool:
        """Claim the upstream fetch for key; False if another caller holds it."""
        if key in self._inflight:
            CACHE_LOOKUPS.labels(key=_metric_key(key), result="inflight").inc()
            return False
        self._inflight.add(key)
        return True

    def release(self, key: str) -> None:
        self._inflight.discard(key)

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "keys": sorted(self._entries),
            "in_flight": sorted(self._inflight),
            "cooldowns": {
                k: round(self.cooldown_remaining(k), 1) for k in list(self._cooldown_until)
            },
        }

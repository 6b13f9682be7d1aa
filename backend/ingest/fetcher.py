"""
Snapshot fetcher: cache-first live and schedule snapshots with provider
failover.

Lookup order for a key:
  1. fresh cache entry                  -> returned as stored
  2. every provider cooling down        -> last good, tagged rate-limited
  3. another caller already fetching    -> last good as stored (or empty)
  4. providers in configured order      -> first success is cached and returned
  5. all providers failed               -> last good tagged error/rate-limited,
                                           else an empty snapshot

Rate-limit cooldowns are recorded per (key, provider), so a throttled
primary is skipped while the fallback keeps serving the same key.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Awaitable, Callable, Optional, Sequence

from shared.config import Settings, get_settings
from shared.models.domain import CanonicalMatch, Snapshot
from shared.models.enums import ErrorClass, SnapshotSource
from shared.utils.logging import get_logger
from shared.utils.metrics import LIVE_MATCHES
from shared.utils.team_names import find_in_matches

from ingest.cache import CacheLayer, CachePolicy
from ingest.providers.base import BaseProvider, ProviderResult

logger = get_logger(__name__)

LIVE_KEY = "live"
SCHEDULE_KEY = "schedule"


def cooldown_key(key: str, provider: BaseProvider) -> str:
    return f"{key}:{provider.name.value}"


def match_key(match_id: str) -> str:
    return f"match:{match_id}"


ProviderCall = Callable[[BaseProvider], Awaitable[ProviderResult]]


class SnapshotFetcher:
    """Owns the cache layer and the ordered providers behind it."""

    def __init__(
        self,
        providers: Sequence[BaseProvider],
        cache: CacheLayer,
        settings: Settings | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._providers = list(providers)
        self._cache = cache
        self._settings = settings or get_settings()
        self._today = today
        # Fallback tag of the last fetch per key; absent after a success.
        self._outcome: dict[str, SnapshotSource] = {}

    @property
    def cache(self) -> CacheLayer:
        return self._cache

    @property
    def providers(self) -> list[BaseProvider]:
        return self._providers

    # ── Upstream-backed reads ───────────────────────────────────────────
    async def get_live(self) -> Snapshot:
        snapshot = await self._get(
            LIVE_KEY,
            CachePolicy.ttl(self._settings.live_ttl_s),
            lambda provider: provider.fetch_live(),
        )
        LIVE_MATCHES.set(snapshot.count)
        return snapshot

    async def get_schedule(self) -> Snapshot:
        date_from = self._today()
        date_to = date_from + timedelta(days=self._settings.schedule_lookahead_days)
        return await self._get(
            SCHEDULE_KEY,
            CachePolicy.daily(self._settings.schedule_ttl_s),
            lambda provider: provider.fetch_schedule(date_from, date_to),
        )

    async def find_match(
        self, home_team: str, away_team: str
    ) -> Optional[CanonicalMatch]:
        """Fuzzy lookup against the schedule snapshot; None when nothing pairs."""
        schedule = await self.get_schedule()
        return find_in_matches(schedule.matches, home_team, away_team)

    async def get_match_details(self, match_id: str) -> Optional[CanonicalMatch]:
        """Resolve a match by id from the live snapshot, then the schedule."""
        cached = self._cache.get(match_key(match_id))
        if cached is not None and cached.matches:
            return cached.matches[0]
        match = self._remember_match(await self.get_live(), match_id)
        if match is None:
            match = self._remember_match(await self.get_schedule(), match_id)
        return match

    # ── Cache-only reads ────────────────────────────────────────────────
    def peek_live(self) -> Snapshot:
        return self._peek(LIVE_KEY)

    def peek_schedule(self) -> Snapshot:
        return self._peek(SCHEDULE_KEY)

    def peek_match_details(self, match_id: str) -> Optional[CanonicalMatch]:
        cached = self._cache.get(match_key(match_id))
        if cached is not None and cached.matches:
            return cached.matches[0]
        for snapshot in (self.peek_live(), self.peek_schedule()):
            match = self._remember_match(snapshot, match_id)
            if match is not None:
                return match
        return None

    def cooldowns(self) -> dict[str, float]:
        """Remaining cooldown seconds per key:provider, active ones only."""
        remaining: dict[str, float] = {}
        for key in (LIVE_KEY, SCHEDULE_KEY):
            for provider in self._providers:
                ck = cooldown_key(key, provider)
                left = self._cache.cooldown_remaining(ck)
                if left > 0:
                    remaining[ck] = round(left, 1)
        return remaining

    # ── Internals ───────────────────────────────────────────────────────
    def _peek(self, key: str) -> Snapshot:
        fresh = self._cache.get(key)
        if fresh is not None:
            return fresh
        stale = self._cache.last_good(key)
        if stale is None:
            return Snapshot.empty(SnapshotSource.NONE)
        outcome = self._outcome.get(key)
        return stale.tagged(outcome) if outcome is not None else stale

    def _fallback(self, key: str, outcome: SnapshotSource) -> Snapshot:
        """Last good snapshot tagged with `outcome`, or an empty one; remembered for peeks."""
        self._outcome[key] = outcome
        stale = self._cache.last_good(key)
        if stale is None:
            return Snapshot.empty(SnapshotSource.NONE)
        return stale.tagged(outcome)

    def _remember_match(self, snapshot: Snapshot, match_id: str) -> Optional[CanonicalMatch]:
        for match in snapshot.matches:
            if match.id == match_id:
                self._cache.set(
                    match_key(match_id),
                    Snapshot(matches=(match,), source=match.source),
                    CachePolicy.ttl(self._settings.match_details_ttl_s),
                )
                return match
        return None

    async def _get(self, key: str, policy: CachePolicy, call: ProviderCall) -> Snapshot:
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        eligible = [
            p for p in self._providers
            if not self._cache.is_rate_limited(cooldown_key(key, p))
        ]
        if self._providers and not eligible:
            logger.info(
                "snapshot_rate_limited",
                key=key,
                cooldowns=self.cooldowns(),
                has_stale=self._cache.last_good(key) is not None,
            )
            return self._fallback(key, SnapshotSource.RATE_LIMITED)

        if not self._cache.try_acquire(key):
            logger.debug("snapshot_fetch_in_flight", key=key)
            stale = self._cache.last_good(key)
            return stale if stale is not None else Snapshot.empty(SnapshotSource.NONE)

        cooling = len(self._providers) - len(eligible)
        try:
            return await self._fetch_with_failover(key, policy, eligible, call, cooling)
        finally:
            self._cache.release(key)

    async def _fetch_with_failover(
        self,
        key: str,
        policy: CachePolicy,
        providers: list[BaseProvider],
        call: ProviderCall,
        cooling: int = 0,
    ) -> Snapshot:
        """
        Try `providers` in order. `cooling` counts providers already skipped
        for an active cooldown on `key`; any throttling marks the fallback
        rate-limited rather than error.
        """
        failures: list[ProviderResult] = []
        for provider in providers:
            result = await call(provider)
            if result.success:
                snapshot = Snapshot(matches=tuple(result.matches), source=provider.source_tag)
                self._cache.set(key, snapshot, policy)
                self._outcome.pop(key, None)
                logger.info(
                    "snapshot_fetched",
                    key=key,
                    provider=provider.name.value,
                    matches=snapshot.count,
                    fallback=bool(failures),
                )
                return snapshot

            failures.append(result)
            if result.error == ErrorClass.RATE_LIMITED:
                self._cache.set(
                    cooldown_key(key, provider),
                    None,
                    CachePolicy.rate_limited(self._settings.rate_limit_cooldown_s),
                )
            logger.warning(
                "snapshot_provider_failed",
                key=key,
                provider=provider.name.value,
                classification=result.error.value,
                detail=result.detail,
            )

        throttled = cooling > 0 or any(r.error == ErrorClass.RATE_LIMITED for r in failures)
        logger.error(
            "snapshot_all_providers_failed",
            key=key,
            providers=[r.provider.value for r in failures],
            cooling=cooling,
            has_stale=self._cache.last_good(key) is not None,
        )
        return self._fallback(
            key, SnapshotSource.RATE_LIMITED if throttled else SnapshotSource.ERROR
        )

"""
Poll scheduler for the TrackIT live engine.

Runs one fetch-correlate-notify cycle immediately on start and then every
`poll_interval_s`. Cycles never overlap: the next wait only begins once
the previous cycle, including notification dispatch, has finished.
"""
from __future__ import annotations

import asyncio
import time
from typing import Optional

from shared.config import Settings, get_settings
from shared.models.domain import EnrichedBet, Snapshot
from shared.models.enums import SchedulerState, Topic
from shared.utils.logging import get_logger
from shared.utils.metrics import (
    BET_UPDATES,
    NOTIFICATIONS,
    POLL_CYCLE_DURATION,
    POLL_CYCLES,
    atrack_latency,
)

from ingest.fetcher import SnapshotFetcher
from scheduler.collaborators import BetStore, NotificationSink, PubSubBus
from scheduler.correlation import correlate

logger = get_logger(__name__)

Fingerprint = tuple[tuple[str, Optional[int], Optional[int], str, Optional[str]], ...]


def format_update_message(bet: EnrichedBet) -> tuple[str, str]:
    """(subject, body) for a bet's live update notification."""
    lines = [f"Bet ID: {bet.bet_id}", "Live scores:"]
    for sel in bet.live_selections:
        live = sel.live
        home = "?" if live.home_score is None else live.home_score
        away = "?" if live.away_score is None else live.away_score
        clock = live.minute or live.status.value
        lines.append(f"  {sel.home_team} vs {sel.away_team}: {home}-{away} ({clock})")
    subject = f"TrackIT — Live update for bet {bet.bet_id[:8]}"
    return subject, "\n".join(lines)


def fingerprint(bet: EnrichedBet) -> Fingerprint:
    return tuple(
        (s.live.id, s.live.home_score, s.live.away_score, s.live.status.value, s.live.minute)
        for s in bet.live_selections
    )


class PollScheduler:
    """
    Drives the live snapshot through correlation and out to subscribers.

    States: stopped -> running on `start()`, running -> stopped on `stop()`.
    `stop()` lets an in-flight cycle finish and prevents further ones.
    """

    def __init__(
        self,
        fetcher: SnapshotFetcher,
        store: BetStore,
        bus: PubSubBus,
        sinks: dict[str, NotificationSink],
        settings: Settings | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._bus = bus
        self._sinks = sinks
        self._settings = settings or get_settings()
        self._interval_s = self._settings.poll_interval_s
        self._state = SchedulerState.STOPPED
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        # Last delivered fingerprint per (bet_id, channel, target).
        self._fingerprints: dict[tuple[str, str, str], Fingerprint] = {}
        self._cycles = 0
        self._last_cycle_at: Optional[float] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def stats(self) -> dict:
        return {
            "state": self._state.value,
            "interval_s": self._interval_s,
            "cycles": self._cycles,
            "last_cycle_age_s": (
                round(time.monotonic() - self._last_cycle_at, 1)
                if self._last_cycle_at is not None else None
            ),
        }

    # ── Lifecycle ───────────────────────────────────────────────────────
    async def start(self) -> None:
        # A loop still draining after stop() counts as running.
        if self._state == SchedulerState.RUNNING or self._task is not None:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="poll-scheduler")
        self._state = SchedulerState.RUNNING
        logger.info("poll_scheduler_started", interval_s=self._interval_s)

    async def stop(self) -> None:
        if self._state == SchedulerState.STOPPED:
            return
        self._stop_event.set()
        task = self._task
        if task is not None:
            await task
            if self._task is task:
                self._task = None
        self._state = SchedulerState.STOPPED
        logger.info("poll_scheduler_stopped", cycles=self._cycles)

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            await self._guarded_cycle()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_s)
            except asyncio.TimeoutError:
                pass

    async def _guarded_cycle(self) -> None:
        try:
            await self.run_cycle()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            POLL_CYCLES.labels(outcome="failed").inc()
            logger.error("poll_cycle_failed", error=str(exc), exc_info=True)

    # ── Cycle ───────────────────────────────────────────────────────────
    async def run_cycle(self) -> list[EnrichedBet]:
        """One fetch, publish, correlate and notify pass. Returns the enriched bets."""
        async with atrack_latency(POLL_CYCLE_DURATION):
            snapshot = await self._fetcher.get_live()
            await self._publish(Topic.LIVE_UPDATE, snapshot.to_payload())
            await self._refresh_schedule()

            bets = await self._store.list_active_bets()
            enriched = correlate(bets, snapshot)
            for bet in enriched:
                if await self._publish(Topic.BET_LIVE_UPDATE, bet.model_dump(mode="json")):
                    BET_UPDATES.inc()
                await self._maybe_notify(bet)

            active_ids = {b.id for b in bets}
            for sent_key in list(self._fingerprints):
                if sent_key[0] not in active_ids:
                    del self._fingerprints[sent_key]

        self._cycles += 1
        self._last_cycle_at = time.monotonic()
        POLL_CYCLES.labels(outcome="ok").inc()
        self._log_cycle(snapshot, len(bets), enriched)
        return enriched

    async def _refresh_schedule(self) -> None:
        try:
            await self._fetcher.get_schedule()
        except Exception as exc:
            logger.warning("schedule_refresh_failed", error=str(exc), exc_info=True)

    async def _publish(self, topic: Topic, payload: dict) -> bool:
        try:
            await self._bus.publish(topic.value, payload)
        except Exception as exc:
            logger.warning("bus_publish_failed", topic=topic.value, error=str(exc), exc_info=True)
            return False
        return True

    async def _maybe_notify(self, bet: EnrichedBet) -> None:
        """
        Send the bet's update to each subscription that has not yet received
        this exact live state. A subscription's fingerprint is only recorded
        once its sink accepts the message, so failed or timed-out deliveries
        are retried next cycle.
        """
        try:
            subscriptions = await self._store.list_subscriptions(bet.bet_id)
        except Exception as exc:
            logger.warning("subscriptions_lookup_failed", bet_id=bet.bet_id, error=str(exc))
            return
        if not subscriptions:
            return

        current = fingerprint(bet)
        subject, message = format_update_message(bet)
        for sub in subscriptions:
            sent_key = (bet.bet_id, sub.channel, sub.target)
            if self._settings.notify_only_on_change and self._fingerprints.get(sent_key) == current:
                logger.debug("notification_unchanged_skip", bet_id=bet.bet_id, channel=sub.channel)
                continue
            sink = self._sinks.get(sub.channel)
            if sink is None:
                NOTIFICATIONS.labels(channel=sub.channel, outcome="unsupported").inc()
                logger.warning("notification_channel_unknown", bet_id=bet.bet_id, channel=sub.channel)
                continue
            try:
                await asyncio.wait_for(
                    sink.send(sub, subject, message),
                    timeout=self._settings.notification_timeout_s,
                )
            except asyncio.TimeoutError:
                NOTIFICATIONS.labels(channel=sub.channel, outcome="timeout").inc()
                logger.warning("notification_timeout", bet_id=bet.bet_id, channel=sub.channel)
            except Exception as exc:
                NOTIFICATIONS.labels(channel=sub.channel, outcome="failed").inc()
                logger.warning(
                    "notification_failed",
                    bet_id=bet.bet_id,
                    channel=sub.channel,
                    error=str(exc),
                )
            else:
                NOTIFICATIONS.labels(channel=sub.channel, outcome="ok").inc()
                self._fingerprints[sent_key] = current

    def _log_cycle(self, snapshot: Snapshot, bet_count: int, enriched: list[EnrichedBet]) -> None:
        logger.info(
            "poll_cycle_complete",
            source=snapshot.source,
            live_matches=snapshot.count,
            active_bets=bet_count,
            enriched_bets=len(enriched),
        )

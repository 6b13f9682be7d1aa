"""
Snapshot fetcher tests: cache-first reads, failover order, rate-limit
cooldowns, stale serving and the single-flight guard.
"""
from __future__ import annotations

import asyncio
from datetime import date

import pytest

from shared.config import Settings
from shared.models.enums import ErrorClass, ProviderName

from ingest.cache import CacheLayer

from factories import FakeClock, FakeDay, FakeProvider, build_fetcher, failed, make_match, ok

FD = ProviderName.FOOTBALL_DATA
FS = ProviderName.FLASHSCORE


@pytest.mark.asyncio
async def test_cache_hit_skips_network(
    cache: CacheLayer, clock: FakeClock, settings: Settings
) -> None:
    primary = FakeProvider(FD, [ok(FD, make_match())])
    fetcher = build_fetcher([primary], cache, settings)

    first = await fetcher.get_live()
    clock.advance(29)
    second = await fetcher.get_live()

    assert first.source == "football-data"
    assert second is first
    assert primary.calls == 1


@pytest.mark.asyncio
async def test_refetches_after_ttl(
    cache: CacheLayer, clock: FakeClock, settings: Settings
) -> None:
    primary = FakeProvider(FD, [ok(FD, make_match("m1")), ok(FD, make_match("m2"))])
    fetcher = build_fetcher([primary], cache, settings)

    await fetcher.get_live()
    clock.advance(30)
    snapshot = await fetcher.get_live()

    assert primary.calls == 2
    assert snapshot.matches[0].id == "m2"


@pytest.mark.asyncio
async def test_rate_limited_primary_falls_back_and_cools_down_primary_only(
    cache: CacheLayer, clock: FakeClock, settings: Settings
) -> None:
    primary = FakeProvider(FD, [failed(FD, ErrorClass.RATE_LIMITED)])
    secondary = FakeProvider(FS, [ok(FS, make_match(source="flashscore"))])
    fetcher = build_fetcher([primary, secondary], cache, settings)

    snapshot = await fetcher.get_live()

    assert snapshot.source == "flashscore"
    assert snapshot.count == 1
    assert cache.is_rate_limited("live:football_data")
    assert not cache.is_rate_limited("live:flashscore")
    assert not cache.is_rate_limited("live")
    assert cache.get("live") is snapshot
    assert fetcher.cooldowns() == {"live:football_data": 120.0}

    # While the primary cools down, expired reads go straight to the secondary.
    clock.advance(31)
    await fetcher.get_live()
    assert primary.calls == 1
    assert secondary.calls == 2

    clock.advance(120)
    await fetcher.get_live()
    assert primary.calls == 2


@pytest.mark.asyncio
async def test_transient_primary_falls_back_without_cooldown(
    cache: CacheLayer, settings: Settings
) -> None:
    primary = FakeProvider(FD, [failed(FD, ErrorClass.TRANSIENT)])
    secondary = FakeProvider(FS, [ok(FS, make_match(source="flashscore"))])
    fetcher = build_fetcher([primary, secondary], cache, settings)

    snapshot = await fetcher.get_live()

    assert snapshot.source == "flashscore"
    assert fetcher.cooldowns() == {}


@pytest.mark.asyncio
async def test_config_missing_primary_falls_back(cache: CacheLayer, settings: Settings) -> None:
    primary = FakeProvider(FD, [failed(FD, ErrorClass.CONFIG_MISSING)])
    secondary = FakeProvider(FS, [ok(FS)])
    fetcher = build_fetcher([primary, secondary], cache, settings)

    snapshot = await fetcher.get_live()

    assert snapshot.source == "flashscore"
    assert snapshot.count == 0


@pytest.mark.asyncio
async def test_provider_order_is_configuration(cache: CacheLayer, settings: Settings) -> None:
    fd = FakeProvider(FD, [ok(FD, make_match())])
    fs = FakeProvider(FS, [ok(FS, make_match(source="flashscore"))])
    fetcher = build_fetcher([fs, fd], cache, settings)

    snapshot = await fetcher.get_live()

    assert snapshot.source == "flashscore"
    assert fd.calls == 0


@pytest.mark.asyncio
async def test_both_fail_without_history_returns_empty_none(
    cache: CacheLayer, settings: Settings
) -> None:
    primary = FakeProvider(FD, [failed(FD, ErrorClass.TRANSIENT)])
    secondary = FakeProvider(FS, [failed(FS, ErrorClass.QUOTA_EXHAUSTED)])
    fetcher = build_fetcher([primary, secondary], cache, settings)

    snapshot = await fetcher.get_live()

    assert snapshot.source == "none"
    assert snapshot.count == 0


@pytest.mark.asyncio
async def test_both_fail_serves_last_good_tagged_error(
    cache: CacheLayer, clock: FakeClock, settings: Settings
) -> None:
    primary = FakeProvider(FD, [ok(FD, make_match()), failed(FD, ErrorClass.TRANSIENT)])
    secondary = FakeProvider(FS, [failed(FS, ErrorClass.TRANSIENT)])
    fetcher = build_fetcher([primary, secondary], cache, settings)

    good = await fetcher.get_live()
    clock.advance(31)
    stale = await fetcher.get_live()

    assert stale.source == "error"
    assert stale.matches == good.matches
    assert stale.fetched_at == good.fetched_at


@pytest.mark.asyncio
async def test_cooldown_serves_last_good_tagged_rate_limited(
    cache: CacheLayer, clock: FakeClock, settings: Settings
) -> None:
    primary = FakeProvider(FD, [ok(FD, make_match()), failed(FD, ErrorClass.RATE_LIMITED)])
    fetcher = build_fetcher([primary], cache, settings)

    good = await fetcher.get_live()
    clock.advance(31)
    throttled = await fetcher.get_live()
    during_cooldown = await fetcher.get_live()

    assert throttled.source == "rate-limited"
    assert during_cooldown.source == "rate-limited"
    assert during_cooldown.matches == good.matches
    assert primary.calls == 2


@pytest.mark.asyncio
async def test_cooldown_without_history_returns_empty_none(
    cache: CacheLayer, settings: Settings
) -> None:
    primary = FakeProvider(FD, [failed(FD, ErrorClass.RATE_LIMITED)])
    fetcher = build_fetcher([primary], cache, settings)

    await fetcher.get_live()
    snapshot = await fetcher.get_live()

    assert snapshot.source == "none"
    assert snapshot.count == 0
    assert primary.calls == 1


@pytest.mark.asyncio
async def test_peek_reports_error_after_outage(
    cache: CacheLayer, clock: FakeClock, settings: Settings
) -> None:
    primary = FakeProvider(FD, [ok(FD, make_match()), failed(FD, ErrorClass.TRANSIENT)])
    secondary = FakeProvider(FS, [failed(FS, ErrorClass.TRANSIENT)])
    fetcher = build_fetcher([primary, secondary], cache, settings)

    await fetcher.get_live()
    clock.advance(31)
    polled = await fetcher.get_live()
    served = fetcher.peek_live()

    assert polled.source == "error"
    assert served.source == "error"
    assert served.matches == polled.matches


@pytest.mark.asyncio
async def test_peek_reports_rate_limited_during_cooldown(
    cache: CacheLayer, clock: FakeClock, settings: Settings
) -> None:
    primary = FakeProvider(FD, [ok(FD, make_match()), failed(FD, ErrorClass.RATE_LIMITED)])
    fetcher = build_fetcher([primary], cache, settings)

    await fetcher.get_live()
    clock.advance(31)
    await fetcher.get_live()

    assert fetcher.peek_live().source == "rate-limited"


@pytest.mark.asyncio
async def test_peek_returns_provider_tag_after_recovery(
    cache: CacheLayer, clock: FakeClock, settings: Settings
) -> None:
    primary = FakeProvider(
        FD,
        [ok(FD, make_match("m1")), failed(FD, ErrorClass.TRANSIENT), ok(FD, make_match("m2"))],
    )
    fetcher = build_fetcher([primary], cache, settings)

    await fetcher.get_live()
    clock.advance(31)
    await fetcher.get_live()
    clock.advance(31)
    await fetcher.get_live()
    clock.advance(31)

    served = fetcher.peek_live()
    assert served.source == "football-data"
    assert served.matches[0].id == "m2"


@pytest.mark.asyncio
async def test_cooling_primary_and_failing_secondary_is_rate_limited(
    cache: CacheLayer, clock: FakeClock, settings: Settings
) -> None:
    primary = FakeProvider(FD, [ok(FD, make_match()), failed(FD, ErrorClass.RATE_LIMITED)])
    secondary = FakeProvider(FS, [failed(FS, ErrorClass.TRANSIENT)])
    fetcher = build_fetcher([primary, secondary], cache, settings)

    await fetcher.get_live()
    clock.advance(31)
    await fetcher.get_live()
    clock.advance(31)
    snapshot = await fetcher.get_live()

    assert primary.calls == 2
    assert secondary.calls == 2
    assert snapshot.source == "rate-limited"
    assert fetcher.peek_live().source == "rate-limited"


@pytest.mark.asyncio
async def test_single_flight_one_upstream_call(cache: CacheLayer, settings: Settings) -> None:
    gate = asyncio.Event()
    primary = FakeProvider(FD, [ok(FD, make_match())], gate=gate)
    fetcher = build_fetcher([primary], cache, settings)

    tasks = [asyncio.create_task(fetcher.get_live()) for _ in range(10)]
    await asyncio.sleep(0)
    gate.set()
    results = await asyncio.gather(*tasks)

    assert primary.calls == 1
    assert sum(1 for r in results if r.source == "football-data") == 1
    assert all(r.source == "none" for r in results if r.source != "football-data")
    assert not cache.in_flight("live")


@pytest.mark.asyncio
async def test_concurrent_caller_gets_stale_value_while_refreshing(
    cache: CacheLayer, clock: FakeClock, settings: Settings
) -> None:
    gate = asyncio.Event()
    gate.set()
    primary = FakeProvider(FD, [ok(FD, make_match("m1")), ok(FD, make_match("m2"))], gate=gate)
    fetcher = build_fetcher([primary], cache, settings)
    first = await fetcher.get_live()

    clock.advance(31)
    gate.clear()
    refresh = asyncio.create_task(fetcher.get_live())
    await asyncio.sleep(0)
    concurrent = await fetcher.get_live()
    gate.set()
    fresh = await refresh

    assert concurrent is first
    assert fresh.matches[0].id == "m2"
    assert primary.calls == 2


@pytest.mark.asyncio
async def test_release_after_provider_exception(cache: CacheLayer, settings: Settings) -> None:
    class Exploding(FakeProvider):
        async def fetch_live(self):
            raise RuntimeError("bug")

    fetcher = build_fetcher([Exploding(FD)], cache, settings)
    with pytest.raises(RuntimeError):
        await fetcher.get_live()
    assert not cache.in_flight("live")


class TestSchedule:

    @pytest.mark.asyncio
    async def test_window_is_today_plus_lookahead(
        self, cache: CacheLayer, settings: Settings
    ) -> None:
        primary = FakeProvider(FD, [ok(FD, make_match(), operation="schedule")])
        fetcher = build_fetcher([primary], cache, settings)

        await fetcher.get_schedule()

        assert primary.schedule_windows == [(date(2024, 5, 1), date(2024, 5, 3))]

    @pytest.mark.asyncio
    async def test_day_rollover_refetches(
        self, cache: CacheLayer, day: FakeDay, settings: Settings
    ) -> None:
        primary = FakeProvider(FD, [ok(FD, make_match(), operation="schedule")])
        fetcher = build_fetcher([primary], cache, settings)

        await fetcher.get_schedule()
        await fetcher.get_schedule()
        day.day = "2024-05-02"
        await fetcher.get_schedule()

        assert primary.calls == 2

    @pytest.mark.asyncio
    async def test_schedule_ttl_is_longer_than_live(
        self, cache: CacheLayer, clock: FakeClock, settings: Settings
    ) -> None:
        primary = FakeProvider(FD, [ok(FD, make_match(), operation="schedule")])
        fetcher = build_fetcher([primary], cache, settings)

        await fetcher.get_schedule()
        clock.advance(60)
        await fetcher.get_schedule()
        assert primary.calls == 1
        clock.advance(31)
        await fetcher.get_schedule()
        assert primary.calls == 2


class TestLookups:

    @pytest.mark.asyncio
    async def test_find_match_uses_schedule_and_fuzzy_names(
        self, cache: CacheLayer, settings: Settings
    ) -> None:
        fixture = make_match("s1", "Manchester United FC", "Liverpool FC", home_score=None)
        primary = FakeProvider(FD, [ok(FD, fixture, operation="schedule")])
        fetcher = build_fetcher([primary], cache, settings)

        found = await fetcher.find_match("Man United", "Liverpool")
        missing = await fetcher.find_match("Everton", "Fulham")

        assert found == fixture
        assert missing is None
        assert primary.calls == 1

    @pytest.mark.asyncio
    async def test_match_details_cached_for_ten_minutes(
        self, cache: CacheLayer, clock: FakeClock, settings: Settings
    ) -> None:
        primary = FakeProvider(FD, [ok(FD, make_match("m1"))])
        fetcher = build_fetcher([primary], cache, settings)

        found = await fetcher.get_match_details("m1")
        assert found is not None and found.id == "m1"
        assert cache.get("match:m1") is not None

        clock.advance(599)
        assert cache.get("match:m1") is not None
        clock.advance(1)
        assert cache.get("match:m1") is None

    @pytest.mark.asyncio
    async def test_match_details_falls_back_to_schedule(
        self, cache: CacheLayer, settings: Settings
    ) -> None:
        live = ok(FD, make_match("m1"))
        schedule = ok(FD, make_match("s9", "Everton", "Fulham"), operation="schedule")
        primary = FakeProvider(FD, [live, schedule])
        fetcher = build_fetcher([primary], cache, settings)

        found = await fetcher.get_match_details("s9")
        missing = await fetcher.get_match_details("nope")

        assert found is not None and found.home_team == "Everton"
        assert missing is None

    @pytest.mark.asyncio
    async def test_peek_never_calls_providers(
        self, cache: CacheLayer, clock: FakeClock, settings: Settings
    ) -> None:
        primary = FakeProvider(FD, [ok(FD, make_match("m1"))])
        fetcher = build_fetcher([primary], cache, settings)

        assert fetcher.peek_live().source == "none"
        assert fetcher.peek_schedule().count == 0
        assert fetcher.peek_match_details("m1") is None
        assert primary.calls == 0

        await fetcher.get_live()
        clock.advance(300)
        assert fetcher.peek_live().matches[0].id == "m1"
        assert fetcher.peek_match_details("m1") is not None
        assert primary.calls == 1

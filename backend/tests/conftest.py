"""Shared pytest fixtures."""
from __future__ import annotations

import pytest

from shared.config import Settings

from ingest.cache import CacheLayer

from factories import FakeClock, FakeDay


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def day() -> FakeDay:
    return FakeDay()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        football_data_api_key="fd-test-key",
        flashscore_api_keys=["fs-key-1", "fs-key-2"],
        live_ttl_s=30.0,
        schedule_ttl_s=90.0,
        rate_limit_cooldown_s=120.0,
        match_details_ttl_s=600.0,
        schedule_lookahead_days=2,
        poll_interval_s=0.01,
        notification_timeout_s=0.5,
        notify_only_on_change=True,
        metrics_enabled=False,
    )


@pytest.fixture
def cache(clock: FakeClock, day: FakeDay) -> CacheLayer:
    return CacheLayer(clock=clock, day_key=day)

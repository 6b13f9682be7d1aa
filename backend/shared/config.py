"""
Central configuration for the TrackIT live engine.
Uses pydantic-settings for env-based config with validation.
"""
from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache

from pydantic import Field, RedisDsn, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Legacy deployments exported APIFY_API_KEY_1 .. APIFY_API_KEY_10
LEGACY_SCRAPER_KEY_SLOTS = 10


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class BusBackend(str, Enum):
    MEMORY = "memory"
    REDIS = "redis"


class Settings(BaseSettings):
    """Root settings for the API process and the poll loop it hosts."""

    model_config = SettingsConfigDict(
        env_prefix="TRACKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────
    environment: Environment = Environment.DEV
    debug: bool = False
    log_level: str = "INFO"
    instance_id: str = Field(default="", description="Pod/container ID bound to every log line")

    # ── API ──────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # ── Pub/Sub ──────────────────────────────────────────────
    bus_backend: BusBackend = BusBackend.MEMORY
    redis_url: RedisDsn = Field(default="redis://redis:6379/0")
    redis_max_connections: int = 20

    # ── Providers ────────────────────────────────────────────
    provider_order: list[str] = Field(
        default=["football_data", "flashscore"],
        description="Provider priority for live/schedule fetches; first entry is primary.",
    )
    football_data_api_key: str = ""
    flashscore_api_keys: list[str] = Field(default_factory=list)
    flashscore_actor: str = "statanow~flashscore-scraper-live"
    football_data_timeout_s: float = 10.0
    flashscore_timeout_s: float = 30.0

    # ── Credentials ──────────────────────────────────────────
    credential_failure_threshold: int = 3
    credential_disable_s: float = 3600.0

    # ── Cache ────────────────────────────────────────────────
    live_ttl_s: float = 30.0
    schedule_ttl_s: float = 90.0
    rate_limit_cooldown_s: float = 120.0
    match_details_ttl_s: float = 600.0
    schedule_lookahead_days: int = 2

    # ── Poll scheduler ───────────────────────────────────────
    poll_interval_s: float = 60.0
    notification_timeout_s: float = 10.0
    notify_only_on_change: bool = True

    # ── Observability ────────────────────────────────────────
    metrics_enabled: bool = True
    metrics_port: int = 9090

    @model_validator(mode="after")
    def use_legacy_env_fallback(self) -> "Settings":
        """Pick up the unprefixed env names older deployments still export."""
        if not self.football_data_api_key:
            self.football_data_api_key = os.environ.get("FOOTBALL_DATA_API_KEY", "").strip()

        if not self.flashscore_api_keys:
            keys = []
            for i in range(1, LEGACY_SCRAPER_KEY_SLOTS + 1):
                key = os.environ.get(f"APIFY_API_KEY_{i}", "").strip()
                if key:
                    keys.append(key)
            if not keys and os.environ.get("APIFY_API_KEY", "").strip():
                keys.append(os.environ["APIFY_API_KEY"].strip())
            self.flashscore_api_keys = keys

        raw_interval = os.environ.get("LIVE_POLL_INTERVAL_MS")
        if raw_interval and "TRACKIT_POLL_INTERVAL_S" not in os.environ:
            try:
                self.poll_interval_s = int(raw_interval) / 1000.0
            except ValueError:
                pass
        return self

    @property
    def redis_url_str(self) -> str:
        return str(self.redis_url)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton access to validated settings."""
    return Settings()

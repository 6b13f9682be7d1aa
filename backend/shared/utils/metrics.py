"""
Prometheus metrics for the TrackIT live engine.
Wraps prometheus_client with async-safe patterns.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
PROVIDER_REQUESTS = Counter(
    "ti_provider_requests_total",
    "Total provider HTTP requests",
    ["provider", "operation", "status"],
)
PROVIDER_RESULTS = Counter(
    "ti_provider_results_total",
    "Classified outcome of provider fetches",
    ["provider", "operation", "outcome"],
)
CACHE_LOOKUPS = Counter(
    "ti_cache_lookups_total",
    "Snapshot cache lookups",
    ["key", "result"],
)
POLL_CYCLES = Counter(
    "ti_poll_cycles_total",
    "Poll scheduler cycles",
    ["outcome"],
)
NOTIFICATIONS = Counter(
    "ti_notifications_total",
    "Notification dispatch attempts",
    ["channel", "outcome"],
)
BET_UPDATES = Counter(
    "ti_bet_live_updates_total",
    "Enriched bets published on bet:live-update",
)

# ── Histograms ──────────────────────────────────────────────────────────
PROVIDER_LATENCY = Histogram(
    "ti_provider_latency_seconds",
    "Provider request latency in seconds",
    ["provider"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
POLL_CYCLE_DURATION = Histogram(
    "ti_poll_cycle_seconds",
    "Wall time of one fetch-correlate-notify cycle",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# ── Gauges ──────────────────────────────────────────────────────────────
CREDENTIALS_ACTIVE = Gauge(
    "ti_credentials_active",
    "Credentials currently eligible for rotation",
    ["provider"],
)
CREDENTIALS_DISABLED = Gauge(
    "ti_credentials_disabled",
    "Credentials currently disabled",
    ["provider"],
)
LIVE_MATCHES = Gauge(
    "ti_live_matches",
    "Matches in the most recent live snapshot",
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if labels:
            histogram.labels(**labels).observe(elapsed)
        else:
            histogram.observe(elapsed)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)

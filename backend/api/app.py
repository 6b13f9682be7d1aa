"""
FastAPI application factory for the TrackIT live engine.

Creates the app with:
- Read-only snapshot and match routes (cache-backed)
- Health and status endpoints
- Middleware stack
- Lifespan management: providers, cache, fetcher, pub/sub bus, bet store,
  notification sinks and the poll scheduler are built on startup and torn
  down on shutdown
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI

from shared.config import BusBackend, get_settings
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server
from shared.utils.redis_manager import RedisManager

from api.dependencies import get_fetcher, get_scheduler, init_dependencies, reset_dependencies
from api.middleware import setup_middleware
from api.routes.live import router as live_router
from api.routes.matches import router as matches_router
from ingest.cache import CacheLayer
from ingest.fetcher import SnapshotFetcher
from ingest.providers.registry import ProviderRegistry
from scheduler.collaborators import (
    InMemoryBetStore,
    InMemoryBus,
    LogNotificationSink,
    PubSubBus,
    RedisBus,
    WebhookNotificationSink,
)
from scheduler.service import PollScheduler

logger = get_logger(__name__)

_CONNECT_RETRY_ATTEMPTS = 5
_CONNECT_RETRY_BASE_DELAY_S = 2.0


async def _connect_with_retry(connect_fn, name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    for attempt in range(1, _CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            if attempt == _CONNECT_RETRY_ATTEMPTS:
                raise
            delay = _CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=_CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing; tests call init_dependencies themselves."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Builds the engine on startup, starts the poll loop, and shuts
    everything down in reverse order.
    """
    settings = get_settings()
    setup_logging("api", settings)
    start_metrics_server()

    registry = ProviderRegistry.from_settings(settings)
    await registry.start()
    fetcher = SnapshotFetcher(list(registry), CacheLayer(), settings)

    redis: Optional[RedisManager] = None
    bus: PubSubBus
    if settings.bus_backend == BusBackend.REDIS:
        redis = RedisManager(settings)
        await _connect_with_retry(redis.connect, "Redis")
        bus = RedisBus(redis)
    else:
        bus = InMemoryBus()

    store = InMemoryBetStore()
    webhook = WebhookNotificationSink(timeout_s=settings.notification_timeout_s)
    await webhook.start()
    scheduler = PollScheduler(
        fetcher=fetcher,
        store=store,
        bus=bus,
        sinks={"log": LogNotificationSink(), "webhook": webhook},
        settings=settings,
    )

    init_dependencies(fetcher, scheduler)
    app.state.bet_store = store
    app.state.bus = bus
    app.state.registry = registry

    await scheduler.start()
    logger.info(
        "api_service_started",
        host=settings.api_host,
        port=settings.api_port,
        providers=registry.order,
        bus=settings.bus_backend.value,
    )

    try:
        yield
    finally:
        await scheduler.stop()
        await webhook.close()
        await registry.close()
        if redis is not None:
            await redis.disconnect()
        reset_dependencies()
        logger.info("api_service_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for testing."""
    app = FastAPI(
        title="TrackIT Live API",
        description="Live football scores correlated with tracked bets",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    setup_middleware(app)

    app.include_router(live_router)
    app.include_router(matches_router)

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "api"}

    @app.get("/v1/status", tags=["system"])
    async def system_status() -> dict[str, Any]:
        """Scheduler state, credential pools, provider order and active cooldowns."""
        fetcher = get_fetcher()
        scheduler = get_scheduler()
        live = fetcher.peek_live()
        return {
            "status": "ok",
            "scheduler": scheduler.stats if scheduler is not None else {"state": "absent"},
            "providers": {
                "order": [p.name.value for p in fetcher.providers],
                "credentials": [p.credentials.stats for p in fetcher.providers],
                "cooldowns": fetcher.cooldowns(),
            },
            "cache": fetcher.cache.stats,
            "live": {
                "source": live.source,
                "count": live.count,
                "fetched_at": live.fetched_at.isoformat(),
            },
        }

    return app


# For running with uvicorn directly
app = create_app()

"""
Structured logging for the TrackIT live engine.

structlog runs over the stdlib root logger so uvicorn and httpx records
share one format. Console output in dev, JSON lines elsewhere. Any event
field that names a credential is masked before rendering.
"""
from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping

import structlog

from shared.config import Environment, Settings, get_settings

SECRET_FIELDS = frozenset({"api_key", "token", "authorization", "secret"})
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "asyncio")


def mask_secret(secret: str) -> str:
    """Short, non-reversible hint for a credential, safe to put in logs."""
    if not secret:
        return "<empty>"
    if len(secret) <= 6:
        return "***"
    return f"{secret[:3]}***{secret[-2:]}"


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor: mask values of credential-named fields."""
    for field in SECRET_FIELDS.intersection(event_dict):
        value = event_dict[field]
        if isinstance(value, str):
            event_dict[field] = mask_secret(value)
    return event_dict


def setup_logging(
    service_name: str,
    settings: Settings | None = None,
    extra_context: dict[str, Any] | None = None,
) -> None:
    """
    Configure structured logging for the process.

    Args:
        service_name: Bound to every entry as `service`.
        settings: Source of level, environment and instance id; defaults to `get_settings()`.
        extra_context: Additional static fields bound to every entry.
    """
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
    ]

    if settings.environment == Environment.DEV:
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(colors=settings.debug)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    for noisy in QUIET_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    bound: dict[str, Any] = {
        "service": service_name,
        "environment": settings.environment.value,
        "providers": ",".join(settings.provider_order),
    }
    if settings.instance_id:
        bound["instance_id"] = settings.instance_id
    if extra_context:
        bound.update(extra_context)
    structlog.contextvars.bind_contextvars(**bound)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)

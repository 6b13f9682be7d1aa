"""
API service entrypoint.
Runs the FastAPI application (and the poll loop its lifespan hosts) via uvicorn.
Honors PORT when the platform sets it.
"""
from __future__ import annotations

import os

import uvicorn

from shared.config import get_settings


def main() -> None:
    """Start the API service."""
    settings = get_settings()
    port = int(os.environ.get("PORT", settings.api_port))

    # One worker: the poll loop, cache and credential state are per process.
    uvicorn.run(
        "api.app:app",
        host=settings.api_host,
        port=port,
        workers=1,
        log_level=settings.log_level.lower(),
        access_log=False,
        timeout_keep_alive=30,
    )


if __name__ == "__main__":
    main()

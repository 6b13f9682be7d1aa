"""
Dependency injection for the API service.
Provides the snapshot fetcher and poll scheduler to route handlers.
"""
from __future__ import annotations

from typing import Optional

from ingest.fetcher import SnapshotFetcher
from scheduler.service import PollScheduler

# Module-level singletons, initialized at startup
_fetcher: SnapshotFetcher | None = None
_scheduler: PollScheduler | None = None


def init_dependencies(fetcher: SnapshotFetcher, scheduler: Optional[PollScheduler] = None) -> None:
    """Initialize module-level singletons. Called once at startup (or by tests)."""
    global _fetcher, _scheduler
    _fetcher = fetcher
    _scheduler = scheduler


def reset_dependencies() -> None:
    global _fetcher, _scheduler
    _fetcher = None
    _scheduler = None


def get_fetcher() -> SnapshotFetcher:
    """FastAPI dependency: returns the shared SnapshotFetcher."""
    if _fetcher is None:
        raise RuntimeError("SnapshotFetcher not initialized; call init_dependencies first")
    return _fetcher


def get_scheduler() -> Optional[PollScheduler]:
    """FastAPI dependency: the poll scheduler, or None when the loop is not hosted here."""
    return _scheduler

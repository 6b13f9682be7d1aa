"""
Abstract base class for all match data providers.
Defines the contract that every provider connector must implement.
"""
from __future__ import annotations

import abc
import time
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx

from shared.models.domain import CanonicalMatch, MatchEvent
from shared.models.enums import ErrorClass, ProviderName
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger
from shared.utils.metrics import PROVIDER_RESULTS

from ingest.credentials import Credential, CredentialPool

logger = get_logger(__name__)

QUOTA_STATUS_CODES = frozenset({401, 402, 403})


class ProviderResult:
    """Container for provider fetch results with metadata."""

    def __init__(
        self,
        provider: ProviderName,
        operation: str,
        matches: Optional[list[CanonicalMatch]] = None,
        error: Optional[ErrorClass] = None,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
        latency_ms: float = 0.0,
    ) -> None:
        self.provider = provider
        self.operation = operation
        self.matches = matches or []
        self.error = error
        self.detail = detail
        self.status_code = status_code
        self.latency_ms = latency_ms

    @property
    def success(self) -> bool:
        return self.error is None

    def __repr__(self) -> str:
        outcome = "ok" if self.success else self.error.value
        return (
            f"ProviderResult({self.provider.value}, {self.operation}, {outcome}, "
            f"matches={len(self.matches)})"
        )


def dedupe_events(events: Iterable[MatchEvent]) -> tuple[MatchEvent, ...]:
    """Drop repeated (time, action, player) entries, keeping the first."""
    seen: set[tuple[str, str, str]] = set()
    kept: list[MatchEvent] = []
    for event in events:
        if event.dedup_key in seen:
            continue
        seen.add(event.dedup_key)
        kept.append(event)
    return tuple(kept)


def parse_utc(value: Any) -> Optional[datetime]:
    """ISO-8601 string to an aware UTC datetime; None when missing or unparseable."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_score(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def classify_status(status_code: int) -> ErrorClass:
    if status_code == 429:
        return ErrorClass.RATE_LIMITED
    if status_code in QUOTA_STATUS_CODES:
        return ErrorClass.QUOTA_EXHAUSTED
    return ErrorClass.TRANSIENT


def classify_exception(exc: BaseException) -> tuple[ErrorClass, Optional[int]]:
    """Map an exception raised while fetching to (classification, http status)."""
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return classify_status(code), code
    return ErrorClass.TRANSIENT, None


class BaseProvider(abc.ABC):
    """
    Abstract base class for match data providers.

    Subclasses implement `_fetch_live` and `_fetch_schedule` against one
    credential and may raise freely. The public `fetch_live` /
    `fetch_schedule` wrappers pick credentials from the pool, classify
    failures, report them back to the pool and never raise.
    """

    def __init__(
        self,
        name: ProviderName,
        http_client: ProviderHTTPClient,
        credentials: CredentialPool,
    ) -> None:
        self._name = name
        self._http = http_client
        self._credentials = credentials

    @property
    def name(self) -> ProviderName:
        return self._name

    @property
    def source_tag(self) -> str:
        return self._name.source_tag

    @property
    def credentials(self) -> CredentialPool:
        return self._credentials

    async def start(self) -> None:
        """Initialize the provider HTTP client."""
        await self._http.start()

    async def close(self) -> None:
        """Shutdown the provider HTTP client."""
        await self._http.close()

    async def fetch_live(self) -> ProviderResult:
        """Matches currently in play."""
        return await self._run("live", self._fetch_live)

    async def fetch_schedule(self, date_from: date, date_to: date) -> ProviderResult:
        """Fixtures between date_from and date_to inclusive."""

        async def call(credential: Credential) -> list[CanonicalMatch]:
            return await self._fetch_schedule(credential, date_from, date_to)

        return await self._run("schedule", call)

    async def _run(
        self,
        operation: str,
        call: Callable[[Credential], Awaitable[list[CanonicalMatch]]],
    ) -> ProviderResult:
        """
        Execute one logical fetch, rotating credentials on quota exhaustion.

        At most one attempt per credential in the pool. Rate limiting and
        transient failures end the fetch immediately; the caller decides
        whether to fall back or cool down.
        """
        start = time.perf_counter()
        # Stands until an attempt replaces it.
        result = ProviderResult(
            provider=self._name,
            operation=operation,
            error=ErrorClass.CONFIG_MISSING,
            detail="no eligible credential",
        )

        for _ in range(max(1, len(self._credentials))):
            credential = self._credentials.next()
            if credential is None:
                break

            try:
                matches = await call(credential)
            except Exception as exc:
                classification, status_code = classify_exception(exc)
                if classification != ErrorClass.RATE_LIMITED:
                    self._credentials.report_failure(credential, classification)
                logger.warning(
                    "provider_fetch_failed",
                    provider=self._name.value,
                    operation=operation,
                    classification=classification.value,
                    status=status_code,
                    key=credential.hint,
                    error=str(exc),
                )
                result = ProviderResult(
                    provider=self._name,
                    operation=operation,
                    error=classification,
                    detail=str(exc),
                    status_code=status_code,
                )
                if classification == ErrorClass.QUOTA_EXHAUSTED:
                    continue
                break

            self._credentials.report_success(credential)
            result = ProviderResult(provider=self._name, operation=operation, matches=matches)
            break

        result.latency_ms = (time.perf_counter() - start) * 1000
        outcome = "ok" if result.success else result.error.value
        PROVIDER_RESULTS.labels(
            provider=self._name.value, operation=operation, outcome=outcome
        ).inc()
        logger.debug(
            "provider_fetch_complete",
            provider=self._name.value,
            operation=operation,
            outcome=outcome,
            matches=len(result.matches),
            latency_ms=round(result.latency_ms, 2),
        )
        return result

    # ── Abstract methods (each provider implements these) ───────────────
    @abc.abstractmethod
    async def _fetch_live(self, credential: Credential) -> list[CanonicalMatch]:
        """Provider-specific live fetch logic."""
        ...

    @abc.abstractmethod
    async def _fetch_schedule(
        self, credential: Credential, date_from: date, date_to: date
    ) -> list[CanonicalMatch]:
        """Provider-specific schedule fetch logic."""
        ...

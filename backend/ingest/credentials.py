"""
Round-robin API credential pool with failure tracking.

A credential is disabled for a cooldown window after it reports quota
exhaustion, or after `failure_threshold` consecutive failures of any kind.
State is process-local and resets on restart.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from shared.models.enums import ErrorClass
from shared.utils.logging import get_logger, mask_secret
from shared.utils.metrics import CREDENTIALS_ACTIVE, CREDENTIALS_DISABLED

logger = get_logger(__name__)

DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_DISABLE_S = 3600.0


@dataclass
class Credential:
    secret: str
    failure_count: int = 0
    disabled_until: float = 0.0

    def is_disabled(self, now: float) -> bool:
        return self.disabled_until > now

    @property
    def hint(self) -> str:
        return mask_secret(self.secret)


class CredentialPool:
    """
    Ordered credentials for one provider.

    `next()` hands out credentials in round-robin order and skips disabled
    ones; it returns None when nothing is eligible. The rotation pointer is
    pool-wide, so a credential disabled during one fetch stays skipped for
    every later caller until its cooldown expires.
    """

    def __init__(
        self,
        provider: str,
        secrets: Iterable[str],
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        disable_s: float = DEFAULT_DISABLE_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._provider = provider
        self._credentials = [Credential(secret=s.strip()) for s in secrets if s and s.strip()]
        self._failure_threshold = max(1, failure_threshold)
        self._disable_s = disable_s
        self._clock = clock
        self._index = 0
        self._publish_gauges()

    @property
    def provider(self) -> str:
        return self._provider

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def is_configured(self) -> bool:
        return bool(self._credentials)

    def next(self) -> Optional[Credential]:
        """Next eligible credential in rotation order, or None if all are disabled."""
        if not self._credentials:
            return None
        now = self._clock()
        size = len(self._credentials)
        for offset in range(size):
            idx = (self._index + offset) % size
            cred = self._credentials[idx]
            if cred.is_disabled(now):
                continue
            if cred.disabled_until:
                # Cooldown lapsed; give it a clean slate.
                cred.disabled_until = 0.0
                cred.failure_count = 0
                logger.info("credential_reenabled", provider=self._provider, key=cred.hint)
                self._publish_gauges()
            self._index = (idx + 1) % size
            return cred
        return None

    def report_success(self, credential: Credential) -> None:
        credential.failure_count = 0
        credential.disabled_until = 0.0
        self._publish_gauges()

    def report_failure(self, credential: Credential, classification: ErrorClass) -> None:
        credential.failure_count += 1
        if (
            classification == ErrorClass.QUOTA_EXHAUSTED
            or credential.failure_count >= self._failure_threshold
        ):
            credential.disabled_until = self._clock() + self._disable_s
            self._skip_past(credential)
            logger.warning(
                "credential_disabled",
                provider=self._provider,
                key=credential.hint,
                failures=credential.failure_count,
                classification=classification.value,
                disabled_for_s=self._disable_s,
            )
        else:
            logger.info(
                "credential_failure",
                provider=self._provider,
                key=credential.hint,
                failures=credential.failure_count,
                classification=classification.value,
            )
        self._publish_gauges()

    def _skip_past(self, credential: Credential) -> None:
        for idx, cred in enumerate(self._credentials):
            if cred is credential:
                if self._index == idx:
                    self._index = (idx + 1) % len(self._credentials)
                return

    @property
    def stats(self) -> dict[str, Any]:
        now = self._clock()
        disabled = sum(1 for c in self._credentials if c.is_disabled(now))
        return {
            "provider": self._provider,
            "total": len(self._credentials),
            "active": len(self._credentials) - disabled,
            "disabled": disabled,
        }

    def _publish_gauges(self) -> None:
        stats = self.stats
        CREDENTIALS_ACTIVE.labels(provider=self._provider).set(stats["active"])
        CREDENTIALS_DISABLED.labels(provider=self._provider).set(stats["disabled"])

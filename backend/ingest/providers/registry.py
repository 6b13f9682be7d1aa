"""
Provider registry: builds the configured adapters and exposes them in
failover order. Priority is configuration, so swapping primary and
fallback needs no code change.
"""
from __future__ import annotations

from typing import Callable, Iterator, Optional

from shared.config import Settings, get_settings
from shared.models.enums import ProviderName
from shared.utils.logging import get_logger

from ingest.credentials import CredentialPool
from ingest.providers.base import BaseProvider
from ingest.providers.flashscore import FlashscoreProvider
from ingest.providers.football_data import FootballDataProvider

logger = get_logger(__name__)


def build_credential_pool(
    provider: ProviderName, secrets: list[str], settings: Settings
) -> CredentialPool:
    pool = CredentialPool(
        provider=provider.value,
        secrets=secrets,
        failure_threshold=settings.credential_failure_threshold,
        disable_s=settings.credential_disable_s,
    )
    if not pool.is_configured:
        logger.warning("provider_credentials_missing", provider=provider.value)
    return pool


def _football_data(settings: Settings) -> BaseProvider:
    pool = build_credential_pool(
        ProviderName.FOOTBALL_DATA, [settings.football_data_api_key], settings
    )
    return FootballDataProvider(credentials=pool, timeout_s=settings.football_data_timeout_s)


def _flashscore(settings: Settings) -> BaseProvider:
    pool = build_credential_pool(
        ProviderName.FLASHSCORE, list(settings.flashscore_api_keys), settings
    )
    return FlashscoreProvider(
        credentials=pool,
        actor=settings.flashscore_actor,
        timeout_s=settings.flashscore_timeout_s,
    )


PROVIDER_FACTORIES: dict[ProviderName, Callable[[Settings], BaseProvider]] = {
    ProviderName.FOOTBALL_DATA: _football_data,
    ProviderName.FLASHSCORE: _flashscore,
}


class ProviderRegistry:
    """
    Holds provider instances in cascade order.

    Unknown or duplicate names in the configured order are skipped with a
    warning. A provider without credentials is still registered; its
    fetches report ConfigMissing rather than stopping the process.
    """

    def __init__(self, providers: list[BaseProvider]) -> None:
        self._providers = list(providers)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ProviderRegistry":
        settings = settings or get_settings()
        providers: list[BaseProvider] = []
        seen: set[ProviderName] = set()
        for raw in settings.provider_order:
            try:
                name = ProviderName(raw.strip().lower())
            except ValueError:
                logger.warning("provider_unknown", provider=raw)
                continue
            if name in seen:
                logger.warning("provider_duplicate", provider=name.value)
                continue
            seen.add(name)
            providers.append(PROVIDER_FACTORIES[name](settings))
        logger.info("provider_registry_built", order=[p.name.value for p in providers])
        return cls(providers)

    def __iter__(self) -> Iterator[BaseProvider]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    @property
    def order(self) -> list[str]:
        return [p.name.value for p in self._providers]

    def get_provider(self, name: ProviderName) -> Optional[BaseProvider]:
        for provider in self._providers:
            if provider.name == name:
                return provider
        return None

    async def start(self) -> None:
        for provider in self._providers:
            await provider.start()

    async def close(self) -> None:
        for provider in self._providers:
            await provider.close()

    def credential_stats(self) -> list[dict]:
        return [p.credentials.stats for p in self._providers]

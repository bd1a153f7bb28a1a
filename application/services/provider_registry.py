"""
Ordered registry of payment providers with failover selection.

Insertion order is priority order. Readers work on an immutable tuple
snapshot, so concurrent selections never wait on each other or on a
registration; ``add_provider`` serialises writers with an asyncio lock and
publishes a new tuple.
"""
from __future__ import annotations

import asyncio
from typing import Iterable, Optional

from application.ports.payment_provider import PaymentProvider
from core.logging_config import get_logger
from domain.common.exceptions import (
    NoAvailableProviderException,
    ProviderNotRegisteredException,
)


logger = get_logger(__name__)


class ProviderRegistry:
    def __init__(
        self,
        providers: Iterable[PaymentProvider] = (),
        *,
        availability_timeout: float = 2.0,
    ) -> None:
        self._availability_timeout = availability_timeout
        self._lock = asyncio.Lock()
        self._providers: tuple[PaymentProvider, ...] = ()
        for provider in providers:
            self._providers = self._appended(provider)

    @property
    def providers(self) -> tuple[PaymentProvider, ...]:
        return self._providers

    def names(self) -> list[str]:
        return [p.name for p in self._providers]

    def _appended(self, provider: PaymentProvider) -> tuple[PaymentProvider, ...]:
        if any(p.name == provider.name for p in self._providers):
            raise ValueError(f"Payment provider {provider.name!r} is already registered")
        return (*self._providers, provider)

    async def add_provider(self, provider: PaymentProvider) -> None:
        async with self._lock:
            self._providers = self._appended(provider)
        logger.info("provider_registered", provider=provider.name, position=len(self._providers))

    def get(self, name: Optional[str]) -> PaymentProvider:
        """Resolve a provider by the name recorded on an entity (provider affinity)."""
        for provider in self._providers:
            if provider.name == name:
                return provider
        logger.warning("provider_not_registered", provider=name, registered=self.names())
        raise ProviderNotRegisteredException(name or "")

    async def _probe(self, provider: PaymentProvider) -> bool:
        try:
            return bool(await asyncio.wait_for(provider.is_available(), timeout=self._availability_timeout))
        except asyncio.TimeoutError:
            logger.warning(
                "provider_unavailable",
                provider=provider.name,
                reason="timeout",
                timeout=self._availability_timeout,
            )
            return False
        except Exception as exc:
            logger.warning("provider_unavailable", provider=provider.name, reason="error", error=str(exc))
            return False

    async def select_available(self) -> PaymentProvider:
        """Return the first provider, in registration order, that reports available."""
        snapshot = self._providers
        tried: list[str] = []
        for provider in snapshot:
            tried.append(provider.name)
            if await self._probe(provider):
                logger.debug("provider_selected", provider=provider.name)
                return provider
            logger.info("provider_skipped", provider=provider.name)
        logger.error("no_available_provider", tried=tried)
        raise NoAvailableProviderException(tried=tried)

    async def aclose(self) -> None:
        # Best-effort close of every provider's resources
        for provider in self._providers:
            try:
                await provider.aclose()
            except Exception as exc:
                logger.warning("provider_close_failed", provider=provider.name, error=str(exc))

"""
Shared plumbing for the orchestrators: bounded provider calls and
surfacing of ledger/provider divergence.
"""
from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from application.ports.payment_provider import PaymentProvider
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    LedgerInconsistencyException,
    PaymentProviderError,
    PaymentProviderTimeoutError,
)
from domain.common.timestamps import utcnow


logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class InconsistencyReport:
    """What a reconciliation job needs to repair one divergent record."""

    entity: str
    entity_id: str
    provider_name: str
    provider_ref: Optional[str]
    provider_error: Optional[BaseException]
    persistence_error: BaseException
    occurred_at: datetime = field(default_factory=utcnow)


ReconciliationHook = Callable[[InconsistencyReport], Union[Awaitable[None], None]]


class ProviderCallMixin:
    _call_timeout: float = 30.0
    _reconciliation_hook: Optional[ReconciliationHook] = None

    async def _call_provider(self, provider: PaymentProvider, operation: str, coro: Awaitable[T]) -> T:
        """Await a provider coroutine under the call timeout.

        A timeout surfaces as PaymentProviderTimeoutError (outcome unknown,
        retryable). Typed adapter errors pass through untouched; anything
        else is wrapped in PaymentProviderError.
        """
        try:
            return await asyncio.wait_for(coro, timeout=self._call_timeout)
        except asyncio.TimeoutError as exc:
            logger.warning(
                "provider_call_timeout",
                provider=provider.name,
                operation=operation,
                timeout=self._call_timeout,
            )
            raise PaymentProviderTimeoutError(
                provider=provider.name, operation=operation, timeout=self._call_timeout
            ) from exc
        except BusinessException as exc:
            logger.warning(
                "provider_call_failed",
                provider=provider.name,
                operation=operation,
                code=int(exc.code),
                error=exc.message,
            )
            raise
        except Exception as exc:
            logger.warning(
                "provider_call_failed",
                provider=provider.name,
                operation=operation,
                error=str(exc),
                exc_info=True,
            )
            raise PaymentProviderError(
                str(exc) or exc.__class__.__name__,
                provider=provider.name,
                details={"operation": operation},
            ) from exc

    async def _ledger_inconsistent(
        self,
        *,
        entity: str,
        entity_id: str,
        provider_name: str,
        provider_ref: Optional[str],
        provider_error: Optional[BaseException],
        persistence_error: BaseException,
    ) -> LedgerInconsistencyException:
        """Log, notify the reconciliation hook and build the exception to raise."""
        report = InconsistencyReport(
            entity=entity,
            entity_id=entity_id,
            provider_name=provider_name,
            provider_ref=provider_ref,
            provider_error=provider_error,
            persistence_error=persistence_error,
        )
        logger.error(
            "ledger_inconsistent",
            entity=entity,
            entity_id=entity_id,
            provider=provider_name,
            provider_ref=provider_ref,
            provider_error=str(provider_error) if provider_error else None,
            persistence_error=str(persistence_error),
        )
        if self._reconciliation_hook is not None:
            try:
                result: Any = self._reconciliation_hook(report)
                if inspect.isawaitable(result):
                    await result
            except Exception as hook_exc:
                logger.error(
                    "reconciliation_hook_failed",
                    entity=entity,
                    entity_id=entity_id,
                    error=str(hook_exc),
                    exc_info=True,
                )
        return LedgerInconsistencyException(
            entity=entity,
            entity_id=entity_id,
            provider_name=provider_name,
            provider_error=provider_error,
            persistence_error=persistence_error,
            provider_ref=provider_ref,
        )

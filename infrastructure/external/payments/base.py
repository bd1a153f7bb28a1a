"""
Base payment client implementing shared concerns: http, retry, logging, mapping.

Concrete providers subclass and override the capabilities they support;
everything else raises PaymentOperationNotSupported so the port contract is
always satisfied.
"""
from __future__ import annotations

from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from application.dtos.disputes import DisputeStatsResponse
from application.dtos.providers import (
    ProviderChargeRequest,
    ProviderChargeResult,
    ProviderDispute,
    ProviderDisputeRequest,
    ProviderDisputeUpdate,
    ProviderEvidence,
    ProviderEvidenceResult,
    ProviderPlan,
    ProviderRefundRequest,
    ProviderRefundResult,
    ProviderSubscription,
    ProviderSubscriptionRequest,
    ProviderSubscriptionUpdate,
)
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    PaymentOperationNotSupported,
    PaymentProviderError,
    PaymentRecoverableError,
)
from domain.dispute.entity import DisputeStatus, EVIDENCE_ACCEPTING_STATUSES
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)

# Any transport failure, including ones after the request reached the provider
_TRANSPORT_ERRORS = (httpx.TimeoutException, httpx.TransportError)
# Failures where the request was never sent
_NOT_SENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)
_IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "PUT", "DELETE"})


class BasePaymentClient:
    name: str = "base"
    idempotency_header: str = "Idempotency-Key"

    def __init__(
        self,
        *,
        base_url: str = "",
        auth: Optional[httpx.Auth | tuple[str, str]] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url
        self._auth = auth
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                auth=self._auth,
                timeout=self.timeouts,
                transport=self._transport,
            )
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any], *, retry_on: tuple[type[BaseException], ...] = _TRANSPORT_ERRORS):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(retry_on),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        """Send a JSON request with transport retries and map failures to typed errors.

        A non-idempotent request without ``idempotency_key`` is resent only when
        it never left the client; a timeout after sending may already have
        been acted on by the provider.
        """
        headers = {self.idempotency_header: idempotency_key} if idempotency_key else None
        if idempotency_key or method.upper() in _IDEMPOTENT_METHODS:
            retry_on = _TRANSPORT_ERRORS
        else:
            retry_on = _NOT_SENT_ERRORS

        async def _send() -> httpx.Response:
            async with self.client() as c:
                return await c.request(method, path, json=json, params=params, headers=headers)

        try:
            resp = await self._retry(_send, retry_on=retry_on)
        except _TRANSPORT_ERRORS as exc:
            raise PaymentRecoverableError(
                f"{self.name} {operation} transport error: {exc}",
                provider=self.name,
                details={"operation": operation},
            ) from exc

        body: dict[str, Any] = {}
        if resp.content:
            try:
                parsed = resp.json()
            except ValueError:
                parsed = {"raw": resp.text}
            body = parsed if isinstance(parsed, dict) else {"data": parsed}

        if resp.status_code == 429 or resp.status_code >= 500:
            raise PaymentRecoverableError(
                str(body.get("message") or f"{self.name} {operation} HTTP {resp.status_code}"),
                provider=self.name,
                provider_code=body.get("error_code") or str(resp.status_code),
                details={"operation": operation, "status_code": resp.status_code},
            )
        if resp.status_code >= 400:
            raise PaymentProviderError(
                str(body.get("message") or f"{self.name} {operation} HTTP {resp.status_code}"),
                provider=self.name,
                provider_code=body.get("error_code"),
                details={"operation": operation, "status_code": resp.status_code},
            )
        self._log("provider_http_ok", operation=operation, status_code=resp.status_code)
        return body

    # Helpers
    def _map_status(self, kind: str, provider_status: Optional[str], default: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.name, {}).get(kind, {})
        mapped = mapping.get(provider_status or "")
        if mapped is None:
            self._log("provider_status_unmapped", kind=kind, native=provider_status, fallback=default)
            return default
        return mapped

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.name,
            **kwargs,
        )

    def _unsupported(self, operation: str) -> PaymentOperationNotSupported:
        return PaymentOperationNotSupported(provider=self.name, operation=operation)

    # Availability
    async def _probe(self) -> None:
        raise NotImplementedError

    async def is_available(self) -> bool:
        try:
            await self._probe()
            return True
        except BusinessException as exc:
            logger.warning("provider_probe_failed", provider=self.name, code=int(exc.code), error=exc.message)
            return False

    # Default implementations for capabilities a provider lacks
    async def charge(self, req: ProviderChargeRequest) -> ProviderChargeResult:
        raise self._unsupported("charge")

    async def refund(self, req: ProviderRefundRequest) -> ProviderRefundResult:
        raise self._unsupported("refund")

    async def create_subscription(self, req: ProviderSubscriptionRequest) -> ProviderSubscription:
        raise self._unsupported("create_subscription")

    async def update_subscription(self, req: ProviderSubscriptionUpdate) -> ProviderSubscription:
        raise self._unsupported("update_subscription")

    async def cancel_subscription(self, provider_subscription_id: str, *, at_period_end: bool = False) -> ProviderSubscription:
        raise self._unsupported("cancel_subscription")

    async def get_subscription(self, provider_subscription_id: str) -> ProviderSubscription:
        raise self._unsupported("get_subscription")

    async def list_subscriptions(self, customer_id: str) -> list[ProviderSubscription]:
        raise self._unsupported("list_subscriptions")

    async def create_plan(self, plan: ProviderPlan) -> ProviderPlan:
        raise self._unsupported("create_plan")

    async def update_plan(self, provider_plan_id: str, plan: ProviderPlan) -> ProviderPlan:
        raise self._unsupported("update_plan")

    async def delete_plan(self, provider_plan_id: str) -> None:
        raise self._unsupported("delete_plan")

    async def get_plan(self, provider_plan_id: str) -> ProviderPlan:
        raise self._unsupported("get_plan")

    async def list_plans(self) -> list[ProviderPlan]:
        raise self._unsupported("list_plans")

    async def create_dispute(self, req: ProviderDisputeRequest) -> ProviderDispute:
        raise self._unsupported("create_dispute")

    async def update_dispute(self, req: ProviderDisputeUpdate) -> ProviderDispute:
        raise self._unsupported("update_dispute")

    async def submit_dispute_evidence(self, evidence: ProviderEvidence) -> ProviderEvidenceResult:
        raise self._unsupported("submit_dispute_evidence")

    async def get_dispute(self, provider_dispute_id: str) -> ProviderDispute:
        raise self._unsupported("get_dispute")

    async def list_disputes(self, customer_id: Optional[str] = None) -> list[ProviderDispute]:
        raise self._unsupported("list_disputes")

    async def get_dispute_stats(self) -> DisputeStatsResponse:
        """Aggregate over list_disputes; providers with a native stats endpoint override this."""
        stats = DisputeStatsResponse()
        for dispute in await self.list_disputes():
            stats.total += 1
            status = DisputeStatus(dispute.status)
            setattr(stats, status.value, getattr(stats, status.value) + 1)
            if status in EVIDENCE_ACCEPTING_STATUSES:
                stats.amount_at_risk += dispute.amount or 0
        return stats

"""
Xendit adapter over the REST API (httpx, basic auth with the secret key).

Card charges and refunds go through the credit card endpoints; subscriptions
use the Recurring Payments API. Xendit exposes no plan catalogue or dispute
API, so those capabilities fall back to PaymentOperationNotSupported.
Amounts are sent as-is: the ledger stores the unit Xendit bills in.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

import httpx

from application.dtos.providers import (
    ProviderChargeRequest,
    ProviderChargeResult,
    ProviderRefundRequest,
    ProviderRefundResult,
    ProviderSubscription,
    ProviderSubscriptionRequest,
    ProviderSubscriptionUpdate,
)
from core.settings import PaymentSettings
from domain.common.timestamps import utcnow
from domain.subscription.entity import BillingPeriod
from infrastructure.external.payments.base import BasePaymentClient


# Xendit recurring intervals: (interval, interval_count)
_INTERVALS = {
    BillingPeriod.DAILY: ("DAY", 1),
    BillingPeriod.WEEKLY: ("WEEK", 1),
    BillingPeriod.MONTHLY: ("MONTH", 1),
    BillingPeriod.YEARLY: ("MONTH", 12),
}


class XenditClient(BasePaymentClient):
    name = "xendit"
    idempotency_header = "X-IDEMPOTENCY-KEY"

    def __init__(
        self,
        *,
        secret_key: str,
        base_url: str = "https://api.xendit.co",
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not secret_key:
            raise ValueError("Xendit secret key is required")
        super().__init__(
            base_url=base_url,
            auth=(secret_key, ""),
            timeouts=timeouts,
            retry=retry,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: PaymentSettings) -> "XenditClient":
        return cls(
            secret_key=settings.xendit.secret_key or "",
            base_url=settings.xendit.base_url,
            timeouts=settings.timeouts.model_dump(),
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
        )

    async def _probe(self) -> None:
        await self._request("GET", "/balance", operation="is_available")

    async def charge(self, req: ProviderChargeRequest) -> ProviderChargeResult:
        payload: dict[str, Any] = {
            "token_id": req.payment_method,
            "external_id": req.payment_id,
            "amount": req.amount,
            "currency": req.currency,
            "capture": True,
            "metadata": {**req.metadata, "payment_id": req.payment_id},
        }
        if req.description:
            payload["descriptor"] = req.description[:22]
        if req.customer_id:
            payload["metadata"]["customer_id"] = req.customer_id

        body = await self._request(
            "POST",
            "/credit_card_charges",
            operation="charge",
            json=payload,
            idempotency_key=req.payment_id,
        )
        status = self._map_status("charge", body.get("status"), default="failed")
        self._log("charge_response", payment_id=req.payment_id, charge_id=body.get("id"), status=status)
        if status == "succeeded":
            return ProviderChargeResult(provider_charge_id=str(body["id"]), status="succeeded")
        return ProviderChargeResult(
            provider_charge_id=None,
            status="failed",
            failure_reason=body.get("failure_reason") or f"charge status {body.get('status')}",
        )

    async def refund(self, req: ProviderRefundRequest) -> ProviderRefundResult:
        body = await self._request(
            "POST",
            f"/credit_card_charges/{req.provider_charge_id}/refunds",
            operation="refund",
            json={"amount": req.amount, "external_id": req.refund_id},
            idempotency_key=req.refund_id,
        )
        status = self._map_status("refund", body.get("status"), default="pending")
        self._log("refund_response", refund_id=req.refund_id, provider_refund_id=body.get("id"), status=status)
        return ProviderRefundResult(
            provider_refund_id=body.get("id"),
            status=status,
            failure_reason=body.get("failure_reason"),
        )

    def _to_subscription(self, body: dict[str, Any]) -> ProviderSubscription:
        metadata = body.get("metadata") or {}
        return ProviderSubscription(
            provider_subscription_id=str(body["id"]),
            status=self._map_status("subscription", body.get("status"), default="active"),
            customer_id=body.get("customer_id"),
            current_period_start=body.get("start_date"),
            current_period_end=body.get("next_payment_time") or body.get("recurrence_date"),
            trial_start=metadata.get("trial_start"),
            trial_end=metadata.get("trial_end"),
            metadata=metadata,
        )

    async def create_subscription(self, req: ProviderSubscriptionRequest) -> ProviderSubscription:
        interval, count = _INTERVALS[BillingPeriod(req.billing_period)]
        metadata: dict[str, Any] = {**req.metadata, "plan_id": req.plan_id}
        payload: dict[str, Any] = {
            "external_id": f"{req.customer_id}:{req.plan_id}",
            "customer_id": req.customer_id,
            "amount": req.amount * req.quantity,
            "currency": req.currency,
            "interval": interval,
            "interval_count": count,
            "description": f"plan {req.plan_id}",
        }
        if req.payment_method_id:
            payload["payment_method_id"] = req.payment_method_id
        if req.trial_days > 0:
            trial_start = utcnow()
            trial_end = trial_start + timedelta(days=req.trial_days)
            payload["start_date"] = trial_end.isoformat()
            metadata.update(trial_start=trial_start.isoformat(), trial_end=trial_end.isoformat())
        payload["metadata"] = metadata

        body = await self._request("POST", "/recurring_payments", operation="create_subscription", json=payload)
        self._log("subscription_response", subscription_id=body.get("id"), status=body.get("status"))
        result = self._to_subscription(body)
        result.quantity = req.quantity
        return result

    async def update_subscription(self, req: ProviderSubscriptionUpdate) -> ProviderSubscription:
        payload: dict[str, Any] = {}
        # Xendit bills a single total, so quantity only reaches it through amount
        if req.amount is not None:
            payload["amount"] = req.amount * (req.quantity or 1)
        if req.payment_method_id is not None:
            payload["payment_method_id"] = req.payment_method_id
        if req.metadata is not None:
            payload["metadata"] = req.metadata
        if req.cancel_at_period_end:
            raise self._unsupported("cancel_at_period_end")

        body = await self._request(
            "PATCH",
            f"/recurring_payments/{req.provider_subscription_id}",
            operation="update_subscription",
            json=payload,
        )
        result = self._to_subscription(body)
        if "amount" in payload:
            result.quantity = req.quantity or 1
        return result

    async def cancel_subscription(self, provider_subscription_id: str, *, at_period_end: bool = False) -> ProviderSubscription:
        # Stopping a recurring payment is immediate
        if at_period_end:
            raise self._unsupported("cancel_at_period_end")
        body = await self._request(
            "POST",
            f"/recurring_payments/{provider_subscription_id}/stop!",
            operation="cancel_subscription",
        )
        return self._to_subscription(body)

    async def get_subscription(self, provider_subscription_id: str) -> ProviderSubscription:
        body = await self._request(
            "GET",
            f"/recurring_payments/{provider_subscription_id}",
            operation="get_subscription",
        )
        return self._to_subscription(body)

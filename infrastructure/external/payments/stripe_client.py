"""
Stripe adapter using the official stripe-python SDK.

Notes on SDK usage:
- The module-level resources (``stripe.Charge``, ``stripe.Subscription`` ...)
  are blocking; every call runs in a worker thread via ``asyncio.to_thread``
  so the orchestrator's timeout and task cancellation still apply.
- The API key is passed per request instead of through ``stripe.api_key``.
- Disputes are opened by card networks, not by merchants: "creating" a
  dispute registers the one Stripe already holds for the charge.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import stripe

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
from core.settings import PaymentSettings
from domain.common.exceptions import PaymentProviderError, PaymentRecoverableError
from domain.dispute.entity import DisputeStatus
from domain.subscription.entity import BillingPeriod, PricingType
from infrastructure.external.payments.base import BasePaymentClient


_INTERVALS = {
    BillingPeriod.DAILY: "day",
    BillingPeriod.WEEKLY: "week",
    BillingPeriod.MONTHLY: "month",
    BillingPeriod.YEARLY: "year",
}
_PERIODS = {v: k for k, v in _INTERVALS.items()}


def _field(obj: Any, key: str, default: Any = None) -> Any:
    """Read a key from a StripeObject or plain dict."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


def _ts(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class StripeClient(BasePaymentClient):
    name = "stripe"

    def __init__(
        self,
        *,
        secret_key: str,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        if not secret_key:
            raise ValueError("Stripe secret key is required")
        super().__init__(timeouts=timeouts, retry=retry)
        self._secret_key = secret_key

    @classmethod
    def from_settings(cls, settings: PaymentSettings) -> "StripeClient":
        return cls(
            secret_key=settings.stripe.secret_key or "",
            timeouts=settings.timeouts.model_dump(),
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
        )

    async def _call(self, operation: str, fn: Callable[..., Any], *args: Any, **params: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, api_key=self._secret_key, **params)
        except (stripe.APIConnectionError, stripe.RateLimitError) as exc:
            raise PaymentRecoverableError(
                str(exc),
                provider=self.name,
                provider_code=getattr(exc, "code", None),
                details={"operation": operation},
            ) from exc
        except stripe.CardError as exc:
            raise PaymentProviderError(
                exc.user_message or str(exc),
                provider=self.name,
                provider_code=exc.code,
                details={"operation": operation, "declined": True},
            ) from exc
        except stripe.StripeError as exc:
            raise PaymentProviderError(
                exc.user_message or str(exc),
                provider=self.name,
                provider_code=exc.code,
                details={"operation": operation},
            ) from exc

    async def _probe(self) -> None:
        await self._call("is_available", stripe.Account.retrieve)

    # ------------------------------------------------------------------
    # Charges and refunds
    # ------------------------------------------------------------------
    async def charge(self, req: ProviderChargeRequest) -> ProviderChargeResult:
        metadata = {**req.metadata, "payment_id": req.payment_id}
        if req.customer_id:
            metadata["customer_id"] = req.customer_id
        try:
            ch = await self._call(
                "charge",
                stripe.Charge.create,
                amount=req.amount,
                currency=req.currency.lower(),
                source=req.payment_method,
                description=req.description,
                metadata=metadata,
                idempotency_key=req.payment_id,
            )
        except PaymentProviderError as exc:
            if (exc.details or {}).get("declined"):
                self._log("charge_declined", payment_id=req.payment_id, code=exc.provider_code)
                return ProviderChargeResult(status="failed", failure_reason=exc.message)
            raise

        status = self._map_status("charge", _field(ch, "status"), default="failed")
        self._log("charge_response", payment_id=req.payment_id, charge_id=_field(ch, "id"), status=status)
        if status == "succeeded":
            return ProviderChargeResult(provider_charge_id=str(ch["id"]), status="succeeded")
        return ProviderChargeResult(
            status="failed",
            failure_reason=_field(ch, "failure_message") or f"charge status {_field(ch, 'status')}",
        )

    async def refund(self, req: ProviderRefundRequest) -> ProviderRefundResult:
        metadata = {**req.metadata, "refund_id": req.refund_id, "payment_id": req.payment_id}
        if req.reason:
            metadata["reason"] = req.reason
        refund = await self._call(
            "refund",
            stripe.Refund.create,
            charge=req.provider_charge_id,
            amount=req.amount,
            metadata=metadata,
            idempotency_key=req.refund_id,
        )
        status = self._map_status("refund", _field(refund, "status"), default="pending")
        return ProviderRefundResult(
            provider_refund_id=_field(refund, "id"),
            status=status,
            failure_reason=_field(refund, "failure_reason"),
        )

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------
    def _to_plan(self, obj: Any, fallback: Optional[ProviderPlan] = None) -> ProviderPlan:
        metadata = dict(_field(obj, "metadata", {}) or {})
        interval = _field(obj, "interval", "month")
        return ProviderPlan(
            provider_plan_id=_field(obj, "id"),
            name=_field(obj, "nickname") or (fallback.name if fallback else str(_field(obj, "id", ""))),
            amount=int(_field(obj, "amount", 0)),
            currency=str(_field(obj, "currency", fallback.currency if fallback else "usd")).upper(),
            billing_period=_PERIODS.get(interval, BillingPeriod.MONTHLY),
            pricing_type=PricingType(metadata.get("pricing_type", PricingType.FIXED.value)),
            trial_days=int(_field(obj, "trial_period_days", 0)),
            description=fallback.description if fallback else metadata.get("description"),
            features=list(fallback.features) if fallback else [],
            active=bool(_field(obj, "active", True)),
            metadata=metadata,
        )

    async def create_plan(self, plan: ProviderPlan) -> ProviderPlan:
        params: dict[str, Any] = {
            "amount": plan.amount,
            "currency": plan.currency.lower(),
            "interval": _INTERVALS[BillingPeriod(plan.billing_period)],
            "nickname": plan.name,
            "product": {"name": plan.name},
            "metadata": {**plan.metadata, "pricing_type": PricingType(plan.pricing_type).value},
        }
        if plan.trial_days:
            params["trial_period_days"] = plan.trial_days
        obj = await self._call("create_plan", stripe.Plan.create, **params)
        self._log("plan_created", plan_id=_field(obj, "id"))
        return self._to_plan(obj, plan)

    async def update_plan(self, provider_plan_id: str, plan: ProviderPlan) -> ProviderPlan:
        # Stripe plans are immutable in price and interval
        obj = await self._call(
            "update_plan",
            stripe.Plan.modify,
            provider_plan_id,
            nickname=plan.name,
            active=plan.active,
            trial_period_days=plan.trial_days,
            metadata={**plan.metadata, "pricing_type": PricingType(plan.pricing_type).value},
        )
        return self._to_plan(obj, plan)

    async def delete_plan(self, provider_plan_id: str) -> None:
        await self._call("delete_plan", stripe.Plan.delete, provider_plan_id)

    async def get_plan(self, provider_plan_id: str) -> ProviderPlan:
        return self._to_plan(await self._call("get_plan", stripe.Plan.retrieve, provider_plan_id))

    async def list_plans(self) -> list[ProviderPlan]:
        page = await self._call("list_plans", stripe.Plan.list, limit=100)
        return [self._to_plan(obj) for obj in _field(page, "data", [])]

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def _to_subscription(self, obj: Any) -> ProviderSubscription:
        items = _field(_field(obj, "items", {}), "data", [])
        first = items[0] if items else None
        price = _field(first, "price") or _field(first, "plan")
        return ProviderSubscription(
            provider_subscription_id=str(obj["id"]),
            status=self._map_status("subscription", _field(obj, "status"), default="active"),
            customer_id=_field(obj, "customer"),
            provider_plan_id=_field(price, "id"),
            quantity=_field(first, "quantity"),
            current_period_start=_ts(_field(obj, "current_period_start") or _field(first, "current_period_start")),
            current_period_end=_ts(_field(obj, "current_period_end") or _field(first, "current_period_end")),
            trial_start=_ts(_field(obj, "trial_start")),
            trial_end=_ts(_field(obj, "trial_end")),
            canceled_at=_ts(_field(obj, "canceled_at")),
            cancel_at_period_end=_field(obj, "cancel_at_period_end"),
            metadata=dict(_field(obj, "metadata", {}) or {}),
        )

    async def create_subscription(self, req: ProviderSubscriptionRequest) -> ProviderSubscription:
        if not req.provider_plan_id:
            raise PaymentProviderError(
                f"Plan {req.plan_id} is not provisioned on stripe",
                provider=self.name,
                details={"operation": "create_subscription", "plan_id": req.plan_id},
            )
        params: dict[str, Any] = {
            "customer": req.customer_id,
            "items": [{"price": req.provider_plan_id, "quantity": req.quantity}],
            "metadata": {**req.metadata, "plan_id": req.plan_id},
        }
        if req.trial_days:
            params["trial_period_days"] = req.trial_days
        if req.payment_method_id:
            params["default_payment_method"] = req.payment_method_id
        obj = await self._call("create_subscription", stripe.Subscription.create, **params)
        self._log("subscription_created", subscription_id=_field(obj, "id"), status=_field(obj, "status"))
        return self._to_subscription(obj)

    async def update_subscription(self, req: ProviderSubscriptionUpdate) -> ProviderSubscription:
        if req.plan_id and not req.provider_plan_id:
            raise PaymentProviderError(
                f"Plan {req.plan_id} is not provisioned on stripe",
                provider=self.name,
                details={"operation": "update_subscription", "plan_id": req.plan_id},
            )
        params: dict[str, Any] = {}
        # amount is only set when the billed total changes
        if req.provider_plan_id or req.amount is not None:
            current = await self._call("get_subscription", stripe.Subscription.retrieve, req.provider_subscription_id)
            items = _field(_field(current, "items", {}), "data", [])
            item: dict[str, Any] = {"id": _field(items[0], "id")} if items else {}
            if req.provider_plan_id:
                item["price"] = req.provider_plan_id
            if req.quantity is not None:
                item["quantity"] = req.quantity
            params["items"] = [item]
        if req.payment_method_id is not None:
            params["default_payment_method"] = req.payment_method_id
        if req.cancel_at_period_end is not None:
            params["cancel_at_period_end"] = req.cancel_at_period_end
        if req.metadata is not None:
            params["metadata"] = req.metadata
        obj = await self._call("update_subscription", stripe.Subscription.modify, req.provider_subscription_id, **params)
        return self._to_subscription(obj)

    async def cancel_subscription(self, provider_subscription_id: str, *, at_period_end: bool = False) -> ProviderSubscription:
        if at_period_end:
            obj = await self._call(
                "cancel_subscription",
                stripe.Subscription.modify,
                provider_subscription_id,
                cancel_at_period_end=True,
            )
        else:
            obj = await self._call("cancel_subscription", stripe.Subscription.cancel, provider_subscription_id)
        return self._to_subscription(obj)

    async def get_subscription(self, provider_subscription_id: str) -> ProviderSubscription:
        return self._to_subscription(
            await self._call("get_subscription", stripe.Subscription.retrieve, provider_subscription_id)
        )

    async def list_subscriptions(self, customer_id: str) -> list[ProviderSubscription]:
        page = await self._call("list_subscriptions", stripe.Subscription.list, customer=customer_id, limit=100)
        return [self._to_subscription(obj) for obj in _field(page, "data", [])]

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------
    def _to_dispute(self, obj: Any) -> ProviderDispute:
        evidence_details = _field(obj, "evidence_details", {})
        return ProviderDispute(
            provider_dispute_id=_field(obj, "id"),
            status=self._map_status("dispute", _field(obj, "status"), default=DisputeStatus.OPEN.value),
            transaction_id=_field(obj, "charge"),
            amount=_field(obj, "amount"),
            currency=str(_field(obj, "currency", "")).upper() or None,
            reason=_field(obj, "reason"),
            due_by=_ts(_field(evidence_details, "due_by")),
            metadata=dict(_field(obj, "metadata", {}) or {}),
        )

    def _require_id(self, provider_dispute_id: Optional[str], operation: str) -> str:
        if not provider_dispute_id:
            raise PaymentProviderError(
                "Dispute is not linked to a stripe dispute",
                provider=self.name,
                details={"operation": operation},
            )
        return provider_dispute_id

    async def create_dispute(self, req: ProviderDisputeRequest) -> ProviderDispute:
        page = await self._call("create_dispute", stripe.Dispute.list, charge=req.transaction_id, limit=1)
        data = _field(page, "data", [])
        if not data:
            raise PaymentProviderError(
                f"No dispute opened for charge {req.transaction_id}",
                provider=self.name,
                provider_code="dispute_not_found",
                details={"operation": "create_dispute"},
            )
        dispute = data[0]
        if req.metadata:
            dispute = await self._call(
                "create_dispute", stripe.Dispute.modify, dispute["id"], metadata=req.metadata
            )
        return self._to_dispute(dispute)

    async def update_dispute(self, req: ProviderDisputeUpdate) -> ProviderDispute:
        dispute_id = self._require_id(req.provider_dispute_id, "update_dispute")
        if req.status == DisputeStatus.CANCELED:
            # Closing concedes the dispute on Stripe
            obj = await self._call("update_dispute", stripe.Dispute.close, dispute_id)
        elif req.status == DisputeStatus.UNDER_REVIEW:
            obj = await self._call(
                "update_dispute", stripe.Dispute.modify, dispute_id, submit=True, metadata=req.metadata or {}
            )
        elif req.metadata is not None:
            obj = await self._call("update_dispute", stripe.Dispute.modify, dispute_id, metadata=req.metadata)
        else:
            # won/lost are decided by the card network; only the ledger records them
            obj = await self._call("update_dispute", stripe.Dispute.retrieve, dispute_id)
        return self._to_dispute(obj)

    async def submit_dispute_evidence(self, evidence: ProviderEvidence) -> ProviderEvidenceResult:
        dispute_id = self._require_id(evidence.provider_dispute_id, "submit_dispute_evidence")
        payload: dict[str, Any] = {"uncategorized_text": f"[{evidence.type}] {evidence.description}"}
        if evidence.files:
            payload["uncategorized_file"] = evidence.files[0]
        obj = await self._call(
            "submit_dispute_evidence",
            stripe.Dispute.modify,
            dispute_id,
            evidence=payload,
            submit=False,
        )
        return ProviderEvidenceResult(accepted=True, provider_evidence_id=_field(obj, "id"))

    async def get_dispute(self, provider_dispute_id: str) -> ProviderDispute:
        return self._to_dispute(await self._call("get_dispute", stripe.Dispute.retrieve, provider_dispute_id))

    async def list_disputes(self, customer_id: Optional[str] = None) -> list[ProviderDispute]:
        page = await self._call("list_disputes", stripe.Dispute.list, limit=100)
        disputes = [self._to_dispute(obj) for obj in _field(page, "data", [])]
        if customer_id:
            disputes = [d for d in disputes if d.metadata.get("customer_id") == customer_id]
        return disputes

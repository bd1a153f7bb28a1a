"""
Payment provider port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
Every method is a coroutine, so callers bound it with asyncio timeouts and
cancel it through the awaiting task. Failures are BusinessException
subclasses (PaymentProviderError family), never bare strings.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

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


@runtime_checkable
class PaymentProvider(Protocol):
    """Capability contract every payment backend satisfies.

    ``is_available`` must be cheap (an authenticated no-op or account
    lookup); the registry additionally bounds it with a short timeout.
    """

    name: str

    async def charge(self, req: ProviderChargeRequest) -> ProviderChargeResult: ...

    async def refund(self, req: ProviderRefundRequest) -> ProviderRefundResult: ...

    # Subscriptions
    async def create_subscription(self, req: ProviderSubscriptionRequest) -> ProviderSubscription: ...

    async def update_subscription(self, req: ProviderSubscriptionUpdate) -> ProviderSubscription: ...

    async def cancel_subscription(self, provider_subscription_id: str, *, at_period_end: bool = False) -> ProviderSubscription: ...

    async def get_subscription(self, provider_subscription_id: str) -> ProviderSubscription: ...

    async def list_subscriptions(self, customer_id: str) -> list[ProviderSubscription]: ...

    # Plans
    async def create_plan(self, plan: ProviderPlan) -> ProviderPlan: ...

    async def update_plan(self, provider_plan_id: str, plan: ProviderPlan) -> ProviderPlan: ...

    async def delete_plan(self, provider_plan_id: str) -> None: ...

    async def get_plan(self, provider_plan_id: str) -> ProviderPlan: ...

    async def list_plans(self) -> list[ProviderPlan]: ...

    # Disputes
    async def create_dispute(self, req: ProviderDisputeRequest) -> ProviderDispute: ...

    async def update_dispute(self, req: ProviderDisputeUpdate) -> ProviderDispute: ...

    async def submit_dispute_evidence(self, evidence: ProviderEvidence) -> ProviderEvidenceResult: ...

    async def get_dispute(self, provider_dispute_id: str) -> ProviderDispute: ...

    async def list_disputes(self, customer_id: Optional[str] = None) -> list[ProviderDispute]: ...

    async def get_dispute_stats(self) -> DisputeStatsResponse: ...

    # Health and lifecycle
    async def is_available(self) -> bool: ...

    async def aclose(self) -> None: ...

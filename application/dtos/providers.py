"""
Provider-facing DTOs (Pydantic v2) exchanged across the PaymentProvider port.

Amounts are integers in minor units. Statuses are already mapped onto the
internal closed sets by the adapter; orchestrators never see native values.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from domain.dispute.entity import DisputeStatus
from domain.subscription.entity import BillingPeriod, PricingType, SubscriptionStatus


class ProviderChargeRequest(BaseModel):
    payment_id: str
    amount: int
    currency: str
    payment_method: str
    customer_id: Optional[str] = None
    description: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProviderChargeResult(BaseModel):
    provider_charge_id: Optional[str] = None
    status: Literal["succeeded", "failed"] = "succeeded"
    failure_reason: Optional[str] = None


class ProviderRefundRequest(BaseModel):
    refund_id: str
    payment_id: str
    provider_charge_id: str
    amount: int
    currency: str
    reason: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProviderRefundResult(BaseModel):
    provider_refund_id: Optional[str] = None
    # "pending" means accepted by the provider and still settling
    status: Literal["succeeded", "pending", "failed"] = "succeeded"
    failure_reason: Optional[str] = None


class ProviderPlan(BaseModel):
    name: str
    amount: int
    currency: str
    billing_period: BillingPeriod
    pricing_type: PricingType = PricingType.FIXED
    trial_days: int = 0
    description: Optional[str] = None
    features: list[str] = Field(default_factory=list)
    active: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)
    provider_plan_id: Optional[str] = None


class ProviderSubscriptionRequest(BaseModel):
    customer_id: str
    plan_id: str
    provider_plan_id: Optional[str] = None
    # Plan terms, for providers without a plan catalogue
    amount: int
    currency: str
    billing_period: BillingPeriod
    quantity: int = 1
    payment_method_id: Optional[str] = None
    trial_days: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProviderSubscriptionUpdate(BaseModel):
    provider_subscription_id: str
    plan_id: Optional[str] = None
    provider_plan_id: Optional[str] = None
    amount: Optional[int] = None
    quantity: Optional[int] = None
    payment_method_id: Optional[str] = None
    cancel_at_period_end: Optional[bool] = None
    metadata: Optional[dict[str, Any]] = None


class ProviderSubscription(BaseModel):
    provider_subscription_id: str
    status: SubscriptionStatus
    customer_id: Optional[str] = None
    provider_plan_id: Optional[str] = None
    quantity: Optional[int] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    cancel_at_period_end: Optional[bool] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProviderDisputeRequest(BaseModel):
    transaction_id: str
    reason: str
    amount: int
    currency: str
    customer_id: Optional[str] = None
    due_by: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProviderDisputeUpdate(BaseModel):
    provider_dispute_id: Optional[str] = None
    transaction_id: str
    status: Optional[DisputeStatus] = None
    metadata: Optional[dict[str, Any]] = None


class ProviderDispute(BaseModel):
    provider_dispute_id: Optional[str] = None
    status: DisputeStatus = DisputeStatus.OPEN
    transaction_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    reason: Optional[str] = None
    due_by: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProviderEvidence(BaseModel):
    provider_dispute_id: Optional[str] = None
    transaction_id: str
    type: str
    description: str
    files: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProviderEvidenceResult(BaseModel):
    accepted: bool = True
    provider_evidence_id: Optional[str] = None

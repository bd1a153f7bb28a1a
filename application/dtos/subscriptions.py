"""
Plan and subscription DTOs (Pydantic v2).
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from domain.subscription.entity import BillingPeriod, PricingType, SubscriptionStatus


class CreatePlanRequest(BaseModel):
    name: str
    amount: int
    currency: str
    billing_period: BillingPeriod
    pricing_type: PricingType = PricingType.FIXED
    trial_days: int = 0
    description: Optional[str] = None
    features: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdatePlanRequest(BaseModel):
    name: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    billing_period: Optional[BillingPeriod] = None
    pricing_type: Optional[PricingType] = None
    trial_days: Optional[int] = None
    description: Optional[str] = None
    features: Optional[list[str]] = None
    active: Optional[bool] = None
    metadata: Optional[dict[str, Any]] = None


class PlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    amount: int
    currency: str
    billing_period: BillingPeriod
    pricing_type: PricingType
    trial_days: int
    features: list[str] = Field(default_factory=list)
    provider_name: Optional[str] = None
    provider_plan_id: Optional[str] = None
    active: bool
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class CreateSubscriptionRequest(BaseModel):
    customer_id: str
    plan_id: str
    quantity: int = 1
    payment_method_id: Optional[str] = None
    # None means "use the plan's trial_days"
    trial_days: Optional[int] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdateSubscriptionRequest(BaseModel):
    plan_id: Optional[str] = None
    quantity: Optional[int] = None
    payment_method_id: Optional[str] = None
    cancel_at_period_end: Optional[bool] = None
    metadata: Optional[dict[str, Any]] = None


class CancelSubscriptionRequest(BaseModel):
    at_period_end: bool = False


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: str
    plan_id: str
    status: SubscriptionStatus
    quantity: int
    payment_method_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    cancel_at_period_end: bool
    provider_name: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

"""
Payment DTOs (Pydantic v2) used at application boundaries.

Request models stay permissive on purpose-specific rules (amount > 0,
non-empty currency): the orchestrator validates them so that every rule
violation surfaces as the same DomainValidationException kind.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from domain.payment.entity import PaymentStatus, RefundStatus


class ChargeRequest(BaseModel):
    customer_id: Optional[str] = None
    amount: int
    currency: str = ""
    payment_method: str = ""
    description: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RefundRequest(BaseModel):
    payment_id: str = ""
    amount: int
    currency: str = ""
    reason: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: Optional[str] = None
    amount: int
    currency: str
    status: PaymentStatus
    payment_method: str
    description: Optional[str] = None
    provider_name: Optional[str] = None
    provider_charge_id: Optional[str] = None
    failure_reason: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


# A charge returns the resulting payment record
ChargeResponse = PaymentResponse


class RefundResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    payment_id: str
    amount: int
    currency: str
    status: RefundStatus
    reason: Optional[str] = None
    provider_name: Optional[str] = None
    provider_refund_id: Optional[str] = None
    failure_reason: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

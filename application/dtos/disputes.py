"""
Dispute DTOs (Pydantic v2).
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from domain.dispute.entity import DisputeStatus


class CreateDisputeRequest(BaseModel):
    transaction_id: str = ""
    reason: str = ""
    amount: int
    currency: str
    customer_id: Optional[str] = None
    due_by: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdateDisputeRequest(BaseModel):
    # Kept as a plain string so unknown targets reach the transition check
    status: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class SubmitEvidenceRequest(BaseModel):
    type: str = ""
    description: str = ""
    files: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class EvidenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    dispute_id: str
    type: str
    description: str
    files: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: Optional[str] = None
    transaction_id: str
    amount: int
    currency: str
    reason: str
    status: DisputeStatus
    due_by: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    provider_name: Optional[str] = None
    provider_dispute_id: Optional[str] = None
    evidence: list[EvidenceResponse] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class DisputeStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int = 0
    open: int = 0
    under_review: int = 0
    won: int = 0
    lost: int = 0
    canceled: int = 0
    amount_at_risk: int = 0

"""
争议领域实体 - 争议聚合根与证据

状态机：
    open         -> under_review, canceled
    under_review -> won, lost
won / lost / canceled 为终态；仅 open、under_review 状态可提交证据。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    InvalidDisputeStateException,
    InvalidEvidenceException,
    InvalidStatusTransitionException,
)
from domain.common.timestamps import ensure_utc, new_id, touch, utcnow


class DisputeStatus(str, Enum):
    """争议状态枚举"""
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    WON = "won"
    LOST = "lost"
    CANCELED = "canceled"


DISPUTE_TRANSITIONS: dict[DisputeStatus, frozenset[DisputeStatus]] = {
    DisputeStatus.OPEN: frozenset({DisputeStatus.UNDER_REVIEW, DisputeStatus.CANCELED}),
    DisputeStatus.UNDER_REVIEW: frozenset({DisputeStatus.WON, DisputeStatus.LOST}),
    DisputeStatus.WON: frozenset(),
    DisputeStatus.LOST: frozenset(),
    DisputeStatus.CANCELED: frozenset(),
}

TERMINAL_STATUSES = frozenset({DisputeStatus.WON, DisputeStatus.LOST, DisputeStatus.CANCELED})
EVIDENCE_ACCEPTING_STATUSES = frozenset({DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW})


@dataclass
class Evidence:
    """争议证据"""

    dispute_id: str
    type: str
    description: str
    id: str = field(default_factory=new_id)
    files: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not (self.type or "").strip():
            raise InvalidEvidenceException("type")
        if not (self.description or "").strip():
            raise InvalidEvidenceException("description")
        self.created_at = ensure_utc(self.created_at) or utcnow()
        self.updated_at = ensure_utc(self.updated_at) or self.created_at
        if self.files is None:
            self.files = []
        if self.metadata is None:
            self.metadata = {}


@dataclass
class Dispute:
    """
    争议聚合根

    业务规则：
    1. 交易ID与原因不能为空
    2. 状态转换必须遵循 DISPUTE_TRANSITIONS
    3. 进入终态时记录 closed_at
    """

    transaction_id: str
    reason: str
    amount: int
    currency: str
    customer_id: Optional[str] = None
    status: DisputeStatus = DisputeStatus.OPEN
    id: str = field(default_factory=new_id)
    due_by: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    provider_name: Optional[str] = None
    provider_dispute_id: Optional[str] = None
    evidence: list[Evidence] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not (self.transaction_id or "").strip():
            raise DomainValidationException("交易ID不能为空", field="transaction_id")
        if not (self.reason or "").strip():
            raise DomainValidationException("争议原因不能为空", field="reason")
        if self.amount is None or self.amount < 0:
            raise DomainValidationException(f"争议金额不能为负: {self.amount}", field="amount")
        self.currency = (self.currency or "").upper()
        self.status = DisputeStatus(self.status)
        self.due_by = ensure_utc(self.due_by)
        self.closed_at = ensure_utc(self.closed_at)
        self.created_at = ensure_utc(self.created_at) or utcnow()
        self.updated_at = ensure_utc(self.updated_at) or self.created_at
        if self.metadata is None:
            self.metadata = {}
        if self.evidence is None:
            self.evidence = []

    def can_transition_to(self, target: DisputeStatus | str) -> bool:
        return DisputeStatus(target) in DISPUTE_TRANSITIONS[self.status]

    def ensure_transition(self, target: DisputeStatus | str) -> DisputeStatus:
        """校验状态转换是否合法，不修改实体"""
        try:
            requested = DisputeStatus(target)
        except ValueError:
            raise InvalidStatusTransitionException(self.status.value, str(target))
        if not self.can_transition_to(requested):
            raise InvalidStatusTransitionException(self.status.value, requested.value)
        return requested

    def transition_to(self, target: DisputeStatus | str) -> None:
        requested = self.ensure_transition(target)
        self.status = requested
        if requested in TERMINAL_STATUSES:
            self.closed_at = utcnow()
        touch(self)

    def accepts_evidence(self) -> bool:
        return self.status in EVIDENCE_ACCEPTING_STATUSES

    def ensure_accepts_evidence(self) -> None:
        if not self.accepts_evidence():
            raise InvalidDisputeStateException(self.id, self.status.value)

    def add_evidence(self, evidence: Evidence) -> None:
        self.ensure_accepts_evidence()
        self.evidence.append(evidence)
        touch(self)

    def update_metadata(self, metadata: dict) -> None:
        self.metadata = dict(metadata)
        touch(self)

    def is_closed(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass
class DisputeStats:
    """争议统计"""
    total: int = 0
    open: int = 0
    under_review: int = 0
    won: int = 0
    lost: int = 0
    canceled: int = 0
    amount_at_risk: int = 0

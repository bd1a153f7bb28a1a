"""Dispute domain exports."""
from .entity import (
    Dispute,
    DisputeStats,
    DisputeStatus,
    Evidence,
    DISPUTE_TRANSITIONS,
    TERMINAL_STATUSES,
    EVIDENCE_ACCEPTING_STATUSES,
)
from .repository import DisputeRepository

__all__ = [
    "Dispute",
    "DisputeStats",
    "DisputeStatus",
    "Evidence",
    "DISPUTE_TRANSITIONS",
    "TERMINAL_STATUSES",
    "EVIDENCE_ACCEPTING_STATUSES",
    "DisputeRepository",
]

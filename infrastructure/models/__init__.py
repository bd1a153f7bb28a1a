"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment import PaymentModel, RefundModel
from .subscription import PlanModel, SubscriptionModel
from .dispute import DisputeModel, EvidenceModel

__all__ = [
    "Base",
    "metadata",
    "PaymentModel",
    "RefundModel",
    "PlanModel",
    "SubscriptionModel",
    "DisputeModel",
    "EvidenceModel",
]

"""Payment domain exports."""
from .entity import Payment, Refund, PaymentStatus, RefundStatus
from .repository import PaymentRepository, RefundRepository

__all__ = [
    "Payment",
    "Refund",
    "PaymentStatus",
    "RefundStatus",
    "PaymentRepository",
    "RefundRepository",
]

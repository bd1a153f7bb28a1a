"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    OPERATION_NOT_SUPPORTED = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004


# Provider→internal status mapping, keyed by entity kind
PROVIDER_STATUS_TO_INTERNAL = {
    "stripe": {
        "charge": {
            "succeeded": "succeeded",
            "pending": "pending",
            "failed": "failed",
        },
        "refund": {
            "succeeded": "succeeded",
            "pending": "pending",
            "requires_action": "pending",
            "failed": "failed",
            "canceled": "failed",
        },
        "subscription": {
            "active": "active",
            "trialing": "trialing",
            "past_due": "past_due",
            "unpaid": "past_due",
            "incomplete": "past_due",
            "paused": "paused",
            "canceled": "canceled",
            "incomplete_expired": "canceled",
        },
        "dispute": {
            "warning_needs_response": "open",
            "needs_response": "open",
            "warning_under_review": "under_review",
            "under_review": "under_review",
            "won": "won",
            "lost": "lost",
            "warning_closed": "canceled",
        },
    },
    "xendit": {
        "charge": {
            "CAPTURED": "succeeded",
            "AUTHORIZED": "pending",
            "FAILED": "failed",
        },
        "refund": {
            "REQUESTED": "pending",
            "SUCCEEDED": "succeeded",
            "FAILED": "failed",
        },
        "subscription": {
            "ACTIVE": "active",
            "PAUSED": "paused",
            "STOPPED": "canceled",
        },
    },
}

"""Subscription domain exports."""
from .entity import Plan, Subscription, BillingPeriod, PricingType, SubscriptionStatus
from .repository import PlanRepository, SubscriptionRepository

__all__ = [
    "Plan",
    "Subscription",
    "BillingPeriod",
    "PricingType",
    "SubscriptionStatus",
    "PlanRepository",
    "SubscriptionRepository",
]

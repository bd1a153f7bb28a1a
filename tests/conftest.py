"""Pytest bootstrap configuration.

Point settings at an in-memory SQLite ledger and keep real provider
credentials out of the environment before application modules import.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEBUG", "false")
os.environ.pop("PAYMENT__STRIPE__SECRET_KEY", None)
os.environ.pop("PAYMENT__XENDIT__SECRET_KEY", None)

import pytest

from application.services.dispute_service import DisputeOrchestrator
from application.services.payment_service import PaymentOrchestrator
from application.services.provider_registry import ProviderRegistry
from application.services.subscription_service import SubscriptionOrchestrator
from tests.fakes import FakeProvider, InMemoryLedger


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def stripe_fake() -> FakeProvider:
    return FakeProvider("stripe")


@pytest.fixture
def registry(stripe_fake) -> ProviderRegistry:
    return ProviderRegistry([stripe_fake], availability_timeout=0.05)


@pytest.fixture
def payments(registry, ledger) -> PaymentOrchestrator:
    return PaymentOrchestrator(registry, ledger.uow_factory, call_timeout=0.2)


@pytest.fixture
def subscriptions(registry, ledger) -> SubscriptionOrchestrator:
    return SubscriptionOrchestrator(registry, ledger.uow_factory, call_timeout=0.2)


@pytest.fixture
def disputes(registry, ledger) -> DisputeOrchestrator:
    return DisputeOrchestrator(registry, ledger.uow_factory, call_timeout=0.2)

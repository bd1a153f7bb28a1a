"""Orchestrators over the SQLAlchemy ledger (sqlite+aiosqlite, in memory)."""
from functools import partial

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import create_async_engine

from application.dtos.disputes import CreateDisputeRequest, SubmitEvidenceRequest, UpdateDisputeRequest
from application.dtos.payments import ChargeRequest, RefundRequest
from application.dtos.subscriptions import CreatePlanRequest, CreateSubscriptionRequest
from application.services.dispute_service import DisputeOrchestrator
from application.services.payment_service import PaymentOrchestrator
from application.services.provider_registry import ProviderRegistry
from application.services.subscription_service import SubscriptionOrchestrator
from domain.common.exceptions import PersistenceException, PlanNotFoundException
from domain.dispute.entity import DisputeStatus
from domain.payment.entity import Payment, PaymentStatus
from domain.subscription.entity import BillingPeriod
from infrastructure.database import build_session_factory, create_tables, drop_tables
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from tests.fakes import FakeProvider


@pytest_asyncio.fixture
async def uow_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield partial(SQLAlchemyUnitOfWork, build_session_factory(engine))
    await drop_tables(engine)
    await engine.dispose()


@pytest.fixture
def provider_registry():
    return ProviderRegistry([FakeProvider("stripe")])


@pytest.mark.asyncio
async def test_charge_and_refund_roundtrip(uow_factory, provider_registry):
    svc = PaymentOrchestrator(provider_registry, uow_factory)
    payment = await svc.create_charge(
        ChargeRequest(customer_id="cus_1", amount=1000, currency="USD", payment_method="tok", metadata={"order": "o1"})
    )
    assert payment.status == PaymentStatus.SUCCEEDED

    await svc.create_refund(RefundRequest(payment_id=payment.id, amount=400, currency="USD"))
    assert (await svc.get_payment(payment.id)).status == PaymentStatus.SUCCEEDED
    await svc.create_refund(RefundRequest(payment_id=payment.id, amount=600, currency="USD"))

    stored = await svc.get_payment(payment.id)
    assert stored.status == PaymentStatus.REFUNDED
    assert stored.metadata == {"order": "o1"}
    assert len(await svc.list_refunds(payment.id)) == 2
    assert [p.id for p in await svc.list_payments("cus_1")] == [payment.id]


@pytest.mark.asyncio
async def test_statement_error_becomes_persistence_exception(uow_factory):
    payment = Payment(customer_id="c", amount=10, currency="USD", payment_method="tok")
    async with uow_factory() as uow:
        await uow.payment_repository.create(payment)

    with pytest.raises(PersistenceException):
        async with uow_factory() as uow:
            # Duplicate primary key
            await uow.payment_repository.create(payment)

    async with uow_factory(readonly=True) as uow:
        assert (await uow.payment_repository.get_by_id(payment.id)) is not None


@pytest.mark.asyncio
async def test_plan_soft_delete_and_subscription(uow_factory, provider_registry):
    svc = SubscriptionOrchestrator(provider_registry, uow_factory)
    plan = await svc.create_plan(
        CreatePlanRequest(name="Pro", amount=1500, currency="USD", billing_period=BillingPeriod.MONTHLY, features=["a"])
    )
    sub = await svc.create_subscription(CreateSubscriptionRequest(customer_id="cus_1", plan_id=plan.id, trial_days=3))
    assert sub.trial_end is not None
    assert (await svc.get_subscription(sub.id)).plan_id == plan.id

    canceled = await svc.cancel_subscription(sub.id)
    assert canceled.canceled_at is not None

    await svc.delete_plan(plan.id)
    with pytest.raises(PlanNotFoundException):
        await svc.get_plan(plan.id)


@pytest.mark.asyncio
async def test_dispute_with_evidence_and_stats(uow_factory, provider_registry):
    svc = DisputeOrchestrator(provider_registry, uow_factory)
    d = await svc.create_dispute(
        CreateDisputeRequest(transaction_id="tx_1", reason="fraudulent", amount=5000, currency="USD", customer_id="cus_1")
    )
    await svc.submit_evidence(d.id, SubmitEvidenceRequest(type="receipt", description="signed"))
    await svc.update_dispute(d.id, UpdateDisputeRequest(status="under_review"))

    fetched = await svc.get_dispute(d.id)
    assert fetched.status == DisputeStatus.UNDER_REVIEW
    assert [e.type for e in fetched.evidence] == ["receipt"]
    assert fetched == await svc.get_dispute(d.id)

    stats = await svc.get_dispute_stats()
    assert stats.total == 1
    assert stats.under_review == 1
    assert stats.amount_at_risk == 5000

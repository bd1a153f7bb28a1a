from datetime import timedelta

import pytest

from application.dtos.disputes import CreateDisputeRequest, SubmitEvidenceRequest, UpdateDisputeRequest
from application.services.dispute_service import DisputeOrchestrator
from application.services.provider_registry import ProviderRegistry
from domain.common.exceptions import (
    DisputeNotFoundException,
    DomainValidationException,
    InvalidDisputeStateException,
    InvalidEvidenceException,
    InvalidStatusTransitionException,
    LedgerInconsistencyException,
)
from domain.common.timestamps import utcnow
from domain.dispute.entity import DisputeStatus
from tests.fakes import FakeProvider


def _dispute_req(**kw) -> CreateDisputeRequest:
    data = dict(
        transaction_id="tx_1",
        reason="fraudulent",
        amount=5000,
        currency="USD",
        customer_id="cus_1",
        due_by=utcnow() + timedelta(days=7),
    )
    data.update(kw)
    return CreateDisputeRequest(**data)


@pytest.mark.asyncio
async def test_dispute_lifecycle_open_review_won(disputes, ledger):
    created = await disputes.create_dispute(_dispute_req())
    assert created.status == DisputeStatus.OPEN
    assert created.amount == 5000
    assert created.currency == "USD"
    assert created.provider_name == "stripe"
    assert created.provider_dispute_id

    reviewing = await disputes.update_dispute(created.id, UpdateDisputeRequest(status="under_review"))
    assert reviewing.status == DisputeStatus.UNDER_REVIEW
    assert reviewing.closed_at is None

    won = await disputes.update_dispute(created.id, UpdateDisputeRequest(status="won"))
    assert won.status == DisputeStatus.WON
    assert won.closed_at is not None
    assert ledger.state.disputes[created.id].status == DisputeStatus.WON


@pytest.mark.asyncio
async def test_under_review_to_lost(disputes):
    d = await disputes.create_dispute(_dispute_req())
    await disputes.update_dispute(d.id, UpdateDisputeRequest(status="under_review"))
    lost = await disputes.update_dispute(d.id, UpdateDisputeRequest(status="lost"))
    assert lost.status == DisputeStatus.LOST


@pytest.mark.asyncio
@pytest.mark.parametrize("target", ["won", "lost", "bogus"])
async def test_illegal_transition_from_open_never_reaches_provider(disputes, stripe_fake, target):
    d = await disputes.create_dispute(_dispute_req())
    with pytest.raises(InvalidStatusTransitionException):
        await disputes.update_dispute(d.id, UpdateDisputeRequest(status=target))
    assert "update_dispute" not in stripe_fake.operations()
    assert (await disputes.get_dispute(d.id)).status == DisputeStatus.OPEN


@pytest.mark.asyncio
async def test_terminal_state_is_final(disputes):
    d = await disputes.create_dispute(_dispute_req())
    await disputes.update_dispute(d.id, UpdateDisputeRequest(status="under_review"))
    await disputes.update_dispute(d.id, UpdateDisputeRequest(status="won"))

    with pytest.raises(InvalidStatusTransitionException):
        await disputes.update_dispute(d.id, UpdateDisputeRequest(status="lost"))


@pytest.mark.asyncio
async def test_open_can_be_canceled(disputes):
    d = await disputes.create_dispute(_dispute_req())
    canceled = await disputes.update_dispute(d.id, UpdateDisputeRequest(status="canceled"))
    assert canceled.status == DisputeStatus.CANCELED
    assert canceled.closed_at is not None


@pytest.mark.asyncio
async def test_same_status_update_only_changes_metadata(disputes, stripe_fake):
    d = await disputes.create_dispute(_dispute_req())
    updated = await disputes.update_dispute(d.id, UpdateDisputeRequest(status="open", metadata={"note": "x"}))
    assert updated.status == DisputeStatus.OPEN
    assert updated.metadata == {"note": "x"}
    sent = stripe_fake.calls[-1][1]
    assert sent.status is None


@pytest.mark.asyncio
async def test_create_validation(disputes, stripe_fake):
    with pytest.raises(DomainValidationException):
        await disputes.create_dispute(_dispute_req(transaction_id=""))
    with pytest.raises(DomainValidationException):
        await disputes.create_dispute(_dispute_req(reason=" "))
    assert stripe_fake.calls == []


@pytest.mark.asyncio
async def test_evidence_on_open_dispute(disputes, ledger):
    d = await disputes.create_dispute(_dispute_req())
    ev = await disputes.submit_evidence(
        d.id, SubmitEvidenceRequest(type="receipt", description="signed receipt", files=["file_1"])
    )
    assert ev.dispute_id == d.id
    assert ev.files == ["file_1"]

    fetched = await disputes.get_dispute(d.id)
    assert [e.id for e in fetched.evidence] == [ev.id]


@pytest.mark.asyncio
async def test_evidence_on_won_dispute_is_rejected(disputes, stripe_fake):
    d = await disputes.create_dispute(_dispute_req())
    await disputes.update_dispute(d.id, UpdateDisputeRequest(status="under_review"))
    await disputes.update_dispute(d.id, UpdateDisputeRequest(status="won"))

    with pytest.raises(InvalidDisputeStateException):
        await disputes.submit_evidence(d.id, SubmitEvidenceRequest(type="receipt", description="late"))
    assert "submit_dispute_evidence" not in stripe_fake.operations()


@pytest.mark.asyncio
async def test_empty_evidence_is_rejected_before_lookup(disputes, stripe_fake):
    d = await disputes.create_dispute(_dispute_req())
    with pytest.raises(InvalidEvidenceException) as ei:
        await disputes.submit_evidence(d.id, SubmitEvidenceRequest(type="receipt", description=""))
    assert ei.value.field == "description"

    # Validation happens before the lookup, so a missing dispute still reports the evidence error
    with pytest.raises(InvalidEvidenceException):
        await disputes.submit_evidence("missing", SubmitEvidenceRequest(type="", description="x"))
    assert "submit_dispute_evidence" not in stripe_fake.operations()


@pytest.mark.asyncio
async def test_get_dispute_is_idempotent(disputes):
    d = await disputes.create_dispute(_dispute_req())
    await disputes.submit_evidence(d.id, SubmitEvidenceRequest(type="receipt", description="r"))

    first = await disputes.get_dispute(d.id)
    second = await disputes.get_dispute(d.id)
    assert first.model_dump_json() == second.model_dump_json()


@pytest.mark.asyncio
async def test_missing_dispute(disputes):
    with pytest.raises(DisputeNotFoundException):
        await disputes.get_dispute("nope")
    with pytest.raises(DisputeNotFoundException):
        await disputes.update_dispute("nope", UpdateDisputeRequest(status="won"))


@pytest.mark.asyncio
async def test_updates_pinned_to_dispute_provider(ledger):
    stripe = FakeProvider("stripe")
    xendit = FakeProvider("xendit")
    svc = DisputeOrchestrator(ProviderRegistry([stripe, xendit], availability_timeout=0.05), ledger.uow_factory)
    d = await svc.create_dispute(_dispute_req())

    stripe.available = False
    await svc.update_dispute(d.id, UpdateDisputeRequest(status="under_review"))
    await svc.submit_evidence(d.id, SubmitEvidenceRequest(type="log", description="access log"))
    assert stripe.operations() == ["create_dispute", "update_dispute", "submit_dispute_evidence"]
    assert xendit.calls == []


@pytest.mark.asyncio
async def test_stats_and_listing(disputes):
    a = await disputes.create_dispute(_dispute_req(amount=100))
    b = await disputes.create_dispute(_dispute_req(amount=200))
    c = await disputes.create_dispute(_dispute_req(amount=400, customer_id="cus_2"))
    await disputes.update_dispute(b.id, UpdateDisputeRequest(status="under_review"))
    await disputes.update_dispute(c.id, UpdateDisputeRequest(status="canceled"))

    stats = await disputes.get_dispute_stats()
    assert stats.total == 3
    assert stats.open == 1
    assert stats.under_review == 1
    assert stats.canceled == 1
    assert stats.amount_at_risk == 300

    listed = await disputes.list_disputes("cus_1")
    assert {d.id for d in listed} == {a.id, b.id}


@pytest.mark.asyncio
async def test_transition_persist_failure_surfaces_inconsistency(disputes, ledger):
    d = await disputes.create_dispute(_dispute_req())
    ledger.fail_from_commit(ledger.commits + 1)

    with pytest.raises(LedgerInconsistencyException) as ei:
        await disputes.update_dispute(d.id, UpdateDisputeRequest(status="under_review"))
    assert ei.value.details["entity"] == "dispute"
    assert ledger.state.disputes[d.id].status == DisputeStatus.OPEN

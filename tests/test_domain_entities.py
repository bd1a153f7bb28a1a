import pytest

from domain.common.exceptions import (
    DomainValidationException,
    InvalidDisputeStateException,
    InvalidEvidenceException,
    InvalidStatusTransitionException,
    PaymentNotFoundException,
    ProviderNotRegisteredException,
)
from domain.dispute.entity import DISPUTE_TRANSITIONS, Dispute, DisputeStatus, Evidence
from domain.payment.entity import Payment, PaymentStatus, Refund
from domain.subscription.entity import BillingPeriod, Plan, Subscription, SubscriptionStatus


def _dispute(**kw) -> Dispute:
    data = dict(transaction_id="tx_1", reason="fraudulent", amount=5000, currency="usd")
    data.update(kw)
    return Dispute(**data)


def test_every_pair_of_dispute_states_follows_the_table():
    for source in DisputeStatus:
        for target in DisputeStatus:
            dispute = _dispute(status=source)
            if target in DISPUTE_TRANSITIONS[source]:
                dispute.transition_to(target)
                assert dispute.status == target
            else:
                with pytest.raises(InvalidStatusTransitionException):
                    dispute.transition_to(target)
                assert dispute.status == source


def test_dispute_defaults_and_closing():
    dispute = _dispute()
    assert dispute.status == DisputeStatus.OPEN
    assert dispute.currency == "USD"
    assert dispute.closed_at is None
    dispute.transition_to("canceled")
    assert dispute.is_closed()
    assert dispute.closed_at is not None


def test_evidence_only_on_open_or_under_review():
    dispute = _dispute(status=DisputeStatus.LOST)
    with pytest.raises(InvalidDisputeStateException):
        dispute.add_evidence(Evidence(dispute_id=dispute.id, type="receipt", description="r"))


def test_evidence_requires_type_and_description():
    with pytest.raises(InvalidEvidenceException):
        Evidence(dispute_id="d", type="", description="x")
    with pytest.raises(InvalidEvidenceException):
        Evidence(dispute_id="d", type="receipt", description="  ")


def test_payment_invariants():
    with pytest.raises(DomainValidationException):
        Payment(customer_id="c", amount=0, currency="USD", payment_method="tok")
    with pytest.raises(DomainValidationException):
        Payment(customer_id="c", amount=10, currency="US", payment_method="tok")

    payment = Payment(customer_id="c", amount=10, currency="usd", payment_method="tok")
    assert payment.status == PaymentStatus.PENDING
    assert payment.created_at == payment.updated_at
    with pytest.raises(DomainValidationException):
        payment.mark_succeeded("stripe", "")
    payment.mark_succeeded("stripe", "ch_1")
    assert payment.updated_at > payment.created_at
    assert payment.is_refundable()
    with pytest.raises(DomainValidationException):
        payment.mark_failed("late")


def test_refund_requires_positive_amount():
    with pytest.raises(DomainValidationException):
        Refund(payment_id="p", amount=0, currency="USD")


def test_plan_and_subscription_validation():
    with pytest.raises(DomainValidationException):
        Plan(name="p", amount=1, currency="USD", billing_period=BillingPeriod.MONTHLY, trial_days=-1)
    plan = Plan(name="p", amount=0, currency="eur", billing_period="yearly")
    assert plan.currency == "EUR"
    assert plan.billing_period == BillingPeriod.YEARLY

    sub = Subscription(customer_id="c", plan_id=plan.id, status="past_due")
    assert sub.status == SubscriptionStatus.PAST_DUE
    # Any provider-reported status is accepted
    sub.sync_from_provider(status=SubscriptionStatus.ACTIVE, quantity=3)
    assert sub.status == SubscriptionStatus.ACTIVE
    assert sub.quantity == 3


def test_error_messages_share_one_register():
    transition = InvalidStatusTransitionException("won", "open")
    assert transition.message == "争议状态不能从 won 变更为 open"
    assert transition.details == {"current": "won", "requested": "open"}

    missing = PaymentNotFoundException("pay_1")
    assert missing.message == "支付不存在: pay_1"
    assert missing.error_type == "PaymentNotFound"

    unregistered = ProviderNotRegisteredException("paypal")
    assert str(unregistered) == "支付渠道 paypal 未注册"
    assert unregistered.details == {"tried": ["paypal"]}

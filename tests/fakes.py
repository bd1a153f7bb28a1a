"""In-memory collaborators for orchestrator tests.

``InMemoryLedger`` holds committed state. Each unit of work operates on a
deep copy and publishes the rows it wrote on commit, so a failing commit
leaves the ledger untouched, as a rolled back database transaction would.
"""
from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from application.dtos.disputes import DisputeStatsResponse
from application.dtos.providers import (
    ProviderChargeRequest,
    ProviderChargeResult,
    ProviderDispute,
    ProviderDisputeRequest,
    ProviderDisputeUpdate,
    ProviderEvidence,
    ProviderEvidenceResult,
    ProviderPlan,
    ProviderRefundRequest,
    ProviderRefundResult,
    ProviderSubscription,
    ProviderSubscriptionRequest,
    ProviderSubscriptionUpdate,
)
from domain.common.exceptions import PaymentOperationNotSupported, PersistenceException
from domain.common.timestamps import utcnow
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.dispute.entity import Dispute, DisputeStats, DisputeStatus, EVIDENCE_ACCEPTING_STATUSES, Evidence
from domain.dispute.repository import DisputeRepository
from domain.payment.entity import Payment, Refund, RefundStatus
from domain.payment.repository import PaymentRepository, RefundRepository
from domain.subscription.entity import Plan, Subscription, SubscriptionStatus
from domain.subscription.repository import PlanRepository, SubscriptionRepository


@dataclass
class LedgerState:
    payments: dict = field(default_factory=dict)
    refunds: dict = field(default_factory=dict)
    plans: dict = field(default_factory=dict)
    deleted_plans: set = field(default_factory=set)
    subscriptions: dict = field(default_factory=dict)
    disputes: dict = field(default_factory=dict)
    evidence: dict = field(default_factory=dict)


class InMemoryLedger:
    def __init__(self) -> None:
        self.state = LedgerState()
        self.commits = 0
        # 1-based indexes of write commits that should fail
        self.failing_commits: set[int] = set()
        self.payment_locks: dict[str, asyncio.Lock] = {}

    def uow_factory(self, *, readonly: bool = False) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self, readonly=readonly)

    def fail_from_commit(self, index: int, count: int = 50) -> None:
        self.failing_commits.update(range(index, index + count))

    def payment_lock(self, payment_id: str) -> asyncio.Lock:
        return self.payment_locks.setdefault(payment_id, asyncio.Lock())


class _Repo:
    def __init__(self, state: LedgerState) -> None:
        self.state = state


class FakePaymentRepository(_Repo, PaymentRepository):
    def __init__(self, state: LedgerState, uow: "InMemoryUnitOfWork") -> None:
        super().__init__(state)
        self._uow = uow

    async def create(self, payment: Payment) -> Payment:
        self.state.payments[payment.id] = copy.deepcopy(payment)
        return payment

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        found = self.state.payments.get(payment_id)
        return copy.deepcopy(found) if found else None

    async def get_for_update(self, payment_id: str) -> Optional[Payment]:
        await self._uow.lock_payment(payment_id)
        found = await self.get_by_id(payment_id)
        # Row lock round trip
        await asyncio.sleep(0)
        return found

    async def list_by_customer(self, customer_id: str, skip: int = 0, limit: int = 100) -> List[Payment]:
        rows = [p for p in self.state.payments.values() if p.customer_id == customer_id]
        rows.sort(key=lambda p: p.created_at, reverse=True)
        return copy.deepcopy(rows[skip:skip + limit])

    async def update(self, payment: Payment) -> Payment:
        if payment.id not in self.state.payments:
            raise ValueError(f"Payment {payment.id} not found")
        self.state.payments[payment.id] = copy.deepcopy(payment)
        return payment


class FakeRefundRepository(_Repo, RefundRepository):
    async def create(self, refund: Refund) -> Refund:
        self.state.refunds[refund.id] = copy.deepcopy(refund)
        return refund

    async def get_by_id(self, refund_id: str) -> Optional[Refund]:
        found = self.state.refunds.get(refund_id)
        return copy.deepcopy(found) if found else None

    async def list_by_payment(self, payment_id: str, skip: int = 0, limit: int = 100) -> List[Refund]:
        rows = [r for r in self.state.refunds.values() if r.payment_id == payment_id]
        rows.sort(key=lambda r: r.created_at)
        return copy.deepcopy(rows[skip:skip + limit])

    async def update(self, refund: Refund) -> Refund:
        self.state.refunds[refund.id] = copy.deepcopy(refund)
        return refund

    async def sum_amount(
        self,
        payment_id: str,
        statuses: Iterable[RefundStatus] = (RefundStatus.SUCCEEDED,),
    ) -> int:
        wanted = set(statuses)
        return sum(
            r.amount for r in self.state.refunds.values()
            if r.payment_id == payment_id and r.status in wanted
        )


class FakePlanRepository(_Repo, PlanRepository):
    async def create(self, plan: Plan) -> Plan:
        self.state.plans[plan.id] = copy.deepcopy(plan)
        return plan

    async def get_by_id(self, plan_id: str) -> Optional[Plan]:
        if plan_id in self.state.deleted_plans:
            return None
        found = self.state.plans.get(plan_id)
        return copy.deepcopy(found) if found else None

    async def list(self, skip: int = 0, limit: int = 100) -> List[Plan]:
        rows = [p for pid, p in self.state.plans.items() if pid not in self.state.deleted_plans]
        return copy.deepcopy(rows[skip:skip + limit])

    async def update(self, plan: Plan) -> Plan:
        self.state.plans[plan.id] = copy.deepcopy(plan)
        return plan

    async def delete(self, plan_id: str) -> bool:
        if plan_id not in self.state.plans or plan_id in self.state.deleted_plans:
            return False
        self.state.plans[plan_id].deactivate()
        self.state.deleted_plans.add(plan_id)
        return True


class FakeSubscriptionRepository(_Repo, SubscriptionRepository):
    async def create(self, subscription: Subscription) -> Subscription:
        self.state.subscriptions[subscription.id] = copy.deepcopy(subscription)
        return subscription

    async def get_by_id(self, subscription_id: str) -> Optional[Subscription]:
        found = self.state.subscriptions.get(subscription_id)
        return copy.deepcopy(found) if found else None

    async def list_by_customer(self, customer_id: str, skip: int = 0, limit: int = 100) -> List[Subscription]:
        rows = [s for s in self.state.subscriptions.values() if s.customer_id == customer_id]
        return copy.deepcopy(rows[skip:skip + limit])

    async def update(self, subscription: Subscription) -> Subscription:
        self.state.subscriptions[subscription.id] = copy.deepcopy(subscription)
        return subscription


class FakeDisputeRepository(_Repo, DisputeRepository):
    def _with_evidence(self, dispute: Dispute) -> Dispute:
        found = copy.deepcopy(dispute)
        found.evidence = [copy.deepcopy(e) for e in self.state.evidence.values() if e.dispute_id == dispute.id]
        return found

    async def create(self, dispute: Dispute) -> Dispute:
        stored = copy.deepcopy(dispute)
        stored.evidence = []
        self.state.disputes[dispute.id] = stored
        return dispute

    async def get_by_id(self, dispute_id: str) -> Optional[Dispute]:
        found = self.state.disputes.get(dispute_id)
        return self._with_evidence(found) if found else None

    async def list_by_customer(self, customer_id: str, skip: int = 0, limit: int = 100) -> List[Dispute]:
        rows = [d for d in self.state.disputes.values() if d.customer_id == customer_id]
        return [self._with_evidence(d) for d in rows[skip:skip + limit]]

    async def update(self, dispute: Dispute) -> Dispute:
        stored = copy.deepcopy(dispute)
        stored.evidence = []
        self.state.disputes[dispute.id] = stored
        return dispute

    async def add_evidence(self, evidence: Evidence) -> Evidence:
        self.state.evidence[evidence.id] = copy.deepcopy(evidence)
        return evidence

    async def list_evidence(self, dispute_id: str) -> List[Evidence]:
        return [copy.deepcopy(e) for e in self.state.evidence.values() if e.dispute_id == dispute_id]

    async def get_stats(self) -> DisputeStats:
        stats = DisputeStats()
        for dispute in self.state.disputes.values():
            stats.total += 1
            setattr(stats, dispute.status.value, getattr(stats, dispute.status.value) + 1)
            if dispute.status in EVIDENCE_ACCEPTING_STATUSES:
                stats.amount_at_risk += dispute.amount
        return stats


_TABLES = ("payments", "refunds", "plans", "subscriptions", "disputes", "evidence")


def _changes(base: LedgerState, working: LedgerState) -> dict:
    """Rows written in ``working`` since ``base`` was read."""
    changed: dict = {}
    for table in _TABLES:
        before = getattr(base, table)
        changed[table] = {k: v for k, v in getattr(working, table).items() if before.get(k) != v}
    changed["deleted_plans"] = working.deleted_plans - base.deleted_plans
    return changed


def _apply(state: LedgerState, changed: dict) -> None:
    for table in _TABLES:
        getattr(state, table).update(copy.deepcopy(changed[table]))
    state.deleted_plans |= changed["deleted_plans"]


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """Snapshot transaction over the ledger.

    Commits publish only the rows this unit wrote. ``get_for_update`` takes
    a per-payment lock held until the unit ends and rereads the committed
    state, like ``SELECT ... FOR UPDATE``.
    """

    def __init__(self, ledger: InMemoryLedger, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self._ledger = ledger
        self._base: Optional[LedgerState] = None
        self._working: Optional[LedgerState] = None
        self._held: list[asyncio.Lock] = []

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self._base = copy.deepcopy(self._ledger.state)
        self._working = copy.deepcopy(self._base)
        self.payment_repository = FakePaymentRepository(self._working, self)
        self.refund_repository = FakeRefundRepository(self._working)
        self.plan_repository = FakePlanRepository(self._working)
        self.subscription_repository = FakeSubscriptionRepository(self._working)
        self.dispute_repository = FakeDisputeRepository(self._working)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            while self._held:
                self._held.pop().release()

    async def lock_payment(self, payment_id: str) -> None:
        lock = self._ledger.payment_lock(payment_id)
        if lock in self._held:
            return
        await lock.acquire()
        self._held.append(lock)
        # Reread committed rows, keeping this unit's own writes on top
        pending = _changes(self._base, self._working)
        self._base = copy.deepcopy(self._ledger.state)
        fresh = copy.deepcopy(self._base)
        _apply(fresh, pending)
        self._working.__dict__.update(fresh.__dict__)

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        self._ledger.commits += 1
        if self._ledger.commits in self._ledger.failing_commits:
            raise PersistenceException("账本提交失败", details={"commit": self._ledger.commits})
        _apply(self._ledger.state, _changes(self._base, self._working))
        self._committed = True

    async def rollback(self) -> None:
        self._working = None
        self._committed = False


class FakeProvider:
    """Scriptable PaymentProvider.

    ``available`` may be a bool, an exception to raise, or ``"hang"`` to
    block past the registry probe timeout.
    """

    def __init__(
        self,
        name: str,
        *,
        available=True,
        charge_error: Optional[BaseException] = None,
        charge_result: Optional[ProviderChargeResult] = None,
        refund_error: Optional[BaseException] = None,
        refund_result: Optional[ProviderRefundResult] = None,
        delay: float = 0.0,
        supports_plans: bool = True,
    ) -> None:
        self.name = name
        self.available = available
        self.charge_error = charge_error
        self.charge_result = charge_result
        self.refund_error = refund_error
        self.refund_result = refund_result
        self.delay = delay
        self.supports_plans = supports_plans
        self.calls: list[tuple[str, object]] = []
        self.closed = False
        self._seq = 0

    def _next(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}_{self.name}_{self._seq}"

    async def _enter(self, operation: str, payload: object) -> None:
        self.calls.append((operation, payload))
        if self.delay:
            await asyncio.sleep(self.delay)

    def operations(self) -> list[str]:
        return [op for op, _ in self.calls]

    async def is_available(self) -> bool:
        if self.available == "hang":
            await asyncio.sleep(3600)
        if isinstance(self.available, BaseException):
            raise self.available
        return bool(self.available)

    async def aclose(self) -> None:
        self.closed = True

    async def charge(self, req: ProviderChargeRequest) -> ProviderChargeResult:
        await self._enter("charge", req)
        if self.charge_error is not None:
            raise self.charge_error
        if self.charge_result is not None:
            return self.charge_result
        return ProviderChargeResult(provider_charge_id=self._next("ch"), status="succeeded")

    async def refund(self, req: ProviderRefundRequest) -> ProviderRefundResult:
        await self._enter("refund", req)
        if self.refund_error is not None:
            raise self.refund_error
        if self.refund_result is not None:
            return self.refund_result
        return ProviderRefundResult(provider_refund_id=self._next("re"), status="succeeded")

    async def create_plan(self, plan: ProviderPlan) -> ProviderPlan:
        await self._enter("create_plan", plan)
        if not self.supports_plans:
            raise PaymentOperationNotSupported(provider=self.name, operation="create_plan")
        return plan.model_copy(update={"provider_plan_id": self._next("plan")})

    async def update_plan(self, provider_plan_id: str, plan: ProviderPlan) -> ProviderPlan:
        await self._enter("update_plan", (provider_plan_id, plan))
        return plan.model_copy(update={"provider_plan_id": provider_plan_id})

    async def delete_plan(self, provider_plan_id: str) -> None:
        await self._enter("delete_plan", provider_plan_id)

    async def get_plan(self, provider_plan_id: str) -> ProviderPlan:
        raise PaymentOperationNotSupported(provider=self.name, operation="get_plan")

    async def list_plans(self) -> list[ProviderPlan]:
        return []

    async def create_subscription(self, req: ProviderSubscriptionRequest) -> ProviderSubscription:
        await self._enter("create_subscription", req)
        status = SubscriptionStatus.TRIALING if req.trial_days > 0 else SubscriptionStatus.ACTIVE
        return ProviderSubscription(
            provider_subscription_id=self._next("sub"),
            status=status,
            customer_id=req.customer_id,
            provider_plan_id=req.provider_plan_id,
            quantity=req.quantity,
            current_period_start=utcnow(),
        )

    async def update_subscription(self, req: ProviderSubscriptionUpdate) -> ProviderSubscription:
        await self._enter("update_subscription", req)
        return ProviderSubscription(
            provider_subscription_id=req.provider_subscription_id,
            status=SubscriptionStatus.ACTIVE,
            provider_plan_id=req.provider_plan_id,
            quantity=req.quantity,
            cancel_at_period_end=req.cancel_at_period_end,
        )

    async def cancel_subscription(self, provider_subscription_id: str, *, at_period_end: bool = False) -> ProviderSubscription:
        await self._enter("cancel_subscription", (provider_subscription_id, at_period_end))
        return ProviderSubscription(
            provider_subscription_id=provider_subscription_id,
            status=SubscriptionStatus.ACTIVE if at_period_end else SubscriptionStatus.CANCELED,
            cancel_at_period_end=at_period_end,
        )

    async def get_subscription(self, provider_subscription_id: str) -> ProviderSubscription:
        raise PaymentOperationNotSupported(provider=self.name, operation="get_subscription")

    async def list_subscriptions(self, customer_id: str) -> list[ProviderSubscription]:
        return []

    async def create_dispute(self, req: ProviderDisputeRequest) -> ProviderDispute:
        await self._enter("create_dispute", req)
        return ProviderDispute(
            provider_dispute_id=self._next("dp"),
            status=DisputeStatus.OPEN,
            transaction_id=req.transaction_id,
            amount=req.amount,
            currency=req.currency,
            reason=req.reason,
        )

    async def update_dispute(self, req: ProviderDisputeUpdate) -> ProviderDispute:
        await self._enter("update_dispute", req)
        return ProviderDispute(
            provider_dispute_id=req.provider_dispute_id,
            status=req.status or DisputeStatus.OPEN,
            transaction_id=req.transaction_id,
        )

    async def submit_dispute_evidence(self, evidence: ProviderEvidence) -> ProviderEvidenceResult:
        await self._enter("submit_dispute_evidence", evidence)
        return ProviderEvidenceResult(accepted=True, provider_evidence_id=self._next("ev"))

    async def get_dispute(self, provider_dispute_id: str) -> ProviderDispute:
        raise PaymentOperationNotSupported(provider=self.name, operation="get_dispute")

    async def list_disputes(self, customer_id: Optional[str] = None) -> list[ProviderDispute]:
        return []

    async def get_dispute_stats(self) -> DisputeStatsResponse:
        return DisputeStatsResponse()

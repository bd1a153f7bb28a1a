"""
Application service orchestrating plan and subscription lifecycles.

Every mutating operation calls the provider first and mirrors the result
into the ledger. Follow-up operations (plan update/delete, subscription
update/cancel) are pinned to the provider recorded on the entity.
Subscription statuses are whatever the provider reports; unlike disputes,
no transition table is enforced here.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Callable, List, Optional

from application.dtos.providers import (
    ProviderPlan,
    ProviderSubscription,
    ProviderSubscriptionRequest,
    ProviderSubscriptionUpdate,
)
from application.dtos.subscriptions import (
    CreatePlanRequest,
    CreateSubscriptionRequest,
    PlanResponse,
    SubscriptionResponse,
    UpdatePlanRequest,
    UpdateSubscriptionRequest,
)
from application.ports.payment_provider import PaymentProvider
from application.services.base import ProviderCallMixin, ReconciliationHook
from application.services.provider_registry import ProviderRegistry
from core.logging_config import get_logger
from domain.common.exceptions import (
    DomainValidationException,
    PersistenceException,
    PlanNotFoundException,
    SubscriptionNotFoundException,
)
from domain.common.timestamps import utcnow
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.subscription.entity import Plan, Subscription, SubscriptionStatus


logger = get_logger(__name__)


def _to_provider_plan(plan: Plan) -> ProviderPlan:
    return ProviderPlan(
        name=plan.name,
        amount=plan.amount,
        currency=plan.currency,
        billing_period=plan.billing_period,
        pricing_type=plan.pricing_type,
        trial_days=plan.trial_days,
        description=plan.description,
        features=list(plan.features),
        active=plan.active,
        metadata=dict(plan.metadata),
        provider_plan_id=plan.provider_plan_id,
    )


def _from_provider_plan(result: ProviderPlan) -> Plan:
    return Plan(
        name=result.name,
        amount=result.amount,
        currency=result.currency,
        billing_period=result.billing_period,
        pricing_type=result.pricing_type,
        trial_days=result.trial_days,
        description=result.description,
        features=list(result.features),
        active=result.active,
        metadata=dict(result.metadata),
        provider_plan_id=result.provider_plan_id,
    )


class SubscriptionOrchestrator(ProviderCallMixin):
    def __init__(
        self,
        registry: ProviderRegistry,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        call_timeout: float = 30.0,
        reconciliation_hook: Optional[ReconciliationHook] = None,
    ) -> None:
        self._registry = registry
        self._uow_factory = uow_factory
        self._call_timeout = call_timeout
        self._reconciliation_hook = reconciliation_hook

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------
    async def create_plan(self, req: CreatePlanRequest) -> PlanResponse:
        plan = Plan(
            name=(req.name or "").strip(),
            amount=req.amount,
            currency=req.currency,
            billing_period=req.billing_period,
            pricing_type=req.pricing_type,
            trial_days=req.trial_days,
            description=req.description,
            features=list(req.features),
            metadata=dict(req.metadata),
        )
        provider = await self._registry.select_available()
        result = await self._call_provider(provider, "create_plan", provider.create_plan(_to_provider_plan(plan)))
        plan.provider_name = provider.name
        plan.provider_plan_id = result.provider_plan_id

        await self._save_plan(plan, provider, created=True)
        logger.info("plan_created", plan_id=plan.id, provider=provider.name, provider_plan_id=plan.provider_plan_id)
        return PlanResponse.model_validate(plan)

    async def update_plan(self, plan_id: str, req: UpdatePlanRequest) -> PlanResponse:
        plan = await self._load_plan(plan_id)
        changes = req.model_dump(exclude_none=True)
        # Validate the merged plan before touching the provider
        candidate = Plan(
            name=changes.get("name", plan.name),
            amount=changes.get("amount", plan.amount),
            currency=changes.get("currency", plan.currency),
            billing_period=changes.get("billing_period", plan.billing_period),
            pricing_type=changes.get("pricing_type", plan.pricing_type),
            trial_days=changes.get("trial_days", plan.trial_days),
            description=changes.get("description", plan.description),
            features=changes.get("features", plan.features),
            active=changes.get("active", plan.active),
            metadata=changes.get("metadata", plan.metadata),
            provider_plan_id=plan.provider_plan_id,
        )

        provider = self._registry.get(plan.provider_name)
        result = await self._call_provider(
            provider,
            "update_plan",
            provider.update_plan(plan.provider_plan_id or plan.id, _to_provider_plan(candidate)),
        )
        plan.apply(_from_provider_plan(result))

        await self._save_plan(plan, provider)
        logger.info("plan_updated", plan_id=plan.id, provider=provider.name)
        return PlanResponse.model_validate(plan)

    async def delete_plan(self, plan_id: str) -> None:
        plan = await self._load_plan(plan_id)
        provider = self._registry.get(plan.provider_name)
        await self._call_provider(provider, "delete_plan", provider.delete_plan(plan.provider_plan_id or plan.id))
        try:
            async with self._uow_factory() as uow:
                await uow.plan_repository.delete(plan.id)
        except PersistenceException as persist_exc:
            inconsistency = await self._ledger_inconsistent(
                entity="plan",
                entity_id=plan.id,
                provider_name=provider.name,
                provider_ref=plan.provider_plan_id,
                provider_error=None,
                persistence_error=persist_exc,
            )
            raise inconsistency from persist_exc
        logger.info("plan_deleted", plan_id=plan.id, provider=provider.name)

    async def get_plan(self, plan_id: str) -> PlanResponse:
        return PlanResponse.model_validate(await self._load_plan(plan_id))

    async def list_plans(self, skip: int = 0, limit: int = 100) -> List[PlanResponse]:
        async with self._uow_factory(readonly=True) as uow:
            plans = await uow.plan_repository.list(skip=skip, limit=limit)
        return [PlanResponse.model_validate(p) for p in plans]

    async def _load_plan(self, plan_id: str) -> Plan:
        async with self._uow_factory(readonly=True) as uow:
            plan = await uow.plan_repository.get_by_id(plan_id)
        if plan is None:
            raise PlanNotFoundException(plan_id)
        return plan

    async def _save_plan(self, plan: Plan, provider: PaymentProvider, *, created: bool = False) -> None:
        try:
            async with self._uow_factory() as uow:
                if created:
                    await uow.plan_repository.create(plan)
                else:
                    await uow.plan_repository.update(plan)
        except PersistenceException as persist_exc:
            inconsistency = await self._ledger_inconsistent(
                entity="plan",
                entity_id=plan.id,
                provider_name=provider.name,
                provider_ref=plan.provider_plan_id,
                provider_error=None,
                persistence_error=persist_exc,
            )
            raise inconsistency from persist_exc

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    async def create_subscription(self, req: CreateSubscriptionRequest) -> SubscriptionResponse:
        if not (req.customer_id or "").strip():
            raise DomainValidationException("客户ID不能为空", field="customer_id")
        if req.quantity is None or req.quantity <= 0:
            raise DomainValidationException(f"订阅数量必须大于0: {req.quantity}", field="quantity")
        if req.trial_days is not None and req.trial_days < 0:
            raise DomainValidationException(f"试用天数不能为负: {req.trial_days}", field="trial_days")

        plan = await self._load_plan(req.plan_id)
        trial_days = req.trial_days if req.trial_days is not None else plan.trial_days

        provider = await self._registry.select_available()
        result = await self._call_provider(
            provider,
            "create_subscription",
            provider.create_subscription(
                ProviderSubscriptionRequest(
                    customer_id=req.customer_id,
                    plan_id=plan.id,
                    # A provider-side plan id only means something to the provider that owns it
                    provider_plan_id=plan.provider_plan_id if plan.provider_name == provider.name else None,
                    amount=plan.amount,
                    currency=plan.currency,
                    billing_period=plan.billing_period,
                    quantity=req.quantity,
                    payment_method_id=req.payment_method_id,
                    trial_days=trial_days,
                    metadata=dict(req.metadata),
                )
            ),
        )

        trial_start, trial_end = result.trial_start, result.trial_end
        if trial_days > 0 and trial_end is None:
            trial_start = trial_start or utcnow()
            trial_end = trial_start + timedelta(days=trial_days)

        subscription = Subscription(
            customer_id=req.customer_id,
            plan_id=plan.id,
            status=result.status,
            quantity=result.quantity or req.quantity,
            payment_method_id=req.payment_method_id,
            current_period_start=result.current_period_start,
            current_period_end=result.current_period_end,
            trial_start=trial_start,
            trial_end=trial_end,
            cancel_at_period_end=bool(result.cancel_at_period_end),
            provider_name=provider.name,
            provider_subscription_id=result.provider_subscription_id,
            metadata=dict(req.metadata),
        )
        await self._save_subscription(subscription, provider, created=True)
        logger.info(
            "subscription_created",
            subscription_id=subscription.id,
            plan_id=plan.id,
            provider=provider.name,
            status=subscription.status.value,
            trial_days=trial_days,
        )
        return SubscriptionResponse.model_validate(subscription)

    async def update_subscription(self, subscription_id: str, req: UpdateSubscriptionRequest) -> SubscriptionResponse:
        if req.quantity is not None and req.quantity <= 0:
            raise DomainValidationException(f"订阅数量必须大于0: {req.quantity}", field="quantity")
        subscription = await self._load_subscription(subscription_id)

        new_plan: Optional[Plan] = None
        if req.plan_id and req.plan_id != subscription.plan_id:
            new_plan = await self._load_plan(req.plan_id)

        # The provider always gets the effective quantity, and the unit price
        # whenever the billed total changes
        quantity = req.quantity if req.quantity is not None else subscription.quantity
        billing_plan = new_plan
        if billing_plan is None and quantity != subscription.quantity:
            billing_plan = await self._load_plan(subscription.plan_id)

        provider = self._registry.get(subscription.provider_name)
        result = await self._call_provider(
            provider,
            "update_subscription",
            provider.update_subscription(
                ProviderSubscriptionUpdate(
                    provider_subscription_id=subscription.provider_subscription_id or subscription.id,
                    plan_id=new_plan.id if new_plan else None,
                    provider_plan_id=(
                        new_plan.provider_plan_id
                        if new_plan and new_plan.provider_name == provider.name
                        else None
                    ),
                    amount=billing_plan.amount if billing_plan else None,
                    quantity=quantity,
                    payment_method_id=req.payment_method_id,
                    cancel_at_period_end=req.cancel_at_period_end,
                    metadata=req.metadata,
                )
            ),
        )
        self._sync(subscription, result, plan_id=new_plan.id if new_plan else None, req=req)

        await self._save_subscription(subscription, provider)
        logger.info(
            "subscription_updated",
            subscription_id=subscription.id,
            provider=provider.name,
            status=subscription.status.value,
            plan_changed=new_plan is not None,
        )
        return SubscriptionResponse.model_validate(subscription)

    async def cancel_subscription(self, subscription_id: str, *, at_period_end: bool = False) -> SubscriptionResponse:
        subscription = await self._load_subscription(subscription_id)
        provider = self._registry.get(subscription.provider_name)
        result = await self._call_provider(
            provider,
            "cancel_subscription",
            provider.cancel_subscription(
                subscription.provider_subscription_id or subscription.id,
                at_period_end=at_period_end,
            ),
        )
        self._sync(subscription, result)
        subscription.mark_canceled()

        await self._save_subscription(subscription, provider)
        logger.info(
            "subscription_canceled",
            subscription_id=subscription.id,
            provider=provider.name,
            status=subscription.status.value,
            at_period_end=at_period_end,
        )
        return SubscriptionResponse.model_validate(subscription)

    async def get_subscription(self, subscription_id: str) -> SubscriptionResponse:
        return SubscriptionResponse.model_validate(await self._load_subscription(subscription_id))

    async def list_subscriptions(self, customer_id: str, skip: int = 0, limit: int = 100) -> List[SubscriptionResponse]:
        async with self._uow_factory(readonly=True) as uow:
            subscriptions = await uow.subscription_repository.list_by_customer(customer_id, skip=skip, limit=limit)
        return [SubscriptionResponse.model_validate(s) for s in subscriptions]

    @staticmethod
    def _sync(
        subscription: Subscription,
        result: ProviderSubscription,
        *,
        plan_id: Optional[str] = None,
        req: Optional[UpdateSubscriptionRequest] = None,
    ) -> None:
        subscription.sync_from_provider(
            status=SubscriptionStatus(result.status),
            plan_id=plan_id,
            quantity=result.quantity,
            payment_method_id=req.payment_method_id if req else None,
            current_period_start=result.current_period_start,
            current_period_end=result.current_period_end,
            trial_start=result.trial_start,
            trial_end=result.trial_end,
            cancel_at_period_end=(
                result.cancel_at_period_end
                if result.cancel_at_period_end is not None
                else (req.cancel_at_period_end if req else None)
            ),
            metadata=req.metadata if req else None,
        )

    async def _load_subscription(self, subscription_id: str) -> Subscription:
        async with self._uow_factory(readonly=True) as uow:
            subscription = await uow.subscription_repository.get_by_id(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundException(subscription_id)
        return subscription

    async def _save_subscription(self, subscription: Subscription, provider: PaymentProvider, *, created: bool = False) -> None:
        try:
            async with self._uow_factory() as uow:
                if created:
                    await uow.subscription_repository.create(subscription)
                else:
                    await uow.subscription_repository.update(subscription)
        except PersistenceException as persist_exc:
            inconsistency = await self._ledger_inconsistent(
                entity="subscription",
                entity_id=subscription.id,
                provider_name=provider.name,
                provider_ref=subscription.provider_subscription_id,
                provider_error=None,
                persistence_error=persist_exc,
            )
            raise inconsistency from persist_exc

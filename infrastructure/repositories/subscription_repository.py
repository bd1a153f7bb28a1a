"""
计费方案与订阅仓储实现
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from domain.common.timestamps import utcnow
from domain.subscription.entity import (
    BillingPeriod,
    Plan,
    PricingType,
    Subscription,
    SubscriptionStatus,
)
from domain.subscription.repository import PlanRepository, SubscriptionRepository
from infrastructure.models.subscription import PlanModel, SubscriptionModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPlanRepository(PlanRepository):
    """方案仓储的SQLAlchemy实现（软删除）"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PlanModel) -> Plan:
        return Plan(
            id=model.id,
            name=model.name,
            description=model.description,
            amount=int(model.amount),
            currency=model.currency,
            billing_period=BillingPeriod(model.billing_period),
            pricing_type=PricingType(model.pricing_type),
            trial_days=model.trial_days,
            features=list(model.features or []),
            provider_name=model.provider_name,
            provider_plan_id=model.provider_plan_id,
            active=model.active,
            metadata=model.extra_metadata or {},
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Plan) -> PlanModel:
        return PlanModel(
            id=entity.id,
            name=entity.name,
            description=entity.description,
            amount=entity.amount,
            currency=entity.currency,
            billing_period=entity.billing_period.value,
            pricing_type=entity.pricing_type.value,
            trial_days=entity.trial_days,
            features=entity.features,
            provider_name=entity.provider_name,
            provider_plan_id=entity.provider_plan_id,
            active=entity.active,
            extra_metadata=entity.metadata,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def _get_model(self, plan_id: str) -> Optional[PlanModel]:
        result = await self.session.execute(
            select(PlanModel).where(
                PlanModel.id == plan_id,
                PlanModel.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def create(self, plan: Plan) -> Plan:
        db_plan = self._to_model(plan)
        self.session.add(db_plan)
        await self.session.flush()
        await self.session.refresh(db_plan)
        logger.info("plan_saved", plan_id=db_plan.id, provider=db_plan.provider_name)
        return self._to_entity(db_plan)

    async def get_by_id(self, plan_id: str) -> Optional[Plan]:
        db_plan = await self._get_model(plan_id)
        return self._to_entity(db_plan) if db_plan else None

    async def list(self, skip: int = 0, limit: int = 100) -> List[Plan]:
        result = await self.session.execute(
            select(PlanModel)
            .where(PlanModel.deleted_at.is_(None))
            .order_by(PlanModel.created_at, PlanModel.id)
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def update(self, plan: Plan) -> Plan:
        db_plan = await self._get_model(plan.id)
        if not db_plan:
            raise ValueError(f"Plan with id {plan.id} not found")

        db_plan.name = plan.name
        db_plan.description = plan.description
        db_plan.amount = plan.amount
        db_plan.currency = plan.currency
        db_plan.billing_period = plan.billing_period.value
        db_plan.pricing_type = plan.pricing_type.value
        db_plan.trial_days = plan.trial_days
        db_plan.features = plan.features
        db_plan.provider_plan_id = plan.provider_plan_id
        db_plan.active = plan.active
        db_plan.extra_metadata = plan.metadata
        db_plan.updated_at = plan.updated_at

        await self.session.flush()
        await self.session.refresh(db_plan)
        return self._to_entity(db_plan)

    async def delete(self, plan_id: str) -> bool:
        """软删除：标记 deleted_at 并停用"""
        db_plan = await self._get_model(plan_id)
        if not db_plan:
            return False
        now = utcnow()
        db_plan.active = False
        db_plan.deleted_at = now
        db_plan.updated_at = now
        await self.session.flush()
        logger.info("plan_soft_deleted", plan_id=plan_id)
        return True


class SQLAlchemySubscriptionRepository(SubscriptionRepository):
    """订阅仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: SubscriptionModel) -> Subscription:
        return Subscription(
            id=model.id,
            customer_id=model.customer_id,
            plan_id=model.plan_id,
            status=SubscriptionStatus(model.status),
            quantity=model.quantity,
            payment_method_id=model.payment_method_id,
            current_period_start=model.current_period_start,
            current_period_end=model.current_period_end,
            trial_start=model.trial_start,
            trial_end=model.trial_end,
            canceled_at=model.canceled_at,
            cancel_at_period_end=model.cancel_at_period_end,
            provider_name=model.provider_name,
            provider_subscription_id=model.provider_subscription_id,
            metadata=model.extra_metadata or {},
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Subscription) -> SubscriptionModel:
        return SubscriptionModel(
            id=entity.id,
            customer_id=entity.customer_id,
            plan_id=entity.plan_id,
            status=entity.status.value,
            quantity=entity.quantity,
            payment_method_id=entity.payment_method_id,
            current_period_start=entity.current_period_start,
            current_period_end=entity.current_period_end,
            trial_start=entity.trial_start,
            trial_end=entity.trial_end,
            canceled_at=entity.canceled_at,
            cancel_at_period_end=entity.cancel_at_period_end,
            provider_name=entity.provider_name,
            provider_subscription_id=entity.provider_subscription_id,
            extra_metadata=entity.metadata,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, subscription: Subscription) -> Subscription:
        db_sub = self._to_model(subscription)
        self.session.add(db_sub)
        await self.session.flush()
        await self.session.refresh(db_sub)
        logger.info(
            "subscription_saved",
            subscription_id=db_sub.id,
            plan_id=db_sub.plan_id,
            status=db_sub.status,
        )
        return self._to_entity(db_sub)

    async def get_by_id(self, subscription_id: str) -> Optional[Subscription]:
        result = await self.session.execute(
            select(SubscriptionModel).where(SubscriptionModel.id == subscription_id)
        )
        db_sub = result.scalar_one_or_none()
        return self._to_entity(db_sub) if db_sub else None

    async def list_by_customer(
        self,
        customer_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[Subscription]:
        result = await self.session.execute(
            select(SubscriptionModel)
            .where(SubscriptionModel.customer_id == customer_id)
            .order_by(SubscriptionModel.created_at.desc(), SubscriptionModel.id)
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(s) for s in result.scalars().all()]

    async def update(self, subscription: Subscription) -> Subscription:
        result = await self.session.execute(
            select(SubscriptionModel).where(SubscriptionModel.id == subscription.id)
        )
        db_sub = result.scalar_one_or_none()
        if not db_sub:
            raise ValueError(f"Subscription with id {subscription.id} not found")

        db_sub.plan_id = subscription.plan_id
        db_sub.status = subscription.status.value
        db_sub.quantity = subscription.quantity
        db_sub.payment_method_id = subscription.payment_method_id
        db_sub.current_period_start = subscription.current_period_start
        db_sub.current_period_end = subscription.current_period_end
        db_sub.trial_start = subscription.trial_start
        db_sub.trial_end = subscription.trial_end
        db_sub.canceled_at = subscription.canceled_at
        db_sub.cancel_at_period_end = subscription.cancel_at_period_end
        db_sub.extra_metadata = subscription.metadata
        db_sub.updated_at = subscription.updated_at

        await self.session.flush()
        await self.session.refresh(db_sub)
        logger.info(
            "subscription_updated_in_ledger",
            subscription_id=db_sub.id,
            status=db_sub.status,
        )
        return self._to_entity(db_sub)

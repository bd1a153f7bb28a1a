"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Iterable, Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from domain.payment.entity import Payment, Refund, PaymentStatus, RefundStatus
from domain.payment.repository import PaymentRepository, RefundRepository
from infrastructure.models.payment import PaymentModel, RefundModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            customer_id=model.customer_id,
            amount=int(model.amount),
            currency=model.currency,
            payment_method=model.payment_method,
            status=PaymentStatus(model.status),
            description=model.description,
            provider_name=model.provider_name,
            provider_charge_id=model.provider_charge_id,
            failure_reason=model.failure_reason,
            metadata=model.extra_metadata or {},
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        return PaymentModel(
            id=entity.id,
            customer_id=entity.customer_id,
            amount=entity.amount,
            currency=entity.currency,
            payment_method=entity.payment_method,
            status=entity.status.value,
            description=entity.description,
            provider_name=entity.provider_name,
            provider_charge_id=entity.provider_charge_id,
            failure_reason=entity.failure_reason,
            extra_metadata=entity.metadata,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        db_payment = self._to_model(payment)
        self.session.add(db_payment)
        await self.session.flush()
        await self.session.refresh(db_payment)
        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            provider=db_payment.provider_name,
            status=db_payment.status,
        )
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        """根据ID获取支付"""
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.id == payment_id)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def get_for_update(self, payment_id: str) -> Optional[Payment]:
        """行锁读取（SELECT ... FOR UPDATE），不支持行锁的方言会忽略该子句"""
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def list_by_customer(
        self,
        customer_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[Payment]:
        """获取客户的支付列表"""
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.customer_id == customer_id)
            .order_by(PaymentModel.created_at.desc(), PaymentModel.id)
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.id == payment.id)
        )
        db_payment = result.scalar_one_or_none()

        if not db_payment:
            raise ValueError(f"Payment with id {payment.id} not found")

        # 更新字段
        db_payment.status = payment.status.value
        db_payment.provider_name = payment.provider_name
        db_payment.provider_charge_id = payment.provider_charge_id
        db_payment.failure_reason = payment.failure_reason
        db_payment.description = payment.description
        db_payment.extra_metadata = payment.metadata
        db_payment.updated_at = payment.updated_at

        await self.session.flush()
        await self.session.refresh(db_payment)

        logger.info(
            "payment_updated",
            payment_id=db_payment.id,
            status=db_payment.status
        )

        return self._to_entity(db_payment)


class SQLAlchemyRefundRepository(RefundRepository):
    """退款仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: RefundModel) -> Refund:
        return Refund(
            id=model.id,
            payment_id=model.payment_id,
            amount=int(model.amount),
            currency=model.currency,
            status=RefundStatus(model.status),
            reason=model.reason,
            provider_name=model.provider_name,
            provider_refund_id=model.provider_refund_id,
            failure_reason=model.failure_reason,
            metadata=model.extra_metadata or {},
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Refund) -> RefundModel:
        return RefundModel(
            id=entity.id,
            payment_id=entity.payment_id,
            amount=entity.amount,
            currency=entity.currency,
            status=entity.status.value,
            reason=entity.reason,
            provider_name=entity.provider_name,
            provider_refund_id=entity.provider_refund_id,
            failure_reason=entity.failure_reason,
            extra_metadata=entity.metadata,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, refund: Refund) -> Refund:
        db_refund = self._to_model(refund)
        self.session.add(db_refund)
        await self.session.flush()
        await self.session.refresh(db_refund)
        logger.info(
            "refund_created",
            refund_id=db_refund.id,
            payment_id=db_refund.payment_id,
            amount=db_refund.amount,
        )
        return self._to_entity(db_refund)

    async def get_by_id(self, refund_id: str) -> Optional[Refund]:
        result = await self.session.execute(
            select(RefundModel).where(RefundModel.id == refund_id)
        )
        db_refund = result.scalar_one_or_none()
        return self._to_entity(db_refund) if db_refund else None

    async def list_by_payment(
        self,
        payment_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[Refund]:
        result = await self.session.execute(
            select(RefundModel)
            .where(RefundModel.payment_id == payment_id)
            .order_by(RefundModel.created_at, RefundModel.id)
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(r) for r in result.scalars().all()]

    async def update(self, refund: Refund) -> Refund:
        result = await self.session.execute(
            select(RefundModel).where(RefundModel.id == refund.id)
        )
        db_refund = result.scalar_one_or_none()

        if not db_refund:
            raise ValueError(f"Refund with id {refund.id} not found")

        db_refund.status = refund.status.value
        db_refund.provider_refund_id = refund.provider_refund_id
        db_refund.failure_reason = refund.failure_reason
        db_refund.extra_metadata = refund.metadata
        db_refund.updated_at = refund.updated_at

        await self.session.flush()
        await self.session.refresh(db_refund)

        logger.info(
            "refund_updated",
            refund_id=db_refund.id,
            payment_id=db_refund.payment_id,
            status=db_refund.status,
        )
        return self._to_entity(db_refund)

    async def sum_amount(
        self,
        payment_id: str,
        statuses: Iterable[RefundStatus] = (RefundStatus.SUCCEEDED,)
    ) -> int:
        values = [RefundStatus(s).value for s in statuses]
        result = await self.session.execute(
            select(func.coalesce(func.sum(RefundModel.amount), 0)).where(
                RefundModel.payment_id == payment_id,
                RefundModel.status.in_(values),
            )
        )
        return int(result.scalar_one())

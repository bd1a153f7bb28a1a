"""
计费方案与订阅数据库模型
"""
from sqlalchemy import (
    BigInteger, Boolean, Column, Integer, String, DateTime, Text, JSON,
    Index, ForeignKey
)
from datetime import datetime, timezone

from .base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class PlanModel(Base):
    __tablename__ = "plans"

    id = Column(String(36), primary_key=True)
    name = Column(String(200), nullable=False, comment="方案名称")
    description = Column(Text, nullable=True)

    amount = Column(BigInteger, nullable=False, comment="金额（最小货币单位）")
    currency = Column(String(3), nullable=False)
    billing_period = Column(String(20), nullable=False, comment="daily/weekly/monthly/yearly")
    pricing_type = Column(String(20), nullable=False, default="fixed", comment="fixed/per_unit/tiered/volume")
    trial_days = Column(Integer, nullable=False, default=0)
    features = Column(JSON, nullable=True)

    provider_name = Column(String(50), nullable=True, index=True)
    provider_plan_id = Column(String(200), nullable=True)

    active = Column(Boolean, nullable=False, default=True)
    # 软删除标记
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<PlanModel(id='{self.id}', name='{self.name}', amount={self.amount})>"


class SubscriptionModel(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True)
    customer_id = Column(String(100), nullable=False, comment="客户ID")
    plan_id = Column(String(36), ForeignKey("plans.id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, comment="active/trialing/paused/past_due/canceled")
    quantity = Column(Integer, nullable=False, default=1)
    payment_method_id = Column(String(200), nullable=True)

    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    trial_start = Column(DateTime(timezone=True), nullable=True)
    trial_end = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)

    provider_name = Column(String(50), nullable=True)
    provider_subscription_id = Column(String(200), nullable=True)

    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_subscriptions_customer_created", "customer_id", "created_at"),
        Index("ix_subscriptions_provider_ref", "provider_name", "provider_subscription_id"),
    )

    def __repr__(self):
        return f"<SubscriptionModel(id='{self.id}', plan_id='{self.plan_id}', status='{self.status}')>"

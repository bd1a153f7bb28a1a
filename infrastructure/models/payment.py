"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    BigInteger, Column, String, DateTime, Text, JSON,
    Index, ForeignKey
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    支付数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    # 主键（领域层生成的 UUID）
    id = Column(String(36), primary_key=True)

    customer_id = Column(String(100), nullable=True, index=True, comment="客户ID")

    # 支付渠道信息
    provider_name = Column(String(50), nullable=True, index=True, comment="支付渠道: stripe/xendit")
    provider_charge_id = Column(String(200), nullable=True, comment="渠道扣款ID")
    payment_method = Column(String(200), nullable=False, comment="支付方式（卡 token 等）")

    # 金额信息（最小货币单位）
    amount = Column(BigInteger, nullable=False, comment="支付金额（最小货币单位）")
    currency = Column(String(3), nullable=False, comment="货币代码 ISO-4217")

    # 状态
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="支付状态: pending/succeeded/failed/refunded"
    )

    description = Column(Text, nullable=True, comment="描述")
    failure_reason = Column(Text, nullable=True, comment="失败原因")

    # 元数据（JSON格式，使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    # 关系
    refunds = relationship("RefundModel", back_populates="payment", lazy="select")

    # 索引
    __table_args__ = (
        Index("ix_payments_customer_created", "customer_id", "created_at"),
        Index("ix_payments_provider_charge", "provider_name", "provider_charge_id"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id='{self.id}', provider='{self.provider_name}', "
            f"amount={self.amount}, status='{self.status}')>"
        )


class RefundModel(Base):
    """
    退款数据库模型

    退款作为支付聚合的一部分，记录支付的退款明细
    """
    __tablename__ = "refunds"

    id = Column(String(36), primary_key=True)

    # 关联支付
    payment_id = Column(
        String(36),
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="关联的支付ID"
    )

    # 退款渠道信息
    provider_name = Column(String(50), nullable=True, comment="支付渠道")
    provider_refund_id = Column(String(200), nullable=True, comment="渠道退款ID")

    # 金额信息
    amount = Column(BigInteger, nullable=False, comment="退款金额（最小货币单位）")
    currency = Column(String(3), nullable=False, comment="货币代码")

    status = Column(
        String(20),
        nullable=False,
        default="pending",
        comment="退款状态: pending/succeeded/failed"
    )

    reason = Column(Text, nullable=True, comment="退款原因")
    failure_reason = Column(Text, nullable=True, comment="失败原因")
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    payment = relationship("PaymentModel", back_populates="refunds")

    __table_args__ = (
        Index("ix_refunds_payment_status", "payment_id", "status"),
        Index("ix_refunds_provider_refund_id", "provider_name", "provider_refund_id"),
    )

    def __repr__(self):
        return (
            f"<RefundModel(id='{self.id}', payment_id='{self.payment_id}', "
            f"amount={self.amount}, status='{self.status}')>"
        )

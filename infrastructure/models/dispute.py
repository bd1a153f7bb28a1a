"""
争议与证据数据库模型
"""
from sqlalchemy import (
    BigInteger, Column, String, DateTime, Text, JSON,
    Index, ForeignKey
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class DisputeModel(Base):
    __tablename__ = "disputes"

    id = Column(String(36), primary_key=True)
    customer_id = Column(String(100), nullable=True)
    transaction_id = Column(String(200), nullable=False, index=True, comment="被争议的交易")

    amount = Column(BigInteger, nullable=False, comment="争议金额（最小货币单位）")
    currency = Column(String(3), nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(
        String(20),
        nullable=False,
        default="open",
        index=True,
        comment="open/under_review/won/lost/canceled"
    )
    due_by = Column(DateTime(timezone=True), nullable=True, comment="举证截止时间")
    closed_at = Column(DateTime(timezone=True), nullable=True)

    provider_name = Column(String(50), nullable=True)
    provider_dispute_id = Column(String(200), nullable=True)

    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    evidence = relationship("EvidenceModel", back_populates="dispute", lazy="select")

    __table_args__ = (
        Index("ix_disputes_customer_created", "customer_id", "created_at"),
    )

    def __repr__(self):
        return f"<DisputeModel(id='{self.id}', transaction_id='{self.transaction_id}', status='{self.status}')>"


class EvidenceModel(Base):
    __tablename__ = "dispute_evidence"

    id = Column(String(36), primary_key=True)
    dispute_id = Column(
        String(36),
        ForeignKey("disputes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = Column(String(100), nullable=False, comment="证据类型")
    description = Column(Text, nullable=False)
    files = Column(JSON, nullable=True, comment="文件引用列表")

    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    dispute = relationship("DisputeModel", back_populates="evidence")

    def __repr__(self):
        return f"<EvidenceModel(id='{self.id}', dispute_id='{self.dispute_id}', type='{self.type}')>"

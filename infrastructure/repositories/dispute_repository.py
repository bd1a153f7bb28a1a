"""
争议仓储实现 - 争议、证据与统计
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from domain.dispute.entity import (
    Dispute,
    DisputeStats,
    DisputeStatus,
    Evidence,
    EVIDENCE_ACCEPTING_STATUSES,
)
from domain.dispute.repository import DisputeRepository
from infrastructure.models.dispute import DisputeModel, EvidenceModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyDisputeRepository(DisputeRepository):
    """争议仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: DisputeModel, evidence: Optional[List[Evidence]] = None) -> Dispute:
        return Dispute(
            id=model.id,
            customer_id=model.customer_id,
            transaction_id=model.transaction_id,
            amount=int(model.amount),
            currency=model.currency,
            reason=model.reason,
            status=DisputeStatus(model.status),
            due_by=model.due_by,
            closed_at=model.closed_at,
            provider_name=model.provider_name,
            provider_dispute_id=model.provider_dispute_id,
            evidence=evidence or [],
            metadata=model.extra_metadata or {},
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Dispute) -> DisputeModel:
        return DisputeModel(
            id=entity.id,
            customer_id=entity.customer_id,
            transaction_id=entity.transaction_id,
            amount=entity.amount,
            currency=entity.currency,
            reason=entity.reason,
            status=entity.status.value,
            due_by=entity.due_by,
            closed_at=entity.closed_at,
            provider_name=entity.provider_name,
            provider_dispute_id=entity.provider_dispute_id,
            extra_metadata=entity.metadata,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    @staticmethod
    def _evidence_to_entity(model: EvidenceModel) -> Evidence:
        return Evidence(
            id=model.id,
            dispute_id=model.dispute_id,
            type=model.type,
            description=model.description,
            files=list(model.files or []),
            metadata=model.extra_metadata or {},
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, dispute: Dispute) -> Dispute:
        db_dispute = self._to_model(dispute)
        self.session.add(db_dispute)
        await self.session.flush()
        await self.session.refresh(db_dispute)
        logger.info(
            "dispute_saved",
            dispute_id=db_dispute.id,
            transaction_id=db_dispute.transaction_id,
            status=db_dispute.status,
        )
        return self._to_entity(db_dispute)

    async def get_by_id(self, dispute_id: str) -> Optional[Dispute]:
        result = await self.session.execute(
            select(DisputeModel).where(DisputeModel.id == dispute_id)
        )
        db_dispute = result.scalar_one_or_none()
        if not db_dispute:
            return None
        return self._to_entity(db_dispute, await self.list_evidence(dispute_id))

    async def list_by_customer(
        self,
        customer_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[Dispute]:
        result = await self.session.execute(
            select(DisputeModel)
            .where(DisputeModel.customer_id == customer_id)
            .order_by(DisputeModel.created_at.desc(), DisputeModel.id)
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(d) for d in result.scalars().all()]

    async def update(self, dispute: Dispute) -> Dispute:
        result = await self.session.execute(
            select(DisputeModel).where(DisputeModel.id == dispute.id)
        )
        db_dispute = result.scalar_one_or_none()
        if not db_dispute:
            raise ValueError(f"Dispute with id {dispute.id} not found")

        db_dispute.status = dispute.status.value
        db_dispute.due_by = dispute.due_by
        db_dispute.closed_at = dispute.closed_at
        db_dispute.provider_dispute_id = dispute.provider_dispute_id
        db_dispute.extra_metadata = dispute.metadata
        db_dispute.updated_at = dispute.updated_at

        await self.session.flush()
        await self.session.refresh(db_dispute)
        logger.info("dispute_updated", dispute_id=db_dispute.id, status=db_dispute.status)
        return self._to_entity(db_dispute, await self.list_evidence(dispute.id))

    async def add_evidence(self, evidence: Evidence) -> Evidence:
        db_evidence = EvidenceModel(
            id=evidence.id,
            dispute_id=evidence.dispute_id,
            type=evidence.type,
            description=evidence.description,
            files=evidence.files,
            extra_metadata=evidence.metadata,
            created_at=evidence.created_at,
            updated_at=evidence.updated_at,
        )
        self.session.add(db_evidence)
        await self.session.flush()
        await self.session.refresh(db_evidence)
        logger.info("evidence_saved", evidence_id=db_evidence.id, dispute_id=db_evidence.dispute_id)
        return self._evidence_to_entity(db_evidence)

    async def list_evidence(self, dispute_id: str) -> List[Evidence]:
        result = await self.session.execute(
            select(EvidenceModel)
            .where(EvidenceModel.dispute_id == dispute_id)
            .order_by(EvidenceModel.created_at, EvidenceModel.id)
        )
        return [self._evidence_to_entity(e) for e in result.scalars().all()]

    async def get_stats(self) -> DisputeStats:
        result = await self.session.execute(
            select(
                DisputeModel.status,
                func.count(DisputeModel.id),
                func.coalesce(func.sum(DisputeModel.amount), 0),
            ).group_by(DisputeModel.status)
        )
        stats = DisputeStats()
        at_risk = {s.value for s in EVIDENCE_ACCEPTING_STATUSES}
        known = {s.value for s in DisputeStatus}
        for status, count, amount in result.all():
            stats.total += count
            if status in at_risk:
                stats.amount_at_risk += int(amount)
            if status in known:
                setattr(stats, status, getattr(stats, status) + count)
        return stats

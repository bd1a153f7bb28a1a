"""
Application service orchestrating the dispute lifecycle.

Transitions are checked against the domain table before the provider is
called; evidence is validated before any lookup. Reads come from the
ledger only.
"""
from __future__ import annotations

from typing import Callable, List, Optional

from application.dtos.disputes import (
    CreateDisputeRequest,
    DisputeResponse,
    DisputeStatsResponse,
    EvidenceResponse,
    SubmitEvidenceRequest,
    UpdateDisputeRequest,
)
from application.dtos.providers import (
    ProviderDisputeRequest,
    ProviderDisputeUpdate,
    ProviderEvidence,
)
from application.ports.payment_provider import PaymentProvider
from application.services.base import ProviderCallMixin, ReconciliationHook
from application.services.provider_registry import ProviderRegistry
from core.logging_config import get_logger
from domain.common.exceptions import (
    DisputeNotFoundException,
    DomainValidationException,
    InvalidEvidenceException,
    PersistenceException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.dispute.entity import Dispute, DisputeStatus, Evidence


logger = get_logger(__name__)


class DisputeOrchestrator(ProviderCallMixin):
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

    async def create_dispute(self, req: CreateDisputeRequest) -> DisputeResponse:
        if not (req.transaction_id or "").strip():
            raise DomainValidationException("交易ID不能为空", field="transaction_id")
        if not (req.reason or "").strip():
            raise DomainValidationException("争议原因不能为空", field="reason")
        if not (req.currency or "").strip():
            raise DomainValidationException("货币代码不能为空", field="currency")
        dispute = Dispute(
            transaction_id=req.transaction_id.strip(),
            reason=req.reason.strip(),
            amount=req.amount,
            currency=req.currency.strip(),
            customer_id=req.customer_id,
            due_by=req.due_by,
            metadata=dict(req.metadata),
        )

        provider = await self._registry.select_available()
        result = await self._call_provider(
            provider,
            "create_dispute",
            provider.create_dispute(
                ProviderDisputeRequest(
                    transaction_id=dispute.transaction_id,
                    reason=dispute.reason,
                    amount=dispute.amount,
                    currency=dispute.currency,
                    customer_id=dispute.customer_id,
                    due_by=dispute.due_by,
                    metadata=dispute.metadata,
                )
            ),
        )
        dispute.provider_name = provider.name
        dispute.provider_dispute_id = result.provider_dispute_id
        if dispute.due_by is None and result.due_by is not None:
            dispute.due_by = result.due_by

        await self._save(dispute, provider, created=True)
        logger.info(
            "dispute_created",
            dispute_id=dispute.id,
            transaction_id=dispute.transaction_id,
            provider=provider.name,
            provider_dispute_id=dispute.provider_dispute_id,
        )
        return DisputeResponse.model_validate(dispute)

    async def update_dispute(self, dispute_id: str, req: UpdateDisputeRequest) -> DisputeResponse:
        dispute = await self._load(dispute_id)

        target: Optional[DisputeStatus] = None
        if req.status is not None and req.status != dispute.status.value:
            target = dispute.ensure_transition(req.status)

        provider = self._registry.get(dispute.provider_name)
        await self._call_provider(
            provider,
            "update_dispute",
            provider.update_dispute(
                ProviderDisputeUpdate(
                    provider_dispute_id=dispute.provider_dispute_id,
                    transaction_id=dispute.transaction_id,
                    status=target,
                    metadata=req.metadata,
                )
            ),
        )

        previous = dispute.status
        if target is not None:
            dispute.transition_to(target)
        if req.metadata is not None:
            dispute.update_metadata(req.metadata)

        await self._save(dispute, provider)
        if target is not None:
            logger.info(
                "dispute_transitioned",
                dispute_id=dispute.id,
                provider=provider.name,
                from_status=previous.value,
                to_status=target.value,
            )
        return DisputeResponse.model_validate(dispute)

    async def submit_evidence(self, dispute_id: str, req: SubmitEvidenceRequest) -> EvidenceResponse:
        if not (req.type or "").strip():
            raise InvalidEvidenceException("type")
        if not (req.description or "").strip():
            raise InvalidEvidenceException("description")

        dispute = await self._load(dispute_id)
        dispute.ensure_accepts_evidence()
        evidence = Evidence(
            dispute_id=dispute.id,
            type=req.type.strip(),
            description=req.description.strip(),
            files=list(req.files),
            metadata=dict(req.metadata),
        )

        provider = self._registry.get(dispute.provider_name)
        await self._call_provider(
            provider,
            "submit_dispute_evidence",
            provider.submit_dispute_evidence(
                ProviderEvidence(
                    provider_dispute_id=dispute.provider_dispute_id,
                    transaction_id=dispute.transaction_id,
                    type=evidence.type,
                    description=evidence.description,
                    files=evidence.files,
                    metadata=evidence.metadata,
                )
            ),
        )
        dispute.add_evidence(evidence)

        try:
            async with self._uow_factory() as uow:
                await uow.dispute_repository.add_evidence(evidence)
                await uow.dispute_repository.update(dispute)
        except PersistenceException as persist_exc:
            inconsistency = await self._ledger_inconsistent(
                entity="evidence",
                entity_id=evidence.id,
                provider_name=provider.name,
                provider_ref=dispute.provider_dispute_id,
                provider_error=None,
                persistence_error=persist_exc,
            )
            raise inconsistency from persist_exc
        logger.info(
            "dispute_evidence_submitted",
            dispute_id=dispute.id,
            evidence_id=evidence.id,
            provider=provider.name,
            evidence_type=evidence.type,
        )
        return EvidenceResponse.model_validate(evidence)

    async def get_dispute(self, dispute_id: str) -> DisputeResponse:
        async with self._uow_factory(readonly=True) as uow:
            dispute = await uow.dispute_repository.get_by_id(dispute_id)
            if dispute is None:
                raise DisputeNotFoundException(dispute_id)
            dispute.evidence = await uow.dispute_repository.list_evidence(dispute.id)
        return DisputeResponse.model_validate(dispute)

    async def list_disputes(self, customer_id: str, skip: int = 0, limit: int = 100) -> List[DisputeResponse]:
        async with self._uow_factory(readonly=True) as uow:
            disputes = await uow.dispute_repository.list_by_customer(customer_id, skip=skip, limit=limit)
        return [DisputeResponse.model_validate(d) for d in disputes]

    async def get_dispute_stats(self) -> DisputeStatsResponse:
        async with self._uow_factory(readonly=True) as uow:
            stats = await uow.dispute_repository.get_stats()
        return DisputeStatsResponse.model_validate(stats)

    async def _load(self, dispute_id: str) -> Dispute:
        async with self._uow_factory(readonly=True) as uow:
            dispute = await uow.dispute_repository.get_by_id(dispute_id)
        if dispute is None:
            raise DisputeNotFoundException(dispute_id)
        return dispute

    async def _save(self, dispute: Dispute, provider: PaymentProvider, *, created: bool = False) -> None:
        try:
            async with self._uow_factory() as uow:
                if created:
                    await uow.dispute_repository.create(dispute)
                else:
                    await uow.dispute_repository.update(dispute)
        except PersistenceException as persist_exc:
            inconsistency = await self._ledger_inconsistent(
                entity="dispute",
                entity_id=dispute.id,
                provider_name=provider.name,
                provider_ref=dispute.provider_dispute_id,
                provider_error=None,
                persistence_error=persist_exc,
            )
            raise inconsistency from persist_exc

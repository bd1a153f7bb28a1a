"""
Application service orchestrating charge and refund use-cases.

The service depends only on the PaymentProvider port, the provider registry
and the unit-of-work abstraction; adapters and the SQLAlchemy ledger are
injected from the composition root (main.py), keeping dependencies one-way.

Remote calls never run inside a database transaction: a ``pending`` row is
committed first, the provider is called, and the outcome is written in a
second unit of work.
"""
from __future__ import annotations

from typing import Callable, List, Optional

from application.dtos.payments import (
    ChargeRequest,
    ChargeResponse,
    PaymentResponse,
    RefundRequest,
    RefundResponse,
)
from application.dtos.providers import ProviderChargeRequest, ProviderRefundRequest
from application.services.base import ProviderCallMixin, ReconciliationHook
from application.services.provider_registry import ProviderRegistry
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    DomainValidationException,
    PaymentNotFoundException,
    PaymentNotRefundableException,
    PersistenceException,
    RefundExceedsPaymentException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentStatus, Refund, RefundStatus


logger = get_logger(__name__)


class PaymentOrchestrator(ProviderCallMixin):
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
    # Charge
    # ------------------------------------------------------------------
    @staticmethod
    def _validate_charge(req: ChargeRequest) -> None:
        if req.amount is None or req.amount <= 0:
            raise DomainValidationException(f"支付金额必须大于0: {req.amount}", field="amount")
        if not (req.currency or "").strip():
            raise DomainValidationException("货币代码不能为空", field="currency")
        if not (req.payment_method or "").strip():
            raise DomainValidationException("支付方式不能为空", field="payment_method")

    async def create_charge(self, req: ChargeRequest) -> ChargeResponse:
        self._validate_charge(req)
        payment = Payment(
            customer_id=req.customer_id,
            amount=req.amount,
            currency=req.currency.strip(),
            payment_method=req.payment_method.strip(),
            description=req.description,
            metadata=dict(req.metadata),
        )

        provider = await self._registry.select_available()
        payment.provider_name = provider.name
        async with self._uow_factory() as uow:
            await uow.payment_repository.create(payment)
        logger.info(
            "charge_pending",
            payment_id=payment.id,
            provider=provider.name,
            amount=payment.amount,
            currency=payment.currency,
        )

        provider_error: Optional[BusinessException] = None
        try:
            result = await self._call_provider(
                provider,
                "charge",
                provider.charge(
                    ProviderChargeRequest(
                        payment_id=payment.id,
                        amount=payment.amount,
                        currency=payment.currency,
                        payment_method=payment.payment_method,
                        customer_id=payment.customer_id,
                        description=payment.description,
                        metadata=payment.metadata,
                    )
                ),
            )
        except BusinessException as exc:
            provider_error = exc
            payment.mark_failed(reason=exc.message, provider_name=provider.name)
        else:
            if result.status == "succeeded" and result.provider_charge_id:
                payment.mark_succeeded(provider.name, result.provider_charge_id)
            else:
                payment.mark_failed(
                    reason=result.failure_reason or "declined by provider",
                    provider_name=provider.name,
                )

        await self._save_payment(payment, provider_name=provider.name, provider_error=provider_error)

        if provider_error is not None:
            if isinstance(provider_error.details, dict):
                provider_error.details.setdefault("payment_id", payment.id)
            raise provider_error

        logger.info(
            "charge_succeeded" if payment.status == PaymentStatus.SUCCEEDED else "charge_declined",
            payment_id=payment.id,
            provider=provider.name,
            provider_charge_id=payment.provider_charge_id,
            failure_reason=payment.failure_reason,
        )
        return ChargeResponse.model_validate(payment)

    async def _save_payment(
        self,
        payment: Payment,
        *,
        provider_name: str,
        provider_error: Optional[BaseException],
    ) -> None:
        try:
            async with self._uow_factory() as uow:
                await uow.payment_repository.update(payment)
        except PersistenceException as persist_exc:
            inconsistency = await self._ledger_inconsistent(
                entity="payment",
                entity_id=payment.id,
                provider_name=provider_name,
                provider_ref=payment.provider_charge_id,
                provider_error=provider_error,
                persistence_error=persist_exc,
            )
            raise inconsistency from persist_exc

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------
    @staticmethod
    def _validate_refund(req: RefundRequest) -> None:
        if req.amount is None or req.amount <= 0:
            raise DomainValidationException(f"退款金额必须大于0: {req.amount}", field="amount")
        if not (req.currency or "").strip():
            raise DomainValidationException("货币代码不能为空", field="currency")
        if not (req.payment_id or "").strip():
            raise DomainValidationException("支付ID不能为空", field="payment_id")

    async def create_refund(self, req: RefundRequest) -> RefundResponse:
        self._validate_refund(req)

        # Reserve the amount under the payment row lock
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_for_update(req.payment_id)
            if payment is None:
                raise PaymentNotFoundException(req.payment_id)
            if not payment.is_refundable():
                raise PaymentNotRefundableException(payment.id, payment.status.value)
            if req.currency.strip().upper() != payment.currency:
                raise DomainValidationException(
                    f"退款币种 {req.currency} 与支付币种 {payment.currency} 不一致",
                    field="currency",
                    details={"payment_currency": payment.currency},
                )
            reserved = await uow.refund_repository.sum_amount(
                payment.id, (RefundStatus.PENDING, RefundStatus.SUCCEEDED)
            )
            available = payment.amount - reserved
            if req.amount > available:
                raise RefundExceedsPaymentException(req.amount, available)

            # Pinned to the provider that created the charge
            provider = self._registry.get(payment.provider_name)
            refund = Refund(
                payment_id=payment.id,
                amount=req.amount,
                currency=payment.currency,
                reason=req.reason,
                provider_name=provider.name,
                metadata=dict(req.metadata),
            )
            await uow.refund_repository.create(refund)
            provider_charge_id = payment.provider_charge_id
        logger.info(
            "refund_pending",
            refund_id=refund.id,
            payment_id=refund.payment_id,
            provider=provider.name,
            amount=refund.amount,
        )

        provider_error: Optional[BusinessException] = None
        try:
            result = await self._call_provider(
                provider,
                "refund",
                provider.refund(
                    ProviderRefundRequest(
                        refund_id=refund.id,
                        payment_id=refund.payment_id,
                        provider_charge_id=provider_charge_id,
                        amount=refund.amount,
                        currency=refund.currency,
                        reason=refund.reason,
                        metadata=refund.metadata,
                    )
                ),
            )
        except BusinessException as exc:
            provider_error = exc
            refund.mark_failed(exc.message)
        else:
            if result.status == "failed":
                refund.mark_failed(result.failure_reason or "declined by provider")
            else:
                refund.mark_succeeded(result.provider_refund_id)

        await self._complete_refund(refund, provider_name=provider.name, provider_error=provider_error)

        if provider_error is not None:
            if isinstance(provider_error.details, dict):
                provider_error.details.setdefault("refund_id", refund.id)
            raise provider_error

        logger.info(
            "refund_succeeded" if refund.status == RefundStatus.SUCCEEDED else "refund_declined",
            refund_id=refund.id,
            payment_id=refund.payment_id,
            provider=provider.name,
            provider_refund_id=refund.provider_refund_id,
        )
        return RefundResponse.model_validate(refund)

    async def _complete_refund(
        self,
        refund: Refund,
        *,
        provider_name: str,
        provider_error: Optional[BaseException],
    ) -> None:
        """Write the refund outcome and re-derive the payment status from a locked read."""
        try:
            async with self._uow_factory() as uow:
                payment = await uow.payment_repository.get_for_update(refund.payment_id)
                await uow.refund_repository.update(refund)
                if payment is not None and refund.status == RefundStatus.SUCCEEDED:
                    refunded_total = await uow.refund_repository.sum_amount(payment.id)
                    if refunded_total >= payment.amount and payment.status != PaymentStatus.REFUNDED:
                        payment.mark_refunded()
                        await uow.payment_repository.update(payment)
                        logger.info(
                            "payment_fully_refunded",
                            payment_id=payment.id,
                            refunded_total=refunded_total,
                        )
        except PersistenceException as persist_exc:
            inconsistency = await self._ledger_inconsistent(
                entity="refund",
                entity_id=refund.id,
                provider_name=provider_name,
                provider_ref=refund.provider_refund_id,
                provider_error=provider_error,
                persistence_error=persist_exc,
            )
            raise inconsistency from persist_exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_payment(self, payment_id: str) -> PaymentResponse:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundException(payment_id)
        return PaymentResponse.model_validate(payment)

    async def list_payments(self, customer_id: str, skip: int = 0, limit: int = 100) -> List[PaymentResponse]:
        async with self._uow_factory(readonly=True) as uow:
            payments = await uow.payment_repository.list_by_customer(customer_id, skip=skip, limit=limit)
        return [PaymentResponse.model_validate(p) for p in payments]

    async def list_refunds(self, payment_id: str, skip: int = 0, limit: int = 100) -> List[RefundResponse]:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
            if payment is None:
                raise PaymentNotFoundException(payment_id)
            refunds = await uow.refund_repository.list_by_payment(payment_id, skip=skip, limit=limit)
        return [RefundResponse.model_validate(r) for r in refunds]

"""
Payments API routes.

Thin layer over PaymentOrchestrator: decode the DTO, call the orchestrator,
wrap the result. Provider selection and ledger writes live in the service.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_payment_orchestrator
from application.dtos.payments import ChargeRequest, PaymentResponse, RefundRequest, RefundResponse
from application.services.payment_service import PaymentOrchestrator
from core.config import settings
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/charges", summary="Create charge", response_model=ApiResponse[PaymentResponse])
async def create_charge(
    req: ChargeRequest,
    service: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    """Charge through the first available provider; a declined charge is returned with status failed."""
    payment = await service.create_charge(req)
    return success_response(data=payment)


@router.post("/refunds", summary="Refund payment", response_model=ApiResponse[RefundResponse])
async def create_refund(
    req: RefundRequest,
    service: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    refund = await service.create_refund(req)
    return success_response(data=refund)


@router.get("/{payment_id}", summary="Get payment", response_model=ApiResponse[PaymentResponse])
async def get_payment(
    payment_id: str,
    service: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    return success_response(data=await service.get_payment(payment_id))


@router.get("", summary="List customer payments", response_model=ApiResponse[PaginatedData[PaymentResponse]])
async def list_payments(
    customer_id: str = Query(..., min_length=1),
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    service: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    payments = await service.list_payments(customer_id, skip=skip, limit=limit)
    return paginated_response(payments, skip=skip, limit=limit)


@router.get("/{payment_id}/refunds", summary="List payment refunds", response_model=ApiResponse[List[RefundResponse]])
async def list_refunds(
    payment_id: str,
    service: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    return success_response(data=await service.list_refunds(payment_id))

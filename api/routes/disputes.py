"""
Dispute API routes.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_dispute_orchestrator
from application.dtos.disputes import (
    CreateDisputeRequest,
    DisputeResponse,
    DisputeStatsResponse,
    EvidenceResponse,
    SubmitEvidenceRequest,
    UpdateDisputeRequest,
)
from application.services.dispute_service import DisputeOrchestrator
from core.config import settings
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/disputes", tags=["Disputes"])


@router.post("", summary="Open dispute", response_model=ApiResponse[DisputeResponse])
async def create_dispute(
    req: CreateDisputeRequest,
    service: DisputeOrchestrator = Depends(get_dispute_orchestrator),
):
    return success_response(data=await service.create_dispute(req))


# Declared before /{dispute_id} so "stats" is not captured as an id
@router.get("/stats", summary="Dispute statistics", response_model=ApiResponse[DisputeStatsResponse])
async def get_dispute_stats(service: DisputeOrchestrator = Depends(get_dispute_orchestrator)):
    return success_response(data=await service.get_dispute_stats())


@router.put("/{dispute_id}", summary="Update dispute", response_model=ApiResponse[DisputeResponse])
async def update_dispute(
    dispute_id: str,
    req: UpdateDisputeRequest,
    service: DisputeOrchestrator = Depends(get_dispute_orchestrator),
):
    """
    Transition the dispute and/or merge metadata.

    Allowed transitions: open -> under_review | canceled,
    under_review -> won | lost. Closed disputes are final.
    """
    return success_response(data=await service.update_dispute(dispute_id, req))


@router.post("/{dispute_id}/evidence", summary="Submit evidence", response_model=ApiResponse[EvidenceResponse])
async def submit_evidence(
    dispute_id: str,
    req: SubmitEvidenceRequest,
    service: DisputeOrchestrator = Depends(get_dispute_orchestrator),
):
    return success_response(data=await service.submit_evidence(dispute_id, req))


@router.get("/{dispute_id}", summary="Get dispute", response_model=ApiResponse[DisputeResponse])
async def get_dispute(
    dispute_id: str,
    service: DisputeOrchestrator = Depends(get_dispute_orchestrator),
):
    return success_response(data=await service.get_dispute(dispute_id))


@router.get("", summary="List customer disputes", response_model=ApiResponse[List[DisputeResponse]])
async def list_disputes(
    customer_id: str = Query(..., min_length=1),
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    service: DisputeOrchestrator = Depends(get_dispute_orchestrator),
):
    return success_response(data=await service.list_disputes(customer_id, skip=skip, limit=limit))

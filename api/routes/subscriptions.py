"""
Plan and subscription API routes.
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_subscription_orchestrator
from application.dtos.subscriptions import (
    CancelSubscriptionRequest,
    CreatePlanRequest,
    CreateSubscriptionRequest,
    PlanResponse,
    SubscriptionResponse,
    UpdatePlanRequest,
    UpdateSubscriptionRequest,
)
from application.services.subscription_service import SubscriptionOrchestrator
from core.config import settings
from core.response import Response as ApiResponse, success_response


plans_router = APIRouter(prefix="/plans", tags=["Plans"])
router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


@plans_router.post("", summary="Create plan", response_model=ApiResponse[PlanResponse])
async def create_plan(
    req: CreatePlanRequest,
    service: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    return success_response(data=await service.create_plan(req))


@plans_router.put("/{plan_id}", summary="Update plan", response_model=ApiResponse[PlanResponse])
async def update_plan(
    plan_id: str,
    req: UpdatePlanRequest,
    service: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    return success_response(data=await service.update_plan(plan_id, req))


@plans_router.delete("/{plan_id}", summary="Delete plan", response_model=ApiResponse)
async def delete_plan(
    plan_id: str,
    service: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    await service.delete_plan(plan_id)
    return success_response(message="Plan deleted")


@plans_router.get("/{plan_id}", summary="Get plan", response_model=ApiResponse[PlanResponse])
async def get_plan(
    plan_id: str,
    service: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    return success_response(data=await service.get_plan(plan_id))


@plans_router.get("", summary="List plans", response_model=ApiResponse[List[PlanResponse]])
async def list_plans(
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    service: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    return success_response(data=await service.list_plans(skip=skip, limit=limit))


@router.post("", summary="Create subscription", response_model=ApiResponse[SubscriptionResponse])
async def create_subscription(
    req: CreateSubscriptionRequest,
    service: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    return success_response(data=await service.create_subscription(req))


@router.put("/{subscription_id}", summary="Update subscription", response_model=ApiResponse[SubscriptionResponse])
async def update_subscription(
    subscription_id: str,
    req: UpdateSubscriptionRequest,
    service: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    return success_response(data=await service.update_subscription(subscription_id, req))


@router.post("/{subscription_id}/cancel", summary="Cancel subscription", response_model=ApiResponse[SubscriptionResponse])
async def cancel_subscription(
    subscription_id: str,
    req: Optional[CancelSubscriptionRequest] = None,
    service: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    """Cancel on the owning provider; ``at_period_end`` defers it where the provider supports that."""
    subscription = await service.cancel_subscription(subscription_id, at_period_end=bool(req and req.at_period_end))
    return success_response(data=subscription)


@router.get("/{subscription_id}", summary="Get subscription", response_model=ApiResponse[SubscriptionResponse])
async def get_subscription(
    subscription_id: str,
    service: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    return success_response(data=await service.get_subscription(subscription_id))


@router.get("", summary="List customer subscriptions", response_model=ApiResponse[List[SubscriptionResponse]])
async def list_subscriptions(
    customer_id: str = Query(..., min_length=1),
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    service: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    return success_response(data=await service.list_subscriptions(customer_id, skip=skip, limit=limit))

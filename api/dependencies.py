"""
API依赖项 - 从应用状态中取出编排服务
"""
from fastapi import Request

from application.services.dispute_service import DisputeOrchestrator
from application.services.payment_service import PaymentOrchestrator
from application.services.subscription_service import SubscriptionOrchestrator


def get_payment_orchestrator(request: Request) -> PaymentOrchestrator:
    return request.app.state.payment_orchestrator


def get_subscription_orchestrator(request: Request) -> SubscriptionOrchestrator:
    return request.app.state.subscription_orchestrator


def get_dispute_orchestrator(request: Request) -> DisputeOrchestrator:
    return request.app.state.dispute_orchestrator

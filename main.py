"""
FastAPI应用主入口
"""
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.routes import disputes as dispute_routes
from api.routes import payments as payment_routes
from api.routes import subscriptions as subscription_routes
from api.middleware import RequestIDMiddleware
from application.services.dispute_service import DisputeOrchestrator
from application.services.payment_service import PaymentOrchestrator
from application.services.provider_registry import ProviderRegistry
from application.services.subscription_service import SubscriptionOrchestrator
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import get_logger, configure_logging
from core.response import success_response
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import create_tables
from infrastructure.external.payments import build_providers
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


def install_orchestrators(
    app: FastAPI,
    registry: ProviderRegistry,
    uow_factory: Callable[..., AbstractUnitOfWork] = SQLAlchemyUnitOfWork,
) -> None:
    """把渠道注册表与三个编排服务挂到 app.state，供路由依赖注入使用"""
    call_timeout = payment_settings.call_timeout
    app.state.provider_registry = registry
    app.state.payment_orchestrator = PaymentOrchestrator(registry, uow_factory, call_timeout=call_timeout)
    app.state.subscription_orchestrator = SubscriptionOrchestrator(registry, uow_factory, call_timeout=call_timeout)
    app.state.dispute_orchestrator = DisputeOrchestrator(registry, uow_factory, call_timeout=call_timeout)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时创建数据库表（仅开发环境）
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")

    registry = ProviderRegistry(
        build_providers(payment_settings),
        availability_timeout=payment_settings.availability_timeout,
    )
    if not registry.providers:
        logger.warning("no_providers_configured", provider_order=payment_settings.provider_order)
    install_orchestrators(app, registry)
    logger.info("payment_providers_initialized", providers=registry.names())

    yield

    await registry.aclose()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="多渠道支付编排服务：收款、退款、订阅与争议",
)

# 添加中间件（注意顺序：从下往上执行）
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(payment_routes.router, prefix="/api/v1")
app.include_router(subscription_routes.plans_router, prefix="/api/v1")
app.include_router(subscription_routes.router, prefix="/api/v1")
app.include_router(dispute_routes.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
        }
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点（列出已注册的支付渠道）"""
    registry = getattr(app.state, "provider_registry", None)
    providers = registry.names() if registry is not None else []
    return success_response(data={"status": "healthy", "providers": providers})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )

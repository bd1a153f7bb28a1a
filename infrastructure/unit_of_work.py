"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Optional, Callable
import inspect

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import PersistenceException
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.payment_repository import (
    SQLAlchemyPaymentRepository,
    SQLAlchemyRefundRepository,
)
from infrastructure.repositories.subscription_repository import (
    SQLAlchemyPlanRepository,
    SQLAlchemySubscriptionRepository,
)
from infrastructure.repositories.dispute_repository import SQLAlchemyDisputeRepository


logger = get_logger(__name__)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work

    块内抛出的 SQLAlchemyError 会在回滚后转换为 PersistenceException，
    以便应用层按“持久化失败”这一种类处理，而不依赖具体驱动。
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    def _bind_repositories(self) -> None:
        self.payment_repository = SQLAlchemyPaymentRepository(self.session)
        self.refund_repository = SQLAlchemyRefundRepository(self.session)
        self.plan_repository = SQLAlchemyPlanRepository(self.session)
        self.subscription_repository = SQLAlchemySubscriptionRepository(self.session)
        self.dispute_repository = SQLAlchemyDisputeRepository(self.session)

    def _unbind_repositories(self) -> None:
        self.payment_repository = None
        self.refund_repository = None
        self.plan_repository = None
        self.subscription_repository = None
        self.dispute_repository = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        try:
            if self.session is None:
                self.session = self._session_factory()
            self._bind_repositories()
            # 仅在非只读模式下显式开启事务
            if not self._readonly:
                self._transaction = await self.session.begin()
        except SQLAlchemyError as exc:
            logger.error("uow_begin_failed", error=str(exc))
            raise PersistenceException("开启账本事务失败", details={"error": str(exc)}) from exc
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        except SQLAlchemyError as commit_exc:
            logger.error("uow_commit_failed", error=str(commit_exc))
            await self.rollback()
            raise PersistenceException("账本提交失败", details={"error": str(commit_exc)}) from commit_exc
        finally:
            # 事务在 commit/rollback 后通常会结束，这里仅在仍然活动时做安全关闭
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                close = getattr(tx, "close", None)
                if callable(close):
                    res = close()
                    if inspect.isawaitable(res):
                        await res
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self._unbind_repositories()

        # 块内的数据库异常统一转换为持久化异常（已回滚）
        if isinstance(exc, SQLAlchemyError):
            logger.error("uow_statement_failed", error=str(exc))
            raise PersistenceException("账本写入失败", details={"error": str(exc)}) from exc

    async def commit(self) -> None:
        if self._readonly:
            # 只读情况下不提交
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False

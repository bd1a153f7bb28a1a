"""
订阅仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Plan, Subscription


class PlanRepository(ABC):
    """计费方案仓储抽象接口"""

    @abstractmethod
    async def create(self, plan: Plan) -> Plan:
        pass

    @abstractmethod
    async def get_by_id(self, plan_id: str) -> Optional[Plan]:
        """根据ID获取方案（已删除的方案视为不存在）"""
        pass

    @abstractmethod
    async def list(self, skip: int = 0, limit: int = 100) -> List[Plan]:
        pass

    @abstractmethod
    async def update(self, plan: Plan) -> Plan:
        pass

    @abstractmethod
    async def delete(self, plan_id: str) -> bool:
        """删除方案（软删除或硬删除由实现决定）"""
        pass


class SubscriptionRepository(ABC):
    """订阅仓储抽象接口"""

    @abstractmethod
    async def create(self, subscription: Subscription) -> Subscription:
        pass

    @abstractmethod
    async def get_by_id(self, subscription_id: str) -> Optional[Subscription]:
        pass

    @abstractmethod
    async def list_by_customer(
        self,
        customer_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[Subscription]:
        pass

    @abstractmethod
    async def update(self, subscription: Subscription) -> Subscription:
        pass

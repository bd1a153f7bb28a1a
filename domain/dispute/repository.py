"""
争议仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Dispute, DisputeStats, Evidence


class DisputeRepository(ABC):
    """争议仓储抽象接口（含证据与统计）"""

    @abstractmethod
    async def create(self, dispute: Dispute) -> Dispute:
        pass

    @abstractmethod
    async def get_by_id(self, dispute_id: str) -> Optional[Dispute]:
        """根据ID获取争议（含证据列表）"""
        pass

    @abstractmethod
    async def list_by_customer(
        self,
        customer_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[Dispute]:
        pass

    @abstractmethod
    async def update(self, dispute: Dispute) -> Dispute:
        pass

    @abstractmethod
    async def add_evidence(self, evidence: Evidence) -> Evidence:
        pass

    @abstractmethod
    async def list_evidence(self, dispute_id: str) -> List[Evidence]:
        pass

    @abstractmethod
    async def get_stats(self) -> DisputeStats:
        pass

"""
支付仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Iterable, Optional, List

from .entity import Payment, Refund, RefundStatus


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        """根据ID获取支付"""
        pass

    @abstractmethod
    async def get_for_update(self, payment_id: str) -> Optional[Payment]:
        """
        根据ID获取支付并锁定该行直到事务结束

        用于“汇总退款 -> 判断 -> 更新支付状态”这类读改写序列，
        实现方必须保证同一支付上的此类序列串行执行。
        """
        pass

    @abstractmethod
    async def list_by_customer(
        self,
        customer_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[Payment]:
        """获取客户的支付列表"""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        pass


class RefundRepository(ABC):
    """退款仓储抽象接口"""

    @abstractmethod
    async def create(self, refund: Refund) -> Refund:
        """创建退款记录"""
        pass

    @abstractmethod
    async def get_by_id(self, refund_id: str) -> Optional[Refund]:
        """根据ID获取退款"""
        pass

    @abstractmethod
    async def list_by_payment(
        self,
        payment_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[Refund]:
        """获取支付的退款列表"""
        pass

    @abstractmethod
    async def update(self, refund: Refund) -> Refund:
        """更新退款记录"""
        pass

    @abstractmethod
    async def sum_amount(
        self,
        payment_id: str,
        statuses: Iterable[RefundStatus] = (RefundStatus.SUCCEEDED,)
    ) -> int:
        """统计支付下指定状态退款的金额总和（默认仅成功退款）"""
        pass

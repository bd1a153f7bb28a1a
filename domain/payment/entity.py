"""
支付领域实体 - 支付聚合根
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from enum import Enum

from domain.common.exceptions import DomainValidationException
from domain.common.timestamps import ensure_utc, new_id, touch, utcnow


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"           # 已落库，等待渠道结果
    SUCCEEDED = "succeeded"       # 支付成功
    FAILED = "failed"             # 支付失败
    REFUNDED = "refunded"         # 已全额退款


class RefundStatus(str, Enum):
    """退款状态枚举"""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Payment:
    """
    支付聚合根 - 管理单次扣款的生命周期

    业务规则：
    1. 金额（最小货币单位）必须大于0
    2. provider_charge_id 当且仅当状态为 succeeded/refunded 时存在
    3. 只能从 pending 转为 succeeded/failed
    4. 只有成功的支付才能退款，退款总额达到金额后转为 refunded
    """

    customer_id: Optional[str]
    amount: int
    currency: str  # ISO-4217
    payment_method: str
    status: PaymentStatus = PaymentStatus.PENDING
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    provider_name: Optional[str] = None
    provider_charge_id: Optional[str] = None
    failure_reason: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    # 时间戳
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后验证"""
        self._validate_amount()
        self._validate_currency()
        self.currency = self.currency.upper()
        self.status = PaymentStatus(self.status)
        self.created_at = ensure_utc(self.created_at) or utcnow()
        self.updated_at = ensure_utc(self.updated_at) or self.created_at
        if self.metadata is None:
            self.metadata = {}

    def _validate_amount(self) -> None:
        """业务规则：金额必须大于0"""
        if self.amount is None or self.amount <= 0:
            raise DomainValidationException(
                f"支付金额必须大于0: {self.amount}",
                field="amount"
            )

    def _validate_currency(self) -> None:
        """业务规则：货币代码必须是3位字母"""
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(
                f"无效的货币代码: {self.currency}",
                field="currency"
            )

    def mark_succeeded(self, provider_name: str, provider_charge_id: str) -> None:
        """
        标记支付成功

        业务规则：只能从 pending 转为 succeeded，且必须带渠道扣款ID
        """
        if self.status != PaymentStatus.PENDING:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 succeeded",
                field="status"
            )
        if not provider_charge_id:
            raise DomainValidationException(
                "渠道扣款ID不能为空",
                field="provider_charge_id"
            )
        self.status = PaymentStatus.SUCCEEDED
        self.provider_name = provider_name
        self.provider_charge_id = provider_charge_id
        self.failure_reason = None
        touch(self)

    def mark_failed(self, reason: Optional[str] = None, provider_name: Optional[str] = None) -> None:
        """标记支付失败"""
        if self.status != PaymentStatus.PENDING:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 failed",
                field="status"
            )
        self.status = PaymentStatus.FAILED
        self.failure_reason = reason
        if provider_name:
            self.provider_name = provider_name
        self.provider_charge_id = None
        touch(self)

    def mark_refunded(self) -> None:
        """退款总额达到支付金额后调用"""
        if self.status == PaymentStatus.REFUNDED:
            return
        if self.status != PaymentStatus.SUCCEEDED:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 refunded",
                field="status"
            )
        self.status = PaymentStatus.REFUNDED
        touch(self)

    def is_refundable(self) -> bool:
        return self.status == PaymentStatus.SUCCEEDED and bool(self.provider_charge_id)


@dataclass
class Refund:
    """
    退款实体 - Payment 聚合的一部分

    业务规则：
    1. 退款金额必须大于0
    2. 同一笔支付可以多次部分退款，成功退款总额不超过支付金额
    """

    payment_id: str
    amount: int
    currency: str
    status: RefundStatus = RefundStatus.PENDING
    id: str = field(default_factory=new_id)
    reason: Optional[str] = None
    provider_name: Optional[str] = None
    provider_refund_id: Optional[str] = None
    failure_reason: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后验证"""
        if self.amount is None or self.amount <= 0:
            raise DomainValidationException(
                f"退款金额必须大于0: {self.amount}",
                field="amount"
            )
        self.currency = (self.currency or "").upper()
        self.status = RefundStatus(self.status)
        self.created_at = ensure_utc(self.created_at) or utcnow()
        self.updated_at = ensure_utc(self.updated_at) or self.created_at
        if self.metadata is None:
            self.metadata = {}

    def mark_succeeded(self, provider_refund_id: Optional[str] = None) -> None:
        """标记退款成功"""
        if self.status != RefundStatus.PENDING:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 succeeded",
                field="status"
            )
        self.status = RefundStatus.SUCCEEDED
        if provider_refund_id:
            self.provider_refund_id = provider_refund_id
        self.failure_reason = None
        touch(self)

    def mark_failed(self, reason: Optional[str] = None) -> None:
        """标记退款失败"""
        if self.status != RefundStatus.PENDING:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 failed",
                field="status"
            )
        self.status = RefundStatus.FAILED
        self.failure_reason = reason
        touch(self)

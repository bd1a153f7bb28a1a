"""
订阅领域实体 - 计费方案（Plan）与订阅（Subscription）

订阅状态由支付渠道给出，领域层不强制状态机（与争议不同）。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.common.timestamps import ensure_utc, new_id, touch, utcnow


class BillingPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PricingType(str, Enum):
    FIXED = "fixed"
    PER_UNIT = "per_unit"
    TIERED = "tiered"
    VOLUME = "volume"


class SubscriptionStatus(str, Enum):
    """订阅状态（闭集，由渠道映射而来）"""
    ACTIVE = "active"
    TRIALING = "trialing"
    PAUSED = "paused"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


@dataclass
class Plan:
    """
    计费方案

    业务规则：
    1. 名称不能为空
    2. 金额（最小货币单位）不能为负
    3. 试用天数不能为负
    """

    name: str
    amount: int
    currency: str
    billing_period: BillingPeriod
    pricing_type: PricingType = PricingType.FIXED
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    trial_days: int = 0
    features: list[str] = field(default_factory=list)
    provider_name: Optional[str] = None
    provider_plan_id: Optional[str] = None
    active: bool = True
    metadata: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.name:
            raise DomainValidationException("方案名称不能为空", field="name")
        if self.amount is None or self.amount < 0:
            raise DomainValidationException(f"方案金额不能为负: {self.amount}", field="amount")
        if self.trial_days is None or self.trial_days < 0:
            raise DomainValidationException(f"试用天数不能为负: {self.trial_days}", field="trial_days")
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"无效的货币代码: {self.currency}", field="currency")
        self.currency = self.currency.upper()
        self.billing_period = BillingPeriod(self.billing_period)
        self.pricing_type = PricingType(self.pricing_type)
        self.created_at = ensure_utc(self.created_at) or utcnow()
        self.updated_at = ensure_utc(self.updated_at) or self.created_at
        if self.metadata is None:
            self.metadata = {}
        if self.features is None:
            self.features = []

    def apply(self, other: "Plan") -> None:
        """以渠道返回的方案覆盖可变字段，ID 与创建时间保持不变"""
        self.name = other.name
        self.description = other.description
        self.amount = other.amount
        self.currency = other.currency
        self.billing_period = other.billing_period
        self.pricing_type = other.pricing_type
        self.trial_days = other.trial_days
        self.features = list(other.features)
        self.provider_plan_id = other.provider_plan_id or self.provider_plan_id
        self.active = other.active
        self.metadata = dict(other.metadata)
        touch(self)

    def deactivate(self) -> None:
        self.active = False
        touch(self)


@dataclass
class Subscription:
    """客户对某个方案的订阅"""

    customer_id: str
    plan_id: str
    status: SubscriptionStatus
    id: str = field(default_factory=new_id)
    quantity: int = 1
    payment_method_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    cancel_at_period_end: bool = False
    provider_name: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.customer_id:
            raise DomainValidationException("客户ID不能为空", field="customer_id")
        if not self.plan_id:
            raise DomainValidationException("方案ID不能为空", field="plan_id")
        self.status = SubscriptionStatus(self.status)
        self.current_period_start = ensure_utc(self.current_period_start)
        self.current_period_end = ensure_utc(self.current_period_end)
        self.trial_start = ensure_utc(self.trial_start)
        self.trial_end = ensure_utc(self.trial_end)
        self.canceled_at = ensure_utc(self.canceled_at)
        self.created_at = ensure_utc(self.created_at) or utcnow()
        self.updated_at = ensure_utc(self.updated_at) or self.created_at
        if self.metadata is None:
            self.metadata = {}

    def sync_from_provider(
        self,
        *,
        status: SubscriptionStatus,
        plan_id: Optional[str] = None,
        quantity: Optional[int] = None,
        payment_method_id: Optional[str] = None,
        current_period_start: Optional[datetime] = None,
        current_period_end: Optional[datetime] = None,
        trial_start: Optional[datetime] = None,
        trial_end: Optional[datetime] = None,
        cancel_at_period_end: Optional[bool] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        """合并渠道视图；状态直接采用渠道给出的值"""
        self.status = SubscriptionStatus(status)
        if plan_id:
            self.plan_id = plan_id
        if quantity is not None:
            self.quantity = quantity
        if payment_method_id is not None:
            self.payment_method_id = payment_method_id
        if current_period_start is not None:
            self.current_period_start = ensure_utc(current_period_start)
        if current_period_end is not None:
            self.current_period_end = ensure_utc(current_period_end)
        if trial_start is not None:
            self.trial_start = ensure_utc(trial_start)
        if trial_end is not None:
            self.trial_end = ensure_utc(trial_end)
        if cancel_at_period_end is not None:
            self.cancel_at_period_end = cancel_at_period_end
        if metadata is not None:
            self.metadata = dict(metadata)
        touch(self)

    def mark_canceled(self, at: Optional[datetime] = None) -> None:
        """记录取消时间（状态仍以渠道返回为准）"""
        self.canceled_at = ensure_utc(at) or utcnow()
        touch(self)

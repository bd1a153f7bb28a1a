"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
异常按“种类”组织：校验、未找到、无可用渠道、持久化失败，
HTTP 层只依据 code 选择状态码，不做字符串匹配。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# 校验类
# ---------------------------------------------------------------------------
class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
        code: int = BusinessCode.PARAM_VALIDATION_ERROR,
        error_type: str = "DomainValidationError",
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=details,
            field=field,
        )


class PaymentNotRefundableException(DomainValidationException):
    """支付不可退款"""
    def __init__(self, payment_id: str, status: str):
        super().__init__(
            f"支付状态为 {status}，不可退款",
            field="payment_id",
            details={"payment_id": payment_id, "status": status},
            error_type="PaymentNotRefundable",
        )


class RefundExceedsPaymentException(DomainValidationException):
    """退款金额超过可退金额"""
    def __init__(self, refund_amount: int, available: int):
        super().__init__(
            f"退款金额 {refund_amount} 超过可退金额 {available}",
            field="amount",
            details={"amount": refund_amount, "available": available},
            error_type="RefundExceedsPayment",
        )


class InvalidStatusTransitionException(DomainValidationException):
    def __init__(self, current: str, requested: str):
        super().__init__(
            f"争议状态不能从 {current} 变更为 {requested}",
            field="status",
            details={"current": current, "requested": requested},
            code=BusinessCode.INVALID_STATUS_TRANSITION,
            error_type="InvalidStatusTransition",
        )


class InvalidDisputeStateException(DomainValidationException):
    def __init__(self, dispute_id: str, status: str):
        super().__init__(
            f"争议 {dispute_id} 当前状态为 {status}，不接受证据",
            field="status",
            details={"dispute_id": dispute_id, "status": status},
            code=BusinessCode.INVALID_DISPUTE_STATE,
            error_type="InvalidDisputeState",
        )


class InvalidEvidenceException(DomainValidationException):
    def __init__(self, field: str):
        super().__init__(
            f"证据字段 {field} 不能为空",
            field=field,
            code=BusinessCode.INVALID_EVIDENCE,
            error_type="InvalidEvidence",
        )


# ---------------------------------------------------------------------------
# 未找到类
# ---------------------------------------------------------------------------
class NotFoundException(BusinessException):
    """资源不存在（通用）"""

    resource = "Resource"
    label = "资源"

    def __init__(self, identifier: Optional[str] = None):
        details = {"id": identifier} if identifier else None
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message=f"{self.label}不存在" + (f": {identifier}" if identifier else ""),
            error_type=f"{self.resource}NotFound",
            details=details,
        )


class PaymentNotFoundException(NotFoundException):
    resource = "Payment"
    label = "支付"


class PlanNotFoundException(NotFoundException):
    resource = "Plan"
    label = "订阅计划"


class SubscriptionNotFoundException(NotFoundException):
    resource = "Subscription"
    label = "订阅"


class DisputeNotFoundException(NotFoundException):
    resource = "Dispute"
    label = "争议"


# ---------------------------------------------------------------------------
# 渠道可用性
# ---------------------------------------------------------------------------
class NoAvailableProviderException(BusinessException):
    def __init__(self, tried: Optional[list[str]] = None):
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message="没有可用的支付渠道",
            error_type="NoAvailableProvider",
            details={"tried": tried or []},
        )


class ProviderNotRegisteredException(NoAvailableProviderException):
    """实体记录的渠道未注册（渠道亲和性无法满足）"""
    def __init__(self, provider_name: str):
        super().__init__(tried=[provider_name])
        self.message = f"支付渠道 {provider_name} 未注册"
        self.error_type = "ProviderNotRegistered"
        self.args = (self.message,)


# ---------------------------------------------------------------------------
# 持久化
# ---------------------------------------------------------------------------
class PersistenceException(BusinessException):
    def __init__(self, message: str = "账本写入失败", *, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.DATABASE_ERROR,
            message=message,
            error_type="PersistenceError",
            details=details,
        )


class LedgerInconsistencyException(PersistenceException):
    """
    渠道侧已处理（或部分处理），但本地账本未能反映结果

    同时携带渠道异常（可能为 None，表示渠道调用成功）与持久化异常，
    调用方不得吞掉该异常。
    """

    def __init__(
        self,
        *,
        entity: str,
        entity_id: str,
        provider_name: str,
        provider_error: Optional[BaseException],
        persistence_error: BaseException,
        provider_ref: Optional[str] = None,
    ):
        super().__init__(
            f"渠道 {provider_name} 已处理 {entity} {entity_id}，但本地账本未同步",
            details={
                "entity": entity,
                "entity_id": entity_id,
                "provider": provider_name,
                "provider_ref": provider_ref,
                "provider_error": str(provider_error) if provider_error else None,
                "persistence_error": str(persistence_error),
            },
        )
        self.error_type = "LedgerInconsistency"
        self.provider_error = provider_error
        self.persistence_error = persistence_error


# ---------------------------------------------------------------------------
# 渠道调用
# ---------------------------------------------------------------------------
class PaymentProviderError(BusinessException):
    """渠道拒绝或调用失败（不可直接重试）"""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.PROVIDER_ERROR,
        error_type: str = "PaymentProviderError",
    ):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=full_details,
        )
        self.provider = provider
        self.provider_code = provider_code


class PaymentRecoverableError(PaymentProviderError):
    """网络抖动、限流、渠道 5xx 等可重试错误"""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            message,
            provider=provider,
            provider_code=provider_code,
            details=details,
            code=PaymentCode.PROVIDER_RECOVERABLE,
            error_type="PaymentRecoverableError",
        )


class PaymentProviderTimeoutError(PaymentRecoverableError):
    """渠道调用超时：结果未知，与渠道拒绝区分"""

    def __init__(self, *, provider: str, operation: str, timeout: float):
        super().__init__(
            f"渠道 {provider} 调用 {operation} 超时（{timeout}s）",
            provider=provider,
            details={"operation": operation, "timeout": timeout},
        )
        self.code = PaymentCode.TIMEOUT
        self.error_type = "PaymentProviderTimeout"


class PaymentOperationNotSupported(PaymentProviderError):
    def __init__(self, *, provider: str, operation: str):
        super().__init__(
            f"渠道 {provider} 不支持 {operation}",
            provider=provider,
            details={"operation": operation},
            code=PaymentCode.OPERATION_NOT_SUPPORTED,
            error_type="PaymentOperationNotSupported",
        )

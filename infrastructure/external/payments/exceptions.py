"""
支付网关异常

所有网关错误共享 provider / operation / provider_code 三个定位字段，
``retryable`` 决定客户端重试策略是否再次调用网关。
"""
from __future__ import annotations

from typing import Any, Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentGatewayError(BusinessException):
    """网关错误基类"""

    code: int = PaymentCode.PROVIDER_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        operation: Optional[str] = None,
        provider_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.provider = provider
        self.operation = operation
        self.provider_code = provider_code
        full_details: dict[str, Any] = {"provider": provider, "retryable": self.retryable}
        if operation is not None:
            full_details["operation"] = operation
        if provider_code is not None:
            full_details["provider_code"] = provider_code
        if details:
            full_details.update(details)
        super().__init__(
            code=self.code,
            message=message,
            error_type=type(self).__name__,
            details=full_details,
        )


class PaymentProviderError(PaymentGatewayError):
    """网关明确拒绝，重试无意义"""


class PaymentRecoverableError(PaymentGatewayError):
    """网络抖动、限流、超时"""

    code = PaymentCode.PROVIDER_RECOVERABLE
    retryable = True


class PaymentSignatureError(PaymentGatewayError):
    """Webhook 验签失败，在任何存储访问之前抛出"""

    code = PaymentCode.SIGNATURE_ERROR

    def __init__(self, message: str, *, provider: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, provider=provider, operation="parse_webhook", details=details)


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, PaymentGatewayError) and exc.retryable

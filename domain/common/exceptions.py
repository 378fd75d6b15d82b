"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


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


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, *, order_id: Optional[str] = None, payment_intent_id: Optional[str] = None,
                 order_number: Optional[str] = None):
        details = {}
        if order_id is not None:
            details["order_id"] = order_id
        if payment_intent_id is not None:
            details["payment_intent_id"] = payment_intent_id
        if order_number is not None:
            details["order_number"] = order_number
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details=details or None,
        )


class InvalidStatusTransitionException(BusinessException):
    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(
            code=BusinessCode.INVALID_STATUS_TRANSITION,
            message=f"Cannot move order from {current} to {target}",
            error_type="InvalidStatusTransition",
            details={"order_id": order_id, "current_status": current, "target_status": target},
            field="status",
        )


class PaymentIntentMismatchException(BusinessException):
    def __init__(self, order_id: str, payment_intent_id: str):
        super().__init__(
            code=BusinessCode.PAYMENT_INTENT_MISMATCH,
            message="Payment intent does not belong to this order",
            error_type="PaymentIntentMismatch",
            details={"order_id": order_id, "payment_intent_id": payment_intent_id},
            field="payment_intent_id",
        )


class ConcurrentUpdateException(BusinessException):
    def __init__(self, order_id: str, attempts: int):
        super().__init__(
            code=BusinessCode.CONCURRENT_UPDATE,
            message="Order was updated concurrently, please retry",
            error_type="ConcurrentUpdate",
            details={"order_id": order_id, "attempts": attempts},
        )

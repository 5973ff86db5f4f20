"""
业务操作结果与错误码
"""

from enum import Enum
from typing import Any, Generic, List, Optional, TypeVar
from pydantic import BaseModel, Field

T = TypeVar("T")


class CouponErrorCode(str, Enum):
    """优惠券错误码"""
    EMPTY_CODE = "empty_code"  # 未输入优惠券代码
    NOT_FOUND = "not_found"  # 优惠券不存在
    INACTIVE = "inactive"  # 已停用
    EXPIRED = "expired"  # 已过期
    USAGE_LIMIT_REACHED = "usage_limit_reached"  # 使用次数已达上限
    ALREADY_USED_BY_USER = "already_used_by_user"  # 该用户已使用过
    CODE_GENERATION_EXHAUSTED = "code_generation_exhausted"  # 生成唯一代码失败


class ValidationErrorCode(str, Enum):
    """输入校验错误码"""
    INVALID_DISCOUNT_PERCENT = "invalid_discount_percent"
    DUPLICATE_FLASH_SALE = "duplicate_flash_sale"
    MISSING_REQUIRED_SHIPPING_FIELD = "missing_required_shipping_field"
    INVALID_SALE_END = "invalid_sale_end"
    EMPTY_SELECTION = "empty_selection"
    MISSING_PAYMENT_PROOF = "missing_payment_proof"
    PRODUCT_NOT_FOUND = "product_not_found"
    ORDER_ID_CONFLICT = "order_id_conflict"  # 幂等键已被其他用户的订单占用


class WorkflowErrorCode(str, Enum):
    """订单流转错误码"""
    INVALID_TRANSITION = "invalid_transition"
    ORDER_NOT_FOUND = "order_not_found"


class OperationResult(BaseModel, Generic[T]):
    """业务操作结果

    可预期的失败（优惠券无效、状态不匹配等）都以失败结果返回给调用方，
    不以异常形式抛出。
    """

    success: bool = Field(..., description="是否成功")
    data: Optional[T] = Field(None, description="成功时的结果数据")
    error_code: Optional[str] = Field(None, description="失败错误码")
    message: Optional[str] = Field(None, description="错误描述")
    details: List[str] = Field(default_factory=list, description="附加信息，如缺失字段")

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        error_code: Enum,
        message: Optional[str] = None,
        details: Optional[List[str]] = None
    ) -> "OperationResult":
        return cls(
            success=False,
            error_code=error_code.value,
            message=message,
            details=details or []
        )

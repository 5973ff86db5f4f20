"""
优惠券相关数据模型
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, validator
from enum import Enum

from order_engine.models.common import resolve_now, to_local_naive
from order_engine.models.result import CouponErrorCode

MIN_DISCOUNT_PERCENT = 1
MAX_DISCOUNT_PERCENT = 100


class UsageCommitStatus(str, Enum):
    """优惠券使用提交结果"""
    COMMITTED = "committed"  # 本次提交成功
    ALREADY_COMMITTED = "already_committed"  # 该订单已提交过，幂等返回
    ALREADY_USED_BY_USER = "already_used_by_user"  # 用户已使用过该券
    USAGE_LIMIT_REACHED = "usage_limit_reached"  # 总次数已满
    COUPON_NOT_FOUND = "coupon_not_found"  # 优惠券已被删除

    @property
    def is_success(self) -> bool:
        return self in (UsageCommitStatus.COMMITTED, UsageCommitStatus.ALREADY_COMMITTED)


class Coupon(BaseModel):
    """优惠券基础模型"""

    coupon_id: str = Field(..., description="优惠券ID")
    coupon_code: str = Field(..., min_length=1, max_length=50, description="优惠券代码")
    discount_percent: int = Field(
        ..., ge=MIN_DISCOUNT_PERCENT, le=MAX_DISCOUNT_PERCENT, description="折扣百分比"
    )
    is_active: bool = Field(default=True, description="是否启用")
    expires_at: Optional[datetime] = Field(None, description="过期时间")
    max_usage: Optional[int] = Field(None, ge=1, description="总使用次数上限")
    usage_count: int = Field(default=0, ge=0, description="已使用次数")
    used_by: List[str] = Field(default_factory=list, description="已使用的用户ID")
    created_by: str = Field(..., description="创建者（管理员ID）")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @validator("expires_at")
    def normalize_expires_at(cls, v):
        return to_local_naive(v)

    def matches_code(self, code: str) -> bool:
        """大小写不敏感的代码匹配"""
        return self.coupon_code.upper() == code.strip().upper()

    def is_expired(self, current_time: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < resolve_now(current_time)

    def is_used_up(self) -> bool:
        return self.max_usage is not None and self.usage_count >= self.max_usage

    def has_been_used_by(self, user_id: str) -> bool:
        return user_id in self.used_by

    def calculate_discount(self, amount: int) -> int:
        """折扣金额，向下取整"""
        return (amount * self.discount_percent) // 100


class CouponCreate(BaseModel):
    """创建优惠券模型

    折扣百分比在服务层校验，超出范围返回 INVALID_DISCOUNT_PERCENT，不做截断。
    """

    discount_percent: int = Field(..., description="折扣百分比 1-100")
    expires_at: Optional[datetime] = None
    max_usage: Optional[int] = Field(None, ge=1)

    @validator("expires_at")
    def normalize_expires_at(cls, v):
        """带时区的过期时间统一转换为本地时间"""
        return to_local_naive(v)


class CouponValidation(BaseModel):
    """优惠券验证结果"""

    is_valid: bool = Field(..., description="是否有效")
    coupon: Optional[Coupon] = Field(None, description="优惠券信息")
    error_code: Optional[CouponErrorCode] = Field(None, description="错误码")
    error_message: Optional[str] = Field(None, description="错误描述")


class CouponUsageSummary(BaseModel):
    """优惠券使用概况"""

    coupon_id: str
    coupon_code: str
    usage_count: int
    max_usage: Optional[int]
    remaining: Optional[int]
    usage_percentage: Optional[float]
    used_by: List[str]


class CouponResponse(BaseModel):
    """优惠券响应模型"""

    coupon_id: str
    coupon_code: str
    discount_percent: int
    is_active: bool
    is_expired: bool
    expires_at: Optional[datetime]
    max_usage: Optional[int]
    usage_count: int
    created_by: str
    created_at: datetime

    @classmethod
    def from_coupon(cls, coupon: Coupon, current_time: Optional[datetime] = None) -> "CouponResponse":
        """从Coupon模型创建响应对象"""
        return cls(
            coupon_id=coupon.coupon_id,
            coupon_code=coupon.coupon_code,
            discount_percent=coupon.discount_percent,
            is_active=coupon.is_active,
            is_expired=coupon.is_expired(current_time),
            expires_at=coupon.expires_at,
            max_usage=coupon.max_usage,
            usage_count=coupon.usage_count,
            created_by=coupon.created_by,
            created_at=coupon.created_at
        )

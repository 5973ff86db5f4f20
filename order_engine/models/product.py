"""
商品及限时折扣相关数据模型
"""

from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, validator

from order_engine.models.common import resolve_now, to_local_naive


def apply_percent_off(base_price: int, discount_percent: int) -> int:
    """按百分比折扣计算售价，折扣金额向下取整"""
    return base_price - (base_price * discount_percent) // 100


class Product(BaseModel):
    """商品模型

    折扣字段只由限时折扣的开始/结束操作写入；过期后记录本身不会被修改，
    读取价格时必须用 is_sale_active 判断。
    """

    product_id: str = Field(..., description="商品ID")
    title: str = Field(..., min_length=1, max_length=200, description="商品名称")
    category: str = Field(..., description="商品分类")
    description: Optional[str] = Field(None, max_length=2000, description="商品描述")
    base_price: int = Field(..., ge=0, description="基础价格")
    sale_discount_percent: Optional[int] = Field(None, ge=1, le=100, description="限时折扣百分比")
    sale_ends_at: Optional[datetime] = Field(None, description="限时折扣结束时间")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @validator("sale_ends_at")
    def normalize_sale_ends_at(cls, v):
        return to_local_naive(v)

    @property
    def has_sale_fields(self) -> bool:
        """存储中是否仍带有折扣字段（不考虑是否过期）"""
        return self.sale_discount_percent is not None and self.sale_ends_at is not None

    def is_sale_active(self, current_time: Optional[datetime] = None) -> bool:
        """折扣是否处于有效期内"""
        if not self.has_sale_fields:
            return False
        current_time = resolve_now(current_time)
        return current_time < self.sale_ends_at

    def is_sale_expired(self, current_time: Optional[datetime] = None) -> bool:
        """折扣已过期但尚未被管理员结束"""
        return self.has_sale_fields and not self.is_sale_active(current_time)

    def effective_price(self, current_time: Optional[datetime] = None) -> int:
        """当前实际售价"""
        if self.is_sale_active(current_time):
            return apply_percent_off(self.base_price, self.sale_discount_percent)
        return self.base_price


class ProductCreate(BaseModel):
    """创建商品模型（目录服务写入）"""

    product_id: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=200)
    category: str = Field(...)
    description: Optional[str] = Field(None, max_length=2000)
    base_price: int = Field(..., ge=0)


class FlashSaleStart(BaseModel):
    """开始限时折扣请求

    折扣百分比在服务层校验，以便返回明确的错误码而不是请求校验失败。
    """

    discount_percent: int = Field(..., description="折扣百分比 1-100")
    ends_at: datetime = Field(..., description="结束时间")

    @validator("ends_at")
    def normalize_ends_at(cls, v):
        """带时区的结束时间统一转换为本地时间"""
        return to_local_naive(v)


class PriceView(BaseModel):
    """某一时刻的商品价格视图"""

    product_id: str
    title: str
    base_price: int
    effective_price: int
    is_on_sale: bool
    sale_discount_percent: Optional[int] = None
    sale_ends_at: Optional[datetime] = None
    seconds_remaining: Optional[int] = None

    @classmethod
    def from_product(cls, product: Product, current_time: Optional[datetime] = None) -> "PriceView":
        current_time = resolve_now(current_time)
        on_sale = product.is_sale_active(current_time)
        return cls(
            product_id=product.product_id,
            title=product.title,
            base_price=product.base_price,
            effective_price=product.effective_price(current_time),
            is_on_sale=on_sale,
            sale_discount_percent=product.sale_discount_percent if on_sale else None,
            sale_ends_at=product.sale_ends_at if on_sale else None,
            seconds_remaining=int((product.sale_ends_at - current_time).total_seconds()) if on_sale else None
        )


class AddToCartRequest(BaseModel):
    """加入购物车请求"""

    product_id: str = Field(...)
    quantity: int = Field(default=1, ge=1)
    attributes: Dict[str, str] = Field(default_factory=dict, description="尺码、颜色等")


class ExpiredSaleReport(BaseModel):
    """已过期但未结束的限时折扣"""

    product_id: str
    title: str
    sale_discount_percent: int
    sale_ends_at: datetime
    overdue_seconds: int


class FlashSaleListing(BaseModel):
    """限时折扣列表"""

    active: List[PriceView] = Field(default_factory=list)
    expired_not_stopped: List[ExpiredSaleReport] = Field(default_factory=list)

"""
购物车与结算相关数据模型
"""

from typing import ClassVar, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field, validator
from enum import Enum


class ShippingMethod(str, Enum):
    """配送方式枚举（从慢到快）"""
    STANDARD = "standard"
    REGULAR = "regular"
    EXPRESS = "express"


class PaymentMethod(str, Enum):
    """支付方式枚举"""
    BANK_TRANSFER = "bank_transfer"  # 银行转账，需上传凭证
    CASH_ON_DELIVERY = "cash_on_delivery"  # 货到付款


class CartLineItem(BaseModel):
    """购物车项目模型

    加入购物车时从商品快照而来，unit_price 为实际收取的单价，
    pre_sale_price 仅在商品当时处于限时折扣时存在。
    """

    line_id: str = Field(..., description="购物车项目ID")
    product_id: str = Field(..., description="商品ID")
    title: str = Field(..., description="商品名称")
    unit_price: int = Field(..., ge=0, description="实际单价")
    pre_sale_price: Optional[int] = Field(None, ge=0, description="折扣前单价")
    quantity: int = Field(default=1, ge=1, description="数量")
    attributes: Dict[str, str] = Field(default_factory=dict, description="尺码、颜色等属性")
    selected: bool = Field(default=True, description="是否勾选结算")

    @validator('pre_sale_price')
    def validate_pre_sale_price(cls, v, values):
        """折扣前单价不能低于实际单价"""
        if v is not None and 'unit_price' in values and v < values['unit_price']:
            raise ValueError('折扣前单价不能低于实际单价')
        return v

    @property
    def is_sale(self) -> bool:
        return self.pre_sale_price is not None and self.pre_sale_price > self.unit_price

    @property
    def reference_price(self) -> int:
        """计算原价小计使用的单价"""
        return max(self.pre_sale_price or 0, self.unit_price)


class ShippingDetails(BaseModel):
    """收货信息

    字段均可为空，缺失项由下单流程统一检查并返回错误码。
    """

    REQUIRED_FIELDS: ClassVar[Tuple[str, ...]] = (
        "email", "phone", "first_name", "last_name", "address",
        "city", "district", "subdistrict", "zip_code",
    )

    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    subdistrict: Optional[str] = None
    zip_code: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)

    def missing_fields(self) -> List[str]:
        """返回为空的必填字段"""
        return [
            name for name in self.REQUIRED_FIELDS
            if not (getattr(self, name) or "").strip()
        ]


class PriceRequest(BaseModel):
    """价格预览请求"""

    line_items: List[CartLineItem] = Field(default_factory=list)
    shipping_method: ShippingMethod = Field(default=ShippingMethod.STANDARD)
    coupon_code: Optional[str] = None
    user_id: Optional[str] = None

"""
订单相关数据模型
"""

from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, validator
from enum import Enum

from order_engine.models.cart import CartLineItem, PaymentMethod, ShippingDetails, ShippingMethod


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "pending"  # 待确认
    CONFIRMED = "confirmed"  # 已接单
    PACKING = "packing"  # 打包中
    SHIPPED = "shipped"  # 已交快递
    DELIVERED = "delivered"  # 已送达

    @property
    def next_status(self) -> Optional["OrderStatus"]:
        """下一个状态，终态返回None"""
        return ORDER_STATUS_FLOW.get(self)

    @property
    def is_terminal(self) -> bool:
        return self.next_status is None


# 线性流转：不可跳过，不可回退
ORDER_STATUS_FLOW: Dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.CONFIRMED,
    OrderStatus.CONFIRMED: OrderStatus.PACKING,
    OrderStatus.PACKING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
}

# 仍在处理中的状态
IN_PROGRESS_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PACKING)


class PriceBreakdown(BaseModel):
    """价格计算结果模型"""

    gross_subtotal: int = Field(..., ge=0, description="按原价计算的小计")
    item_savings: int = Field(default=0, ge=0, description="限时折扣节省")
    net_before_coupon: int = Field(..., ge=0, description="优惠券前净额")
    coupon_discount: int = Field(default=0, ge=0, description="优惠券折扣")
    shipping_cost: int = Field(default=0, ge=0, description="运费")
    tax: int = Field(default=0, ge=0, description="税费")
    total: int = Field(..., ge=0, description="应付总额")
    item_count: int = Field(default=0, ge=0, description="商品件数")
    coupon_code: Optional[str] = Field(None, description="使用的优惠券代码")

    @validator('net_before_coupon')
    def validate_net_before_coupon(cls, v, values):
        """净额 = 原价小计 - 折扣节省"""
        if 'gross_subtotal' in values and 'item_savings' in values:
            if v != values['gross_subtotal'] - values['item_savings']:
                raise ValueError('优惠券前净额计算错误')
        return v

    @property
    def total_savings(self) -> int:
        return self.item_savings + self.coupon_discount


class Order(BaseModel):
    """订单基础模型

    金额字段在下单时固定，之后商品或优惠券变化都不会回溯修改。
    """

    order_id: str = Field(..., description="订单ID")
    user_id: str = Field(..., description="用户ID")
    items: List[CartLineItem] = Field(..., min_length=1, description="下单商品快照")
    shipping_details: ShippingDetails = Field(..., description="收货信息")
    shipping_method: ShippingMethod = Field(..., description="配送方式")
    payment_method: PaymentMethod = Field(..., description="支付方式")
    payment_proof_ref: Optional[str] = Field(None, description="付款凭证引用")
    breakdown: PriceBreakdown = Field(..., description="下单时的价格明细")
    applied_coupon_id: Optional[str] = Field(None, description="使用的优惠券ID")
    applied_coupon_code: Optional[str] = Field(None, description="使用的优惠券代码")
    order_status: OrderStatus = Field(default=OrderStatus.PENDING, description="订单状态")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def total_amount(self) -> int:
        return self.breakdown.total

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def is_delivered(self) -> bool:
        return self.order_status == OrderStatus.DELIVERED


class PlaceOrderRequest(BaseModel):
    """下单请求模型

    order_id 可由客户端生成，重试同一请求时不会重复下单或重复核销优惠券。
    """

    user_id: str = Field(..., description="用户ID")
    line_items: List[CartLineItem] = Field(default_factory=list, description="购物车项目")
    shipping_details: ShippingDetails = Field(default_factory=ShippingDetails)
    shipping_method: ShippingMethod = Field(default=ShippingMethod.STANDARD)
    payment_method: PaymentMethod = Field(...)
    payment_proof_ref: Optional[str] = Field(None, max_length=500)
    coupon_code: Optional[str] = Field(None, max_length=50)
    order_id: Optional[str] = Field(None, max_length=50, description="幂等键")


class OrderResponse(BaseModel):
    """订单响应模型"""

    order_id: str
    user_id: str
    items: List[CartLineItem]
    shipping_method: ShippingMethod
    payment_method: PaymentMethod
    breakdown: PriceBreakdown
    total_amount: int
    applied_coupon_code: Optional[str]
    order_status: OrderStatus
    next_status: Optional[OrderStatus]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        """从Order模型创建响应对象"""
        return cls(
            order_id=order.order_id,
            user_id=order.user_id,
            items=order.items,
            shipping_method=order.shipping_method,
            payment_method=order.payment_method,
            breakdown=order.breakdown,
            total_amount=order.total_amount,
            applied_coupon_code=order.applied_coupon_code,
            order_status=order.order_status,
            next_status=order.order_status.next_status,
            created_at=order.created_at,
            updated_at=order.updated_at
        )


class OrderStatistics(BaseModel):
    """管理后台订单统计"""

    revenue: int = Field(default=0, description="订单总金额")
    total_orders: int = Field(default=0)
    in_progress_orders: int = Field(default=0, description="待确认/已接单/打包中")
    orders_by_status: Dict[str, int] = Field(default_factory=dict)

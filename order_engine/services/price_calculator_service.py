"""
价格计算服务
购物车勾选商品 + 配送方式 + 可选优惠券 → 价格明细
"""

from typing import Dict, Iterable, Optional
from datetime import datetime

from pydantic import BaseModel

from order_engine.core.config import settings
from order_engine.models.cart import CartLineItem, ShippingMethod
from order_engine.models.coupon import Coupon, CouponValidation
from order_engine.models.order import PriceBreakdown
from order_engine.services.coupon_service import CouponService


def calculate_price(
    line_items: Iterable[CartLineItem],
    shipping_method: ShippingMethod,
    coupon: Optional[Coupon] = None,
    *,
    shipping_fees: Optional[Dict[str, int]] = None,
    tax_amount: Optional[int] = None
) -> PriceBreakdown:
    """
    计算价格明细，纯函数，可反复调用用于实时预览

    - 原价小计按折扣前单价计算
    - 优惠券折扣基于扣除限时折扣后的净额，向下取整
    - 运费按配送方式固定收取，税费为每单固定金额
    - 应付总额最低为0
    """
    shipping_fees = shipping_fees if shipping_fees is not None else settings.shipping_fees
    tax = settings.flat_tax_amount if tax_amount is None else tax_amount

    selected = [item for item in line_items if item.selected]

    gross_subtotal = sum(item.reference_price * item.quantity for item in selected)
    item_savings = sum(
        (item.pre_sale_price - item.unit_price) * item.quantity
        for item in selected if item.is_sale
    )
    net_before_coupon = gross_subtotal - item_savings

    coupon_discount = coupon.calculate_discount(net_before_coupon) if coupon else 0
    shipping_cost = shipping_fees[ShippingMethod(shipping_method).value]

    total = max(0, net_before_coupon - coupon_discount + shipping_cost + tax)

    return PriceBreakdown(
        gross_subtotal=gross_subtotal,
        item_savings=item_savings,
        net_before_coupon=net_before_coupon,
        coupon_discount=coupon_discount,
        shipping_cost=shipping_cost,
        tax=tax,
        total=total,
        item_count=sum(item.quantity for item in selected),
        coupon_code=coupon.coupon_code if coupon else None
    )


class PricePreview(BaseModel):
    """结算页价格预览"""

    breakdown: PriceBreakdown
    coupon_validation: Optional[CouponValidation] = None


class PriceCalculatorService:
    """价格计算服务"""

    def __init__(self, coupon_service: CouponService):
        self.coupon_service = coupon_service
        self.shipping_fees = settings.shipping_fees
        self.tax_amount = settings.flat_tax_amount

    def calculate(
        self,
        line_items: Iterable[CartLineItem],
        shipping_method: ShippingMethod,
        coupon: Optional[Coupon] = None
    ) -> PriceBreakdown:
        return calculate_price(
            line_items,
            shipping_method,
            coupon,
            shipping_fees=self.shipping_fees,
            tax_amount=self.tax_amount
        )

    async def preview(
        self,
        line_items: Iterable[CartLineItem],
        shipping_method: ShippingMethod,
        coupon_code: Optional[str] = None,
        user_id: Optional[str] = None,
        current_time: Optional[datetime] = None
    ) -> PricePreview:
        """
        价格预览

        输入了优惠券代码时先做校验，无效的券不参与计算，
        校验结果一并返回给结算页展示。
        """
        validation = None
        coupon = None
        if coupon_code:
            validation = await self.coupon_service.validate_coupon(
                coupon_code, user_id=user_id, current_time=current_time
            )
            if validation.is_valid:
                coupon = validation.coupon

        breakdown = self.calculate(line_items, shipping_method, coupon)
        return PricePreview(breakdown=breakdown, coupon_validation=validation)

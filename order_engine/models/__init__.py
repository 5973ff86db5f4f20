"""
数据模型包初始化文件
"""

from .result import (
    OperationResult,
    CouponErrorCode,
    ValidationErrorCode,
    WorkflowErrorCode
)
from .product import Product, ProductCreate, PriceView
from .cart import CartLineItem, ShippingDetails, ShippingMethod, PaymentMethod
from .coupon import Coupon, CouponCreate, CouponValidation, UsageCommitStatus
from .order import Order, OrderStatus, PriceBreakdown, PlaceOrderRequest

__all__ = [
    "OperationResult",
    "CouponErrorCode",
    "ValidationErrorCode",
    "WorkflowErrorCode",
    "Product",
    "ProductCreate",
    "PriceView",
    "CartLineItem",
    "ShippingDetails",
    "ShippingMethod",
    "PaymentMethod",
    "Coupon",
    "CouponCreate",
    "CouponValidation",
    "UsageCommitStatus",
    "Order",
    "OrderStatus",
    "PriceBreakdown",
    "PlaceOrderRequest"
]

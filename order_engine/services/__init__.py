"""
服务包初始化文件
"""

from .common_cache import SimpleCache, coupon_cache, order_cache
from .coupon_service import CouponService, validate_coupon
from .price_calculator_service import PriceCalculatorService, calculate_price
from .flash_sale_service import FlashSaleService
from .order_service import OrderService
from .order_workflow_service import OrderWorkflowService

__all__ = [
    "SimpleCache",
    "coupon_cache",
    "order_cache",
    "CouponService",
    "validate_coupon",
    "PriceCalculatorService",
    "calculate_price",
    "FlashSaleService",
    "OrderService",
    "OrderWorkflowService"
]

"""
仓库包初始化文件 - 数据库访问层
"""

from .product_repository import ProductRepository
from .coupon_repository import CouponRepository
from .order_repository import OrderRepository

__all__ = [
    "ProductRepository",
    "CouponRepository",
    "OrderRepository"
]

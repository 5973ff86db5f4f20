"""
数据库模型包初始化文件
"""

from .product_db import ProductDB
from .coupon_db import CouponDB, CouponRedemptionDB
from .order_db import OrderDB

__all__ = [
    "ProductDB",
    "CouponDB",
    "CouponRedemptionDB",
    "OrderDB"
]

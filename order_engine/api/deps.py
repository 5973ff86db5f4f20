"""
路由依赖：按请求创建仓库与服务
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.core.database import get_db_session
from order_engine.repositories import CouponRepository, OrderRepository, ProductRepository
from order_engine.services.coupon_service import CouponService
from order_engine.services.flash_sale_service import FlashSaleService
from order_engine.services.order_service import OrderService
from order_engine.services.order_workflow_service import OrderWorkflowService
from order_engine.services.price_calculator_service import PriceCalculatorService


def get_coupon_service(db: AsyncSession = Depends(get_db_session)) -> CouponService:
    return CouponService(CouponRepository(db))


def get_flash_sale_service(db: AsyncSession = Depends(get_db_session)) -> FlashSaleService:
    return FlashSaleService(ProductRepository(db))


def get_price_calculator_service(
    coupon_service: CouponService = Depends(get_coupon_service)
) -> PriceCalculatorService:
    return PriceCalculatorService(coupon_service)


def get_order_service(db: AsyncSession = Depends(get_db_session)) -> OrderService:
    return OrderService(OrderRepository(db), CouponRepository(db))


def get_order_workflow_service(db: AsyncSession = Depends(get_db_session)) -> OrderWorkflowService:
    return OrderWorkflowService(OrderRepository(db))

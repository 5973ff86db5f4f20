"""
限时折扣服务层
管理商品的限时折扣窗口，并为购物车提供价格快照
"""

import logging
import uuid
from typing import Dict, List, Optional
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from order_engine.core.exceptions import StorageError
from order_engine.core.redis import event_publisher
from order_engine.models.cart import CartLineItem
from order_engine.models.common import resolve_now
from order_engine.models.coupon import MIN_DISCOUNT_PERCENT, MAX_DISCOUNT_PERCENT
from order_engine.models.product import (
    ExpiredSaleReport,
    FlashSaleListing,
    FlashSaleStart,
    PriceView,
    Product
)
from order_engine.models.result import OperationResult, ValidationErrorCode
from order_engine.repositories.product_repository import ProductRepository

logger = logging.getLogger(__name__)


class FlashSaleService:
    """限时折扣服务

    折扣到期不会自动清除，商品记录保持“折扣中”直到管理员手动结束；
    所有价格读取都按当前时间判断折扣是否仍有效。
    """

    def __init__(self, product_repo: ProductRepository):
        self.product_repo = product_repo
        self.events = event_publisher

    async def get_product(self, product_id: str) -> Optional[Product]:
        try:
            db_product = await self.product_repo.get_by_product_id(product_id)
        except SQLAlchemyError as e:
            logger.error(f"获取商品失败 {product_id}: {e}")
            raise StorageError(str(e), "get_product") from e

        if not db_product:
            return None
        return self.product_repo.to_model(db_product)

    async def start_sale(
        self,
        product_id: str,
        sale_data: FlashSaleStart,
        current_time: Optional[datetime] = None
    ) -> OperationResult[PriceView]:
        """开始限时折扣"""
        current_time = resolve_now(current_time)
        percent = sale_data.discount_percent

        if percent < MIN_DISCOUNT_PERCENT or percent > MAX_DISCOUNT_PERCENT:
            return OperationResult.fail(
                ValidationErrorCode.INVALID_DISCOUNT_PERCENT,
                f"折扣百分比必须在{MIN_DISCOUNT_PERCENT}-{MAX_DISCOUNT_PERCENT}之间"
            )

        if sale_data.ends_at <= current_time:
            return OperationResult.fail(
                ValidationErrorCode.INVALID_SALE_END,
                "结束时间必须晚于当前时间"
            )

        try:
            if not await self.product_repo.get_by_product_id(product_id):
                return OperationResult.fail(ValidationErrorCode.PRODUCT_NOT_FOUND, "商品不存在")

            started = await self.product_repo.start_sale(
                product_id=product_id,
                discount_percent=percent,
                ends_at=sale_data.ends_at,
                current_time=current_time
            )
            if not started:
                return OperationResult.fail(
                    ValidationErrorCode.DUPLICATE_FLASH_SALE,
                    "该商品已有进行中的限时折扣"
                )

            product = await self.get_product(product_id)
        except SQLAlchemyError as e:
            logger.error(f"开始限时折扣失败 {product_id}: {e}")
            raise StorageError(str(e), "start_sale") from e

        logger.info(f"限时折扣已开始: {product_id} {percent}% 至 {sale_data.ends_at}")
        await self.events.publish("flash_sale.started", {
            "product_id": product_id,
            "discount_percent": percent,
            "ends_at": sale_data.ends_at
        })
        return OperationResult.ok(PriceView.from_product(product, current_time))

    async def stop_sale(self, product_id: str) -> OperationResult[PriceView]:
        """结束限时折扣，恢复基础价格"""
        try:
            stopped = await self.product_repo.stop_sale(product_id)
            if not stopped:
                return OperationResult.fail(ValidationErrorCode.PRODUCT_NOT_FOUND, "商品不存在")
            product = await self.get_product(product_id)
        except SQLAlchemyError as e:
            logger.error(f"结束限时折扣失败 {product_id}: {e}")
            raise StorageError(str(e), "stop_sale") from e

        logger.info(f"限时折扣已结束: {product_id}")
        await self.events.publish("flash_sale.stopped", {"product_id": product_id})
        return OperationResult.ok(PriceView.from_product(product))

    async def get_price_view(
        self,
        product_id: str,
        current_time: Optional[datetime] = None
    ) -> Optional[PriceView]:
        """读取商品当前价格"""
        product = await self.get_product(product_id)
        if not product:
            return None
        return PriceView.from_product(product, current_time)

    async def build_line_item(
        self,
        product_id: str,
        quantity: int = 1,
        attributes: Optional[Dict[str, str]] = None,
        current_time: Optional[datetime] = None
    ) -> OperationResult[CartLineItem]:
        """按加入购物车时刻的价格生成购物车项目"""
        current_time = resolve_now(current_time)
        product = await self.get_product(product_id)
        if not product:
            return OperationResult.fail(ValidationErrorCode.PRODUCT_NOT_FOUND, "商品不存在")

        on_sale = product.is_sale_active(current_time)
        line_item = CartLineItem(
            line_id=str(uuid.uuid4()),
            product_id=product.product_id,
            title=product.title,
            unit_price=product.effective_price(current_time),
            pre_sale_price=product.base_price if on_sale else None,
            quantity=quantity,
            attributes=attributes or {}
        )
        return OperationResult.ok(line_item)

    async def list_active_sales(self, current_time: Optional[datetime] = None) -> List[PriceView]:
        """进行中的限时折扣"""
        listing = await self.list_flash_sales(current_time)
        return listing.active

    async def list_expired_sales(
        self,
        current_time: Optional[datetime] = None
    ) -> List[ExpiredSaleReport]:
        """已过期但管理员尚未结束的限时折扣"""
        listing = await self.list_flash_sales(current_time)
        return listing.expired_not_stopped

    async def list_flash_sales(self, current_time: Optional[datetime] = None) -> FlashSaleListing:
        """带折扣字段的商品，按是否仍在有效期内分组"""
        current_time = resolve_now(current_time)
        try:
            db_products = await self.product_repo.get_products_with_sale()
        except SQLAlchemyError as e:
            logger.error(f"获取限时折扣商品失败: {e}")
            raise StorageError(str(e), "list_flash_sales") from e

        listing = FlashSaleListing()
        for db_product in db_products:
            product = self.product_repo.to_model(db_product)
            if product.is_sale_active(current_time):
                listing.active.append(PriceView.from_product(product, current_time))
            else:
                listing.expired_not_stopped.append(ExpiredSaleReport(
                    product_id=product.product_id,
                    title=product.title,
                    sale_discount_percent=product.sale_discount_percent,
                    sale_ends_at=product.sale_ends_at,
                    overdue_seconds=int((current_time - product.sale_ends_at).total_seconds())
                ))

        return listing

"""
商品数据库操作层
"""

from typing import List, Optional
from datetime import datetime

from sqlalchemy import select, update, and_, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.models.product import Product, ProductCreate
from order_engine.models.database.product_db import ProductDB


class ProductRepository:
    """商品数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_product_id(self, product_id: str) -> Optional[ProductDB]:
        """根据商品ID获取商品"""
        result = await self.db.execute(
            select(ProductDB)
            .where(ProductDB.product_id == product_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, product_data: ProductCreate) -> ProductDB:
        """创建商品"""
        now = datetime.now()
        db_product = ProductDB(
            product_id=product_data.product_id,
            title=product_data.title,
            category=product_data.category,
            description=product_data.description,
            base_price=product_data.base_price,
            created_at=now,
            updated_at=now
        )
        self.db.add(db_product)
        await self.db.flush()
        return db_product

    async def get_products_with_sale(self) -> List[ProductDB]:
        """获取所有带折扣字段的商品（包括已过期未结束的）"""
        result = await self.db.execute(
            select(ProductDB)
            .where(
                and_(
                    ProductDB.sale_discount_percent.is_not(None),
                    ProductDB.sale_ends_at.is_not(None)
                )
            )
            .order_by(ProductDB.sale_ends_at)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    async def start_sale(
        self,
        product_id: str,
        discount_percent: int,
        ends_at: datetime,
        current_time: datetime
    ) -> bool:
        """开始限时折扣

        条件更新：仅当商品没有处于有效期内的折扣时才写入，
        并发开启同一商品的折扣只有一个会成功。
        """
        result = await self.db.execute(
            update(ProductDB)
            .where(
                and_(
                    ProductDB.product_id == product_id,
                    or_(
                        ProductDB.sale_ends_at.is_(None),
                        ProductDB.sale_ends_at <= current_time
                    )
                )
            )
            .values(
                sale_discount_percent=discount_percent,
                sale_ends_at=ends_at,
                updated_at=current_time
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def stop_sale(self, product_id: str) -> bool:
        """结束限时折扣，恢复基础价格"""
        result = await self.db.execute(
            update(ProductDB)
            .where(ProductDB.product_id == product_id)
            .values(
                sale_discount_percent=None,
                sale_ends_at=None,
                updated_at=datetime.now()
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def count_products(self) -> int:
        """商品总数"""
        result = await self.db.execute(select(func.count(ProductDB.product_id)))
        return result.scalar() or 0

    def to_model(self, db_product: ProductDB) -> Product:
        """转换为Pydantic模型"""
        return Product(
            product_id=db_product.product_id,
            title=db_product.title,
            category=db_product.category,
            description=db_product.description,
            base_price=db_product.base_price,
            sale_discount_percent=db_product.sale_discount_percent,
            sale_ends_at=db_product.sale_ends_at,
            created_at=db_product.created_at,
            updated_at=db_product.updated_at
        )

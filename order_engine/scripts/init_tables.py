"""
订单引擎数据库表初始化脚本

运行方式:
python -m order_engine.scripts.init_tables
python -m order_engine.scripts.init_tables --check
"""

import asyncio
import logging
import sys
from sqlalchemy import text

from order_engine.core import database
from order_engine.core.database import Base, init_database, close_database
from order_engine.models.database import ProductDB, CouponDB, CouponRedemptionDB, OrderDB  # noqa: F401

logger = logging.getLogger(__name__)

EXPECTED_TABLES = ["coupon_redemptions", "coupons", "orders", "products"]


async def create_tables():
    """创建商品、优惠券、核销记录、订单数据表"""
    try:
        await init_database()

        if not database.engine:
            raise RuntimeError("数据库引擎未初始化")

        logger.info("开始创建订单引擎数据表...")

        async with database.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("数据表创建成功")

            await _create_additional_constraints(conn)

        logger.info("数据库初始化完成")

    except Exception as e:
        logger.error(f"创建数据表失败: {e}")
        raise
    finally:
        await close_database()


async def _create_additional_constraints(conn):
    """创建检查约束（PostgreSQL）"""
    constraints_sql = [
        """
        ALTER TABLE coupons
        ADD CONSTRAINT chk_coupon_discount_percent
        CHECK (discount_percent BETWEEN 1 AND 100)
        """,
        """
        ALTER TABLE coupons
        ADD CONSTRAINT chk_coupon_usage_count
        CHECK (max_usage IS NULL OR usage_count <= max_usage)
        """,
        """
        ALTER TABLE products
        ADD CONSTRAINT chk_product_sale_percent
        CHECK (sale_discount_percent IS NULL OR sale_discount_percent BETWEEN 1 AND 100)
        """,
        """
        ALTER TABLE orders
        ADD CONSTRAINT chk_order_total_amount
        CHECK (total_amount >= 0)
        """
    ]

    for constraint_sql in constraints_sql:
        try:
            async with conn.begin_nested():
                await conn.execute(text(constraint_sql))
            logger.info("约束创建成功")
        except Exception as e:
            if "already exists" in str(e).lower():
                logger.info("约束已存在，跳过")
            else:
                logger.warning(f"创建约束失败: {e}")


async def check_tables_exist() -> bool:
    """检查表是否存在"""
    try:
        await init_database()

        async with database.engine.begin() as conn:
            result = await conn.execute(text(
                """
                SELECT table_name
                FROM information_schema.tables
                WHERE table_schema = 'public'
                AND table_name IN ('products', 'coupons', 'coupon_redemptions', 'orders')
                ORDER BY table_name
                """
            ))
            tables = [row[0] for row in result.fetchall()]

        missing_tables = set(EXPECTED_TABLES) - set(tables)
        if missing_tables:
            logger.warning(f"缺少表: {missing_tables}")
            return False

        logger.info("所有数据表都存在")
        return True

    except Exception as e:
        logger.error(f"检查表存在性失败: {e}")
        return False
    finally:
        await close_database()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if "--check" in sys.argv:
        sys.exit(0 if asyncio.run(check_tables_exist()) else 1)
    asyncio.run(create_tables())

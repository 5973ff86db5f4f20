"""
测试配置文件 - pytest fixtures和共用配置
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from order_engine.core.database import Base
from order_engine.models.database import ProductDB, CouponDB, CouponRedemptionDB, OrderDB  # noqa: F401
from order_engine.models.cart import CartLineItem, ShippingDetails
from order_engine.models.coupon import Coupon
from order_engine.models.product import ProductCreate


# 固定的“当前时间”，所有时间相关的断言都以它为基准
NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest_asyncio.fixture(scope="function")
async def test_db_engine():
    """测试数据库引擎 - 内存SQLite"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )

    # 让SQLite按SQLAlchemy的方式开启事务，保存点才能正确回滚
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_db_engine) -> AsyncSession:
    """测试数据库会话"""
    session_maker = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest.fixture
def mock_cache():
    """模拟缓存"""
    cache = AsyncMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock(return_value=True)
    cache.delete = AsyncMock(return_value=True)
    cache.delete_pattern = AsyncMock(return_value=0)
    return cache


@pytest.fixture
def mock_events():
    """模拟事件发布器"""
    events = AsyncMock()
    events.publish = AsyncMock(return_value=True)
    return events


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def sample_shipping_details():
    """完整的收货信息"""
    return ShippingDetails(
        email="buyer@example.com",
        phone="081234567890",
        first_name="Siti",
        last_name="Rahma",
        address="Jl. Merdeka No. 10",
        city="Bandung",
        district="Coblong",
        subdistrict="Dago",
        zip_code="40135"
    )


@pytest.fixture
def sample_line_items():
    """一件原价商品 + 一件限时折扣商品"""
    return [
        CartLineItem(
            line_id="line_001",
            product_id="prod_jacket",
            title="Denim Jacket",
            unit_price=250000,
            quantity=1,
            attributes={"size": "L"}
        ),
        CartLineItem(
            line_id="line_002",
            product_id="prod_shirt",
            title="Linen Shirt",
            unit_price=50000,
            pre_sale_price=100000,
            quantity=1,
            attributes={"size": "M", "color": "white"}
        ),
    ]


@pytest.fixture
def sample_coupon():
    """10%优惠券，无使用上限"""
    return Coupon(
        coupon_id="CPN_SAVE10",
        coupon_code="SAVE10",
        discount_percent=10,
        is_active=True,
        expires_at=NOW + timedelta(days=30),
        max_usage=None,
        usage_count=0,
        used_by=[],
        created_by="admin_001",
        created_at=NOW - timedelta(days=1),
        updated_at=NOW - timedelta(days=1)
    )


@pytest.fixture
def sample_product_create():
    return ProductCreate(
        product_id="prod_shirt",
        title="Linen Shirt",
        category="tops",
        description="透气亚麻衬衫",
        base_price=100000
    )

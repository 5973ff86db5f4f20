"""
商品数据库模型
"""

from sqlalchemy import Column, String, Integer, Text, DateTime
from sqlalchemy.sql import func
from order_engine.core.database import Base


class ProductDB(Base):
    """商品数据库表"""

    __tablename__ = "products"

    # 主键和基本信息
    product_id = Column(String(50), primary_key=True, comment="商品ID")
    title = Column(String(200), nullable=False, comment="商品名称")
    category = Column(String(50), nullable=False, index=True, comment="商品分类")
    description = Column(Text, comment="商品描述")

    # 价格
    base_price = Column(Integer, nullable=False, comment="基础价格")

    # 限时折扣（过期不会自动清除）
    sale_discount_percent = Column(Integer, comment="限时折扣百分比")
    sale_ends_at = Column(DateTime, index=True, comment="限时折扣结束时间")

    # 时间戳
    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        {'comment': '商品信息表'}
    )

"""
订单相关数据库模型
"""

from sqlalchemy import Column, String, Integer, DateTime, JSON
from sqlalchemy.sql import func
from order_engine.core.database import Base


class OrderDB(Base):
    """订单数据库表

    商品与收货信息以JSON快照保存，金额字段在下单时写入后不再修改。
    """

    __tablename__ = "orders"

    # 主键和用户信息
    order_id = Column(String(50), primary_key=True, comment="订单ID")
    user_id = Column(String(50), nullable=False, index=True, comment="用户ID")

    # 快照
    items = Column(JSON, nullable=False, comment="下单商品快照")
    shipping_details = Column(JSON, nullable=False, comment="收货信息")
    shipping_method = Column(String(20), nullable=False, comment="配送方式")

    # 支付
    payment_method = Column(String(30), nullable=False, comment="支付方式")
    payment_proof_ref = Column(String(500), comment="付款凭证引用")

    # 金额信息
    gross_subtotal = Column(Integer, nullable=False, comment="原价小计")
    item_savings = Column(Integer, nullable=False, default=0, comment="限时折扣节省")
    net_before_coupon = Column(Integer, nullable=False, comment="优惠券前净额")
    coupon_discount = Column(Integer, nullable=False, default=0, comment="优惠券折扣")
    shipping_cost = Column(Integer, nullable=False, default=0, comment="运费")
    tax = Column(Integer, nullable=False, default=0, comment="税费")
    total_amount = Column(Integer, nullable=False, comment="应付总额")

    # 应用的优惠券
    applied_coupon_id = Column(String(50), comment="使用的优惠券ID")
    applied_coupon_code = Column(String(50), comment="使用的优惠券代码")

    # 订单状态
    order_status = Column(String(20), nullable=False, default="pending", index=True, comment="订单状态")

    # 时间戳
    created_at = Column(DateTime, server_default=func.now(), index=True, comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        {'comment': '订单主表'}
    )

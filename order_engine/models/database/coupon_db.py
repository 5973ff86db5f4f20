"""
优惠券数据库模型
"""

from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from order_engine.core.database import Base


class CouponDB(Base):
    """优惠券数据库表"""

    __tablename__ = "coupons"

    # 主键和基本信息
    coupon_id = Column(String(50), primary_key=True, comment="优惠券ID")
    coupon_code = Column(String(50), nullable=False, unique=True, index=True, comment="优惠券代码")

    # 折扣信息
    discount_percent = Column(Integer, nullable=False, comment="折扣百分比")

    # 状态与有效期
    is_active = Column(Boolean, nullable=False, default=True, index=True, comment="是否启用")
    expires_at = Column(DateTime, comment="过期时间")

    # 使用限制
    max_usage = Column(Integer, comment="总使用次数限制")
    usage_count = Column(Integer, nullable=False, default=0, comment="已使用次数")

    # 创建信息
    created_by = Column(String(50), nullable=False, comment="创建者")
    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    # 关系映射
    redemptions = relationship(
        "CouponRedemptionDB",
        back_populates="coupon",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    __table_args__ = (
        {'comment': '优惠券信息表'}
    )


class CouponRedemptionDB(Base):
    """优惠券核销记录表

    (coupon_id, user_id) 唯一保证每个用户只能使用一次；
    order_id 唯一保证同一订单重复提交不会重复计数。
    """

    __tablename__ = "coupon_redemptions"

    redemption_id = Column(String(50), primary_key=True, comment="核销记录ID")
    coupon_id = Column(
        String(50), ForeignKey("coupons.coupon_id", ondelete="CASCADE"),
        nullable=False, index=True, comment="优惠券ID"
    )
    user_id = Column(String(50), nullable=False, index=True, comment="用户ID")
    order_id = Column(String(50), nullable=False, unique=True, comment="关联订单ID")
    discount_amount = Column(Integer, nullable=False, default=0, comment="折扣金额")
    redeemed_at = Column(DateTime, server_default=func.now(), comment="核销时间")

    coupon = relationship("CouponDB", back_populates="redemptions")

    __table_args__ = (
        UniqueConstraint("coupon_id", "user_id", name="uq_coupon_redemption_user"),
        {'comment': '优惠券核销记录表'}
    )

"""
优惠券数据库操作层
"""

from typing import List, Optional
from datetime import datetime
import uuid

from sqlalchemy import select, update, and_, or_, not_, desc, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.models.coupon import Coupon, UsageCommitStatus
from order_engine.models.database.coupon_db import CouponDB, CouponRedemptionDB


class _UsageRejected(Exception):
    """条件更新未命中，用于回滚核销记录"""


class CouponRepository:
    """优惠券数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_coupon_id(self, coupon_id: str) -> Optional[CouponDB]:
        """根据优惠券ID获取优惠券"""
        result = await self.db.execute(
            select(CouponDB)
            .where(CouponDB.coupon_id == coupon_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_coupon_code(self, coupon_code: str) -> Optional[CouponDB]:
        """根据优惠券代码获取优惠券（去除首尾空格，大小写不敏感）"""
        result = await self.db.execute(
            select(CouponDB)
            .where(func.upper(CouponDB.coupon_code) == coupon_code.strip().upper())
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def code_exists(self, coupon_code: str) -> bool:
        """检查代码是否已被占用"""
        result = await self.db.execute(
            select(func.count(CouponDB.coupon_id)).where(
                func.upper(CouponDB.coupon_code) == coupon_code.upper()
            )
        )
        return (result.scalar() or 0) > 0

    async def list_coupons(self) -> List[CouponDB]:
        """获取全部优惠券，最新的在前"""
        result = await self.db.execute(
            select(CouponDB)
            .order_by(desc(CouponDB.created_at))
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    async def create(
        self,
        coupon_code: str,
        discount_percent: int,
        created_by: str,
        expires_at: Optional[datetime] = None,
        max_usage: Optional[int] = None
    ) -> CouponDB:
        """创建优惠券

        代码唯一约束冲突时抛出 IntegrityError，由调用方决定是否重试。
        """
        now = datetime.now()
        db_coupon = CouponDB(
            coupon_id=f"CPN_{uuid.uuid4().hex[:12].upper()}",
            coupon_code=coupon_code,
            discount_percent=discount_percent,
            is_active=True,
            expires_at=expires_at,
            max_usage=max_usage,
            usage_count=0,
            created_by=created_by,
            created_at=now,
            updated_at=now,
            redemptions=[]
        )
        async with self.db.begin_nested():
            self.db.add(db_coupon)
            await self.db.flush()
        return db_coupon

    async def toggle_active(self, coupon_id: str) -> Optional[CouponDB]:
        """切换启用状态"""
        result = await self.db.execute(
            update(CouponDB)
            .where(CouponDB.coupon_id == coupon_id)
            .values(is_active=not_(CouponDB.is_active), updated_at=datetime.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.get_by_coupon_id(coupon_id)

    async def delete(self, coupon_id: str) -> bool:
        """删除优惠券及其核销记录"""
        db_coupon = await self.get_by_coupon_id(coupon_id)
        if not db_coupon:
            return False
        await self.db.delete(db_coupon)
        await self.db.flush()
        return True

    async def get_redemption_by_order_id(self, order_id: str) -> Optional[CouponRedemptionDB]:
        """根据订单ID获取核销记录"""
        result = await self.db.execute(
            select(CouponRedemptionDB).where(CouponRedemptionDB.order_id == order_id)
        )
        return result.scalar_one_or_none()

    async def commit_usage(
        self,
        coupon_id: str,
        user_id: str,
        order_id: str,
        discount_amount: int = 0
    ) -> UsageCommitStatus:
        """核销优惠券（记录使用并原子递增计数）

        以订单为幂等键：同一订单重复提交直接返回 ALREADY_COMMITTED。
        核销记录受 (coupon_id, user_id) 唯一约束保护，计数使用条件更新，
        两者在同一个保存点内，任一失败都会整体回滚。
        """
        if await self.get_redemption_by_order_id(order_id):
            return UsageCommitStatus.ALREADY_COMMITTED

        if not await self.get_by_coupon_id(coupon_id):
            return UsageCommitStatus.COUPON_NOT_FOUND

        now = datetime.now()
        try:
            async with self.db.begin_nested():
                self.db.add(CouponRedemptionDB(
                    redemption_id=str(uuid.uuid4()),
                    coupon_id=coupon_id,
                    user_id=user_id,
                    order_id=order_id,
                    discount_amount=discount_amount,
                    redeemed_at=now
                ))
                await self.db.flush()

                result = await self.db.execute(
                    update(CouponDB)
                    .where(
                        and_(
                            CouponDB.coupon_id == coupon_id,
                            or_(
                                CouponDB.max_usage.is_(None),
                                CouponDB.usage_count < CouponDB.max_usage
                            )
                        )
                    )
                    .values(usage_count=CouponDB.usage_count + 1, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise _UsageRejected(coupon_id)
        except IntegrityError:
            if await self.get_redemption_by_order_id(order_id):
                return UsageCommitStatus.ALREADY_COMMITTED
            return UsageCommitStatus.ALREADY_USED_BY_USER
        except _UsageRejected:
            if not await self.get_by_coupon_id(coupon_id):
                return UsageCommitStatus.COUPON_NOT_FOUND
            return UsageCommitStatus.USAGE_LIMIT_REACHED

        return UsageCommitStatus.COMMITTED

    def to_model(self, db_coupon: CouponDB) -> Coupon:
        """转换为Pydantic模型"""
        return Coupon(
            coupon_id=db_coupon.coupon_id,
            coupon_code=db_coupon.coupon_code,
            discount_percent=db_coupon.discount_percent,
            is_active=db_coupon.is_active,
            expires_at=db_coupon.expires_at,
            max_usage=db_coupon.max_usage,
            usage_count=db_coupon.usage_count,
            used_by=[redemption.user_id for redemption in db_coupon.redemptions],
            created_by=db_coupon.created_by,
            created_at=db_coupon.created_at,
            updated_at=db_coupon.updated_at
        )

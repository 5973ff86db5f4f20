"""
优惠券业务服务层
提供优惠券校验、创建、启停、删除与核销逻辑
"""

import logging
import secrets
import string
from typing import Iterable, List, Optional
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from order_engine.core.config import settings
from order_engine.core.exceptions import StorageError
from order_engine.models.coupon import (
    Coupon,
    CouponCreate,
    CouponUsageSummary,
    CouponValidation,
    UsageCommitStatus,
    MIN_DISCOUNT_PERCENT,
    MAX_DISCOUNT_PERCENT
)
from order_engine.models.result import CouponErrorCode, OperationResult, ValidationErrorCode
from order_engine.repositories.coupon_repository import CouponRepository
from order_engine.services.common_cache import coupon_cache

logger = logging.getLogger(__name__)

COUPON_CODE_ALPHABET = string.ascii_uppercase + string.digits

COUPON_ERROR_MESSAGES = {
    CouponErrorCode.EMPTY_CODE: "请输入优惠券代码",
    CouponErrorCode.NOT_FOUND: "优惠券不存在",
    CouponErrorCode.INACTIVE: "优惠券已停用",
    CouponErrorCode.EXPIRED: "优惠券已过期",
    CouponErrorCode.USAGE_LIMIT_REACHED: "优惠券使用次数已达上限",
    CouponErrorCode.ALREADY_USED_BY_USER: "您已使用过该优惠券",
    CouponErrorCode.CODE_GENERATION_EXHAUSTED: "无法生成唯一的优惠券代码，请重试",
}


def _invalid(error_code: CouponErrorCode, coupon: Optional[Coupon] = None) -> CouponValidation:
    return CouponValidation(
        is_valid=False,
        coupon=coupon,
        error_code=error_code,
        error_message=COUPON_ERROR_MESSAGES[error_code]
    )


def validate_coupon(
    code: Optional[str],
    coupons: Iterable[Coupon],
    user_id: Optional[str] = None,
    current_time: Optional[datetime] = None
) -> CouponValidation:
    """校验优惠券代码

    按顺序检查，第一个失败项即为结果：空代码、不存在、已停用、已过期、
    次数已满、该用户已使用。校验本身不修改任何数据。
    """
    if not code or not code.strip():
        return _invalid(CouponErrorCode.EMPTY_CODE)

    coupon = next((c for c in coupons if c.matches_code(code)), None)
    if coupon is None:
        return _invalid(CouponErrorCode.NOT_FOUND)

    if not coupon.is_active:
        return _invalid(CouponErrorCode.INACTIVE, coupon)

    if coupon.is_expired(current_time):
        return _invalid(CouponErrorCode.EXPIRED, coupon)

    if coupon.is_used_up():
        return _invalid(CouponErrorCode.USAGE_LIMIT_REACHED, coupon)

    if user_id and coupon.has_been_used_by(user_id):
        return _invalid(CouponErrorCode.ALREADY_USED_BY_USER, coupon)

    return CouponValidation(is_valid=True, coupon=coupon)


def generate_coupon_code(length: int = 8) -> str:
    """生成随机大写字母数字代码"""
    return "".join(secrets.choice(COUPON_CODE_ALPHABET) for _ in range(length))


class CouponService:
    """优惠券业务服务"""

    def __init__(self, coupon_repo: CouponRepository):
        self.coupon_repo = coupon_repo
        self.cache = coupon_cache
        self.cache_prefix = "coupon"
        self.cache_ttl = settings.coupon_cache_ttl
        self.code_length = settings.coupon_code_length
        self.max_code_attempts = settings.coupon_code_max_attempts
        self.code_generator = generate_coupon_code

    async def validate_coupon(
        self,
        code: Optional[str],
        user_id: Optional[str] = None,
        current_time: Optional[datetime] = None
    ) -> CouponValidation:
        """验证优惠券是否可用"""
        # 优惠券验证不使用缓存，确保实时性
        if not code or not code.strip():
            return validate_coupon(code, [], user_id, current_time)

        try:
            db_coupon = await self.coupon_repo.get_by_coupon_code(code)
        except SQLAlchemyError as e:
            logger.error(f"查询优惠券失败 {code}: {e}")
            raise StorageError(str(e), "validate_coupon") from e

        candidates = [self.coupon_repo.to_model(db_coupon)] if db_coupon else []
        return validate_coupon(code, candidates, user_id, current_time)

    async def get_coupon(self, coupon_id: str) -> Optional[Coupon]:
        """获取优惠券详情"""
        try:
            db_coupon = await self.coupon_repo.get_by_coupon_id(coupon_id)
        except SQLAlchemyError as e:
            logger.error(f"获取优惠券失败 {coupon_id}: {e}")
            raise StorageError(str(e), "get_coupon") from e

        if not db_coupon:
            return None
        return self.coupon_repo.to_model(db_coupon)

    async def list_coupons(self, use_cache: bool = True) -> List[Coupon]:
        """获取全部优惠券（管理后台）"""
        cache_key = f"{self.cache_prefix}:list:all"

        if use_cache:
            cached_coupons = await self.cache.get(cache_key)
            if cached_coupons:
                return [Coupon(**coupon_data) for coupon_data in cached_coupons]

        try:
            db_coupons = await self.coupon_repo.list_coupons()
        except SQLAlchemyError as e:
            logger.error(f"获取优惠券列表失败: {e}")
            raise StorageError(str(e), "list_coupons") from e

        coupons = [self.coupon_repo.to_model(db_coupon) for db_coupon in db_coupons]

        if use_cache:
            await self.cache.set(
                cache_key,
                [coupon.model_dump() for coupon in coupons],
                ttl=self.cache_ttl
            )

        return coupons

    async def get_coupon_usage(self, coupon_id: str) -> Optional[CouponUsageSummary]:
        """获取优惠券使用概况"""
        coupon = await self.get_coupon(coupon_id)
        if not coupon:
            return None

        remaining = None
        usage_percentage = None
        if coupon.max_usage:
            remaining = max(coupon.max_usage - coupon.usage_count, 0)
            usage_percentage = round(coupon.usage_count / coupon.max_usage * 100, 2)

        return CouponUsageSummary(
            coupon_id=coupon.coupon_id,
            coupon_code=coupon.coupon_code,
            usage_count=coupon.usage_count,
            max_usage=coupon.max_usage,
            remaining=remaining,
            usage_percentage=usage_percentage,
            used_by=coupon.used_by
        )

    async def create_coupon(
        self,
        coupon_data: CouponCreate,
        created_by: str
    ) -> OperationResult[Coupon]:
        """创建优惠券

        代码随机生成，冲突时重新生成，最多尝试 max_code_attempts 次。
        """
        percent = coupon_data.discount_percent
        if percent < MIN_DISCOUNT_PERCENT or percent > MAX_DISCOUNT_PERCENT:
            return OperationResult.fail(
                ValidationErrorCode.INVALID_DISCOUNT_PERCENT,
                f"折扣百分比必须在{MIN_DISCOUNT_PERCENT}-{MAX_DISCOUNT_PERCENT}之间"
            )

        try:
            for attempt in range(1, self.max_code_attempts + 1):
                code = self.code_generator(self.code_length)
                if await self.coupon_repo.code_exists(code):
                    logger.info(f"优惠券代码冲突，重新生成 (第{attempt}次)")
                    continue

                try:
                    db_coupon = await self.coupon_repo.create(
                        coupon_code=code,
                        discount_percent=percent,
                        created_by=created_by,
                        expires_at=coupon_data.expires_at,
                        max_usage=coupon_data.max_usage
                    )
                except IntegrityError:
                    logger.info(f"优惠券代码写入冲突，重新生成 (第{attempt}次)")
                    continue

                coupon = self.coupon_repo.to_model(db_coupon)
                await self._clear_coupon_caches()
                logger.info(f"优惠券创建成功: {coupon.coupon_code} ({percent}%)")
                return OperationResult.ok(coupon)
        except SQLAlchemyError as e:
            logger.error(f"创建优惠券失败: {e}")
            raise StorageError(str(e), "create_coupon") from e

        logger.warning(f"优惠券代码生成{self.max_code_attempts}次均冲突")
        return OperationResult.fail(
            CouponErrorCode.CODE_GENERATION_EXHAUSTED,
            COUPON_ERROR_MESSAGES[CouponErrorCode.CODE_GENERATION_EXHAUSTED]
        )

    async def toggle_coupon_active(self, coupon_id: str) -> OperationResult[Coupon]:
        """启用/停用优惠券"""
        try:
            db_coupon = await self.coupon_repo.toggle_active(coupon_id)
        except SQLAlchemyError as e:
            logger.error(f"切换优惠券状态失败 {coupon_id}: {e}")
            raise StorageError(str(e), "toggle_coupon_active") from e

        if not db_coupon:
            return OperationResult.fail(
                CouponErrorCode.NOT_FOUND, COUPON_ERROR_MESSAGES[CouponErrorCode.NOT_FOUND]
            )

        await self._clear_coupon_caches()
        return OperationResult.ok(self.coupon_repo.to_model(db_coupon))

    async def delete_coupon(self, coupon_id: str) -> OperationResult[None]:
        """删除优惠券

        已应用但未下单的选择在下单时会按代码重新校验，因此删除后自动失效。
        """
        try:
            deleted = await self.coupon_repo.delete(coupon_id)
        except SQLAlchemyError as e:
            logger.error(f"删除优惠券失败 {coupon_id}: {e}")
            raise StorageError(str(e), "delete_coupon") from e

        if not deleted:
            return OperationResult.fail(
                CouponErrorCode.NOT_FOUND, COUPON_ERROR_MESSAGES[CouponErrorCode.NOT_FOUND]
            )

        await self._clear_coupon_caches()
        logger.info(f"优惠券已删除: {coupon_id}")
        return OperationResult.ok()

    async def commit_usage(
        self,
        coupon_id: str,
        user_id: str,
        order_id: str,
        discount_amount: int = 0
    ) -> UsageCommitStatus:
        """核销优惠券，仅由下单流程调用"""
        try:
            status = await self.coupon_repo.commit_usage(
                coupon_id=coupon_id,
                user_id=user_id,
                order_id=order_id,
                discount_amount=discount_amount
            )
        except SQLAlchemyError as e:
            logger.error(f"优惠券核销失败 {coupon_id} 订单 {order_id}: {e}")
            raise StorageError(str(e), "commit_usage") from e

        if status == UsageCommitStatus.COMMITTED:
            await self._clear_coupon_caches()

        return status

    async def _clear_coupon_caches(self):
        """清除优惠券相关缓存"""
        await self.cache.delete_pattern(f"{self.cache_prefix}:*")

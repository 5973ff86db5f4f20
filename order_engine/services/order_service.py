"""
订单业务服务层
提供下单、订单查询与统计
"""

import logging
import uuid
from typing import List, Optional
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from order_engine.core.config import settings
from order_engine.core.exceptions import StorageError
from order_engine.core.redis import event_publisher
from order_engine.models.cart import PaymentMethod
from order_engine.models.common import resolve_now
from order_engine.models.coupon import Coupon, UsageCommitStatus
from order_engine.models.order import Order, OrderStatistics, OrderStatus, PlaceOrderRequest
from order_engine.models.result import CouponErrorCode, OperationResult, ValidationErrorCode
from order_engine.repositories.coupon_repository import CouponRepository
from order_engine.repositories.order_repository import OrderRepository
from order_engine.services.common_cache import order_cache
from order_engine.services.coupon_service import COUPON_ERROR_MESSAGES, CouponService
from order_engine.services.price_calculator_service import calculate_price

logger = logging.getLogger(__name__)

# 核销失败状态 -> 返回给用户的错误码
USAGE_REJECTION_CODES = {
    UsageCommitStatus.ALREADY_USED_BY_USER: CouponErrorCode.ALREADY_USED_BY_USER,
    UsageCommitStatus.USAGE_LIMIT_REACHED: CouponErrorCode.USAGE_LIMIT_REACHED,
    UsageCommitStatus.COUPON_NOT_FOUND: CouponErrorCode.NOT_FOUND,
}


class CouponUsageRejected(Exception):
    """下单事务内优惠券核销失败，触发整单回滚"""

    def __init__(self, status: UsageCommitStatus):
        super().__init__(status.value)
        self.status = status


def generate_order_id(current_time: Optional[datetime] = None) -> str:
    current_time = resolve_now(current_time)
    return f"ORDER_{current_time.strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8].upper()}"


class OrderService:
    """订单业务服务"""

    def __init__(
        self,
        order_repo: OrderRepository,
        coupon_repo: CouponRepository
    ):
        self.order_repo = order_repo
        self.coupon_repo = coupon_repo
        self.coupon_service = CouponService(coupon_repo)
        self.cache = order_cache
        self.cache_prefix = "order"
        self.cache_ttl = settings.order_cache_ttl
        self.events = event_publisher

    async def get_order_by_id(self, order_id: str, use_cache: bool = True) -> Optional[Order]:
        """获取订单详情"""
        cache_key = f"{self.cache_prefix}:detail:{order_id}"

        if use_cache:
            cached_order = await self.cache.get(cache_key)
            if cached_order:
                return Order(**cached_order)

        try:
            db_order = await self.order_repo.get_by_order_id(order_id)
        except SQLAlchemyError as e:
            logger.error(f"获取订单失败 {order_id}: {e}")
            raise StorageError(str(e), "get_order_by_id") from e

        if not db_order:
            return None

        order = self.order_repo.to_model(db_order)

        if use_cache:
            await self.cache.set(cache_key, order.model_dump(), ttl=self.cache_ttl)

        return order

    async def get_user_orders(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        status_filter: Optional[OrderStatus] = None,
        use_cache: bool = True
    ) -> List[Order]:
        """获取用户订单列表，最新的在前"""
        status_value = status_filter.value if status_filter else None
        cache_key = f"{self.cache_prefix}:user:{user_id}:{limit}:{offset}:{status_value or 'all'}"

        if use_cache:
            cached_orders = await self.cache.get(cache_key)
            if cached_orders:
                return [Order(**order_data) for order_data in cached_orders]

        try:
            db_orders = await self.order_repo.get_user_orders(
                user_id=user_id,
                limit=limit,
                offset=offset,
                status_filter=status_value
            )
        except SQLAlchemyError as e:
            logger.error(f"获取用户订单失败 {user_id}: {e}")
            raise StorageError(str(e), "get_user_orders") from e

        orders = [self.order_repo.to_model(db_order) for db_order in db_orders]

        if use_cache:
            await self.cache.set(
                cache_key,
                [order.model_dump() for order in orders],
                ttl=self.cache_ttl // 2
            )

        return orders

    async def get_order_statistics(self) -> OrderStatistics:
        """管理后台统计（总金额、订单数、处理中订单数）"""
        try:
            return await self.order_repo.get_order_statistics()
        except SQLAlchemyError as e:
            logger.error(f"获取订单统计失败: {e}")
            raise StorageError(str(e), "get_order_statistics") from e

    async def place_order(
        self,
        request: PlaceOrderRequest,
        current_time: Optional[datetime] = None
    ) -> OperationResult[Order]:
        """
        下单

        1. 幂等：带 order_id 重试时直接返回已存在的订单
        2. 校验勾选商品、收货信息、付款凭证
        3. 按代码重新校验优惠券（已删除/停用的券在此失效）
        4. 计算价格，订单写入与优惠券核销在同一事务内完成
        """
        current_time = resolve_now(current_time)

        if request.order_id:
            existing = await self._find_existing_order(request)
            if existing is not None:
                return existing

        selected_items = [item for item in request.line_items if item.selected]
        if not selected_items:
            return OperationResult.fail(ValidationErrorCode.EMPTY_SELECTION, "请选择要结算的商品")

        missing_fields = request.shipping_details.missing_fields()
        if missing_fields:
            return OperationResult.fail(
                ValidationErrorCode.MISSING_REQUIRED_SHIPPING_FIELD,
                "请填写完整的收货信息",
                details=missing_fields
            )

        payment_proof_ref = None
        if request.payment_method == PaymentMethod.BANK_TRANSFER:
            payment_proof_ref = (request.payment_proof_ref or "").strip()
            if not payment_proof_ref:
                return OperationResult.fail(
                    ValidationErrorCode.MISSING_PAYMENT_PROOF,
                    "银行转账需要上传付款凭证"
                )

        coupon: Optional[Coupon] = None
        if request.coupon_code and request.coupon_code.strip():
            validation = await self.coupon_service.validate_coupon(
                request.coupon_code,
                user_id=request.user_id,
                current_time=current_time
            )
            if not validation.is_valid:
                return OperationResult.fail(validation.error_code, validation.error_message)
            coupon = validation.coupon

        breakdown = calculate_price(selected_items, request.shipping_method, coupon)

        order = Order(
            order_id=request.order_id or generate_order_id(current_time),
            user_id=request.user_id,
            items=selected_items,
            shipping_details=request.shipping_details,
            shipping_method=request.shipping_method,
            payment_method=request.payment_method,
            payment_proof_ref=payment_proof_ref,
            breakdown=breakdown,
            applied_coupon_id=coupon.coupon_id if coupon else None,
            applied_coupon_code=coupon.coupon_code if coupon else None,
            order_status=OrderStatus.PENDING,
            created_at=current_time,
            updated_at=current_time
        )

        try:
            async with self.order_repo.transaction():
                await self.order_repo.create_order(order)
                if coupon:
                    status = await self.coupon_repo.commit_usage(
                        coupon_id=coupon.coupon_id,
                        user_id=order.user_id,
                        order_id=order.order_id,
                        discount_amount=breakdown.coupon_discount
                    )
                    if not status.is_success:
                        raise CouponUsageRejected(status)
        except CouponUsageRejected as e:
            error_code = USAGE_REJECTION_CODES[e.status]
            logger.info(f"优惠券核销失败，订单已回滚: {order.order_id} ({e.status.value})")
            return OperationResult.fail(error_code, COUPON_ERROR_MESSAGES[error_code])
        except IntegrityError as e:
            # 同一幂等键并发提交，另一个请求已写入
            if request.order_id:
                existing = await self._find_existing_order(request)
                if existing is not None:
                    return existing
            logger.error(f"订单写入冲突 {order.order_id}: {e}")
            raise StorageError("订单写入冲突", "place_order") from e
        except SQLAlchemyError as e:
            logger.error(f"下单失败 {order.order_id}: {e}")
            raise StorageError(str(e), "place_order") from e

        logger.info(f"订单创建成功: {order.order_id} 用户 {order.user_id} 金额 {breakdown.total}")

        await self._clear_user_order_caches(order.user_id)
        if coupon:
            await self.coupon_service.cache.delete_pattern(f"{self.coupon_service.cache_prefix}:*")
        await self.events.publish("order.placed", {
            "order_id": order.order_id,
            "user_id": order.user_id,
            "total_amount": breakdown.total,
            "order_status": order.order_status.value
        })

        return OperationResult.ok(order)

    async def _find_existing_order(self, request: PlaceOrderRequest) -> Optional[OperationResult[Order]]:
        """幂等键命中时返回已有订单的结果，未命中返回None"""
        try:
            db_order = await self.order_repo.get_by_order_id(request.order_id)
        except SQLAlchemyError as e:
            logger.error(f"查询幂等订单失败 {request.order_id}: {e}")
            raise StorageError(str(e), "place_order") from e

        if not db_order:
            return None

        if db_order.user_id != request.user_id:
            return OperationResult.fail(
                ValidationErrorCode.ORDER_ID_CONFLICT,
                "订单号已被占用"
            )

        logger.info(f"重复下单请求，返回已有订单: {request.order_id}")
        return OperationResult.ok(self.order_repo.to_model(db_order))

    async def _clear_user_order_caches(self, user_id: str):
        """清除用户订单相关缓存"""
        await self.cache.delete_pattern(f"{self.cache_prefix}:user:{user_id}:*")

"""
订单流转服务
待确认 → 已接单 → 打包中 → 已交快递 → 已送达，由管理员逐步推进
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from order_engine.core.exceptions import StorageError
from order_engine.core.redis import event_publisher
from order_engine.models.order import Order, OrderStatus
from order_engine.models.result import OperationResult, WorkflowErrorCode
from order_engine.repositories.order_repository import OrderRepository
from order_engine.services.common_cache import order_cache

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    OrderStatus.PENDING: "待确认",
    OrderStatus.CONFIRMED: "已接单",
    OrderStatus.PACKING: "打包中",
    OrderStatus.SHIPPED: "已交快递",
    OrderStatus.DELIVERED: "已送达",
}


class OrderWorkflowService:
    """订单状态机

    只提供“推进到下一个状态”的操作，不能直接设置任意状态，
    没有取消、退款，也没有定时自动推进。
    """

    def __init__(self, order_repo: OrderRepository):
        self.order_repo = order_repo
        self.cache = order_cache
        self.cache_prefix = "order"
        self.events = event_publisher

    async def accept_order(self, order_id: str) -> OperationResult[Order]:
        """接单"""
        return await self._transition(order_id, OrderStatus.PENDING)

    async def start_packing(self, order_id: str) -> OperationResult[Order]:
        """开始打包"""
        return await self._transition(order_id, OrderStatus.CONFIRMED)

    async def hand_to_courier(self, order_id: str) -> OperationResult[Order]:
        """交给快递"""
        return await self._transition(order_id, OrderStatus.PACKING)

    async def mark_delivered(self, order_id: str) -> OperationResult[Order]:
        """确认送达"""
        return await self._transition(order_id, OrderStatus.SHIPPED)

    async def advance_status(self, order_id: str) -> OperationResult[Order]:
        """推进到当前状态的下一个状态"""
        try:
            db_order = await self.order_repo.get_by_order_id(order_id)
        except SQLAlchemyError as e:
            logger.error(f"获取订单失败 {order_id}: {e}")
            raise StorageError(str(e), "advance_status") from e

        if not db_order:
            return self._not_found(order_id)
        return await self._transition(order_id, OrderStatus(db_order.order_status))

    async def _transition(
        self,
        order_id: str,
        expected_status: OrderStatus
    ) -> OperationResult[Order]:
        next_status = expected_status.next_status
        if next_status is None:
            return OperationResult.fail(
                WorkflowErrorCode.INVALID_TRANSITION,
                f"订单已{STATUS_LABELS[expected_status]}，无法继续推进"
            )

        try:
            changed = await self.order_repo.transition_status(order_id, expected_status, next_status)
            db_order = await self.order_repo.get_by_order_id(order_id)
        except SQLAlchemyError as e:
            logger.error(f"订单状态更新失败 {order_id}: {e}")
            raise StorageError(str(e), "transition_status") from e

        if not db_order:
            return self._not_found(order_id)

        if not changed:
            current = OrderStatus(db_order.order_status)
            return OperationResult.fail(
                WorkflowErrorCode.INVALID_TRANSITION,
                f"订单当前为{STATUS_LABELS[current]}，"
                f"不能从{STATUS_LABELS[expected_status]}推进到{STATUS_LABELS[next_status]}"
            )

        order = self.order_repo.to_model(db_order)
        logger.info(f"订单 {order_id} 状态: {expected_status.value} -> {next_status.value}")

        await self._clear_order_caches(order_id, order.user_id)
        await self.events.publish("order.status_changed", {
            "order_id": order_id,
            "user_id": order.user_id,
            "from_status": expected_status.value,
            "to_status": next_status.value
        })

        return OperationResult.ok(order)

    def _not_found(self, order_id: str) -> OperationResult:
        return OperationResult.fail(WorkflowErrorCode.ORDER_NOT_FOUND, f"订单不存在: {order_id}")

    async def _clear_order_caches(self, order_id: str, user_id: Optional[str]):
        """清除订单相关缓存"""
        patterns = [
            f"{self.cache_prefix}:detail:{order_id}",
            f"{self.cache_prefix}:user:{user_id}:*",
        ]

        for pattern in patterns:
            await self.cache.delete_pattern(pattern)

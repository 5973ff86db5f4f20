"""
订单数据库操作层
"""

from typing import List, Optional
from datetime import datetime

from sqlalchemy import select, update, and_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.models.cart import CartLineItem, ShippingDetails
from order_engine.models.order import (
    Order,
    OrderStatus,
    OrderStatistics,
    PriceBreakdown,
    IN_PROGRESS_STATUSES
)
from order_engine.models.database.order_db import OrderDB


class OrderRepository:
    """订单数据库操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    def transaction(self):
        """开启保存点，下单时订单写入与优惠券核销在同一事务内"""
        return self.db.begin_nested()

    async def get_by_order_id(self, order_id: str) -> Optional[OrderDB]:
        """根据订单ID获取订单"""
        result = await self.db.execute(
            select(OrderDB)
            .where(OrderDB.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_user_orders(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        status_filter: Optional[str] = None
    ) -> List[OrderDB]:
        """获取用户订单列表"""
        conditions = [OrderDB.user_id == user_id]

        if status_filter:
            conditions.append(OrderDB.order_status == status_filter)

        query = select(OrderDB).where(
            and_(*conditions)
        ).order_by(desc(OrderDB.created_at)).limit(limit).offset(offset)

        result = await self.db.execute(query.execution_options(populate_existing=True))
        return result.scalars().all()

    async def get_orders_by_status(
        self,
        status: str,
        limit: int = 100,
        offset: int = 0
    ) -> List[OrderDB]:
        """根据状态获取订单"""
        query = select(OrderDB).where(
            OrderDB.order_status == status
        ).order_by(desc(OrderDB.created_at)).limit(limit).offset(offset)

        result = await self.db.execute(query.execution_options(populate_existing=True))
        return result.scalars().all()

    async def create_order(self, order: Order) -> OrderDB:
        """写入订单快照"""
        breakdown = order.breakdown
        db_order = OrderDB(
            order_id=order.order_id,
            user_id=order.user_id,
            items=[item.model_dump() for item in order.items],
            shipping_details=order.shipping_details.model_dump(),
            shipping_method=order.shipping_method.value,
            payment_method=order.payment_method.value,
            payment_proof_ref=order.payment_proof_ref,
            gross_subtotal=breakdown.gross_subtotal,
            item_savings=breakdown.item_savings,
            net_before_coupon=breakdown.net_before_coupon,
            coupon_discount=breakdown.coupon_discount,
            shipping_cost=breakdown.shipping_cost,
            tax=breakdown.tax,
            total_amount=breakdown.total,
            applied_coupon_id=order.applied_coupon_id,
            applied_coupon_code=order.applied_coupon_code,
            order_status=OrderStatus.PENDING.value,
            created_at=order.created_at,
            updated_at=order.updated_at
        )

        self.db.add(db_order)
        await self.db.flush()

        return db_order

    async def transition_status(
        self,
        order_id: str,
        expected_status: OrderStatus,
        next_status: OrderStatus
    ) -> bool:
        """条件更新订单状态

        仅当当前状态等于 expected_status 时才更新，并发推进同一订单只有一个成功。
        """
        result = await self.db.execute(
            update(OrderDB)
            .where(
                and_(
                    OrderDB.order_id == order_id,
                    OrderDB.order_status == expected_status.value
                )
            )
            .values(order_status=next_status.value, updated_at=datetime.now())
            .execution_options(synchronize_session=False)
        )

        return result.rowcount > 0

    async def get_order_statistics(self) -> OrderStatistics:
        """获取订单统计信息"""
        basic_stats = await self.db.execute(
            select(
                func.count(OrderDB.order_id).label("total_orders"),
                func.sum(OrderDB.total_amount).label("revenue")
            )
        )
        row = basic_stats.fetchone()

        status_rows = await self.db.execute(
            select(
                OrderDB.order_status,
                func.count(OrderDB.order_id).label("order_count")
            ).group_by(OrderDB.order_status)
        )
        by_status = {status_row.order_status: status_row.order_count for status_row in status_rows.fetchall()}

        in_progress = sum(by_status.get(status.value, 0) for status in IN_PROGRESS_STATUSES)

        return OrderStatistics(
            revenue=int(row.revenue or 0),
            total_orders=row.total_orders or 0,
            in_progress_orders=in_progress,
            orders_by_status=by_status
        )

    def to_model(self, db_order: OrderDB) -> Order:
        """转换为Pydantic模型"""
        return Order(
            order_id=db_order.order_id,
            user_id=db_order.user_id,
            items=[CartLineItem(**item) for item in db_order.items],
            shipping_details=ShippingDetails(**db_order.shipping_details),
            shipping_method=db_order.shipping_method,
            payment_method=db_order.payment_method,
            payment_proof_ref=db_order.payment_proof_ref,
            breakdown=PriceBreakdown(
                gross_subtotal=db_order.gross_subtotal,
                item_savings=db_order.item_savings,
                net_before_coupon=db_order.net_before_coupon,
                coupon_discount=db_order.coupon_discount,
                shipping_cost=db_order.shipping_cost,
                tax=db_order.tax,
                total=db_order.total_amount,
                item_count=sum(item.get("quantity", 1) for item in db_order.items),
                coupon_code=db_order.applied_coupon_code
            ),
            applied_coupon_id=db_order.applied_coupon_id,
            applied_coupon_code=db_order.applied_coupon_code,
            order_status=db_order.order_status,
            created_at=db_order.created_at,
            updated_at=db_order.updated_at
        )

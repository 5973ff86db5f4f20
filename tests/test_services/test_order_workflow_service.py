"""
订单流转测试 - 使用内存数据库
"""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from sqlalchemy.exc import OperationalError

from order_engine.core.exceptions import StorageError
from order_engine.models.cart import PaymentMethod
from order_engine.models.order import OrderStatus, PlaceOrderRequest
from order_engine.models.result import WorkflowErrorCode
from order_engine.repositories.coupon_repository import CouponRepository
from order_engine.repositories.order_repository import OrderRepository
from order_engine.services.order_service import OrderService
from order_engine.services.order_workflow_service import OrderWorkflowService


@pytest.mark.asyncio
class TestOrderWorkflowService:
    """订单状态机测试类"""

    @pytest.fixture
    def workflow(self, db_session, mock_cache, mock_events):
        service = OrderWorkflowService(OrderRepository(db_session))
        service.cache = mock_cache
        service.events = mock_events
        return service

    @pytest_asyncio.fixture
    async def order_id(self, db_session, mock_cache, mock_events, sample_line_items, sample_shipping_details, now):
        order_service = OrderService(OrderRepository(db_session), CouponRepository(db_session))
        order_service.cache = mock_cache
        order_service.events = mock_events
        result = await order_service.place_order(
            PlaceOrderRequest(
                user_id="user_001",
                line_items=sample_line_items,
                shipping_details=sample_shipping_details,
                payment_method=PaymentMethod.CASH_ON_DELIVERY,
                order_id="ORDER_FLOW_001"
            ),
            current_time=now
        )
        assert result.success
        mock_events.publish.reset_mock()
        return result.data.order_id

    async def test_full_walk(self, workflow, order_id, mock_events):
        steps = [
            (workflow.accept_order, OrderStatus.CONFIRMED),
            (workflow.start_packing, OrderStatus.PACKING),
            (workflow.hand_to_courier, OrderStatus.SHIPPED),
            (workflow.mark_delivered, OrderStatus.DELIVERED),
        ]

        for action, expected_status in steps:
            result = await action(order_id)
            assert result.success
            assert result.data.order_status == expected_status

        assert mock_events.publish.call_count == 4
        last_event = mock_events.publish.call_args.args[1]
        assert last_event["from_status"] == "shipped"
        assert last_event["to_status"] == "delivered"

    async def test_pending_only_reaches_confirmed(self, workflow, order_id):
        for action in (workflow.start_packing, workflow.hand_to_courier, workflow.mark_delivered):
            result = await action(order_id)
            assert result.error_code == WorkflowErrorCode.INVALID_TRANSITION.value

        order = (await workflow.accept_order(order_id)).data
        assert order.order_status == OrderStatus.CONFIRMED

    async def test_same_action_twice_changes_once(self, workflow, order_id):
        first = await workflow.accept_order(order_id)
        second = await workflow.accept_order(order_id)

        assert first.success
        assert second.error_code == WorkflowErrorCode.INVALID_TRANSITION.value

    async def test_advance_status_walks_to_terminal(self, workflow, order_id):
        seen = []
        for _ in range(4):
            result = await workflow.advance_status(order_id)
            seen.append(result.data.order_status)

        terminal = await workflow.advance_status(order_id)

        assert seen == [OrderStatus.CONFIRMED, OrderStatus.PACKING, OrderStatus.SHIPPED, OrderStatus.DELIVERED]
        assert terminal.error_code == WorkflowErrorCode.INVALID_TRANSITION.value

    async def test_delivered_is_terminal(self, workflow, order_id):
        for _ in range(4):
            await workflow.advance_status(order_id)

        for action in (workflow.accept_order, workflow.start_packing, workflow.hand_to_courier, workflow.mark_delivered):
            result = await action(order_id)
            assert not result.success
            assert result.error_code == WorkflowErrorCode.INVALID_TRANSITION.value

    async def test_unknown_order(self, workflow):
        advanced = await workflow.advance_status("ORDER_MISSING")
        accepted = await workflow.accept_order("ORDER_MISSING")

        assert advanced.error_code == WorkflowErrorCode.ORDER_NOT_FOUND.value
        assert accepted.error_code == WorkflowErrorCode.ORDER_NOT_FOUND.value

    async def test_transition_clears_order_caches(self, workflow, order_id, mock_cache):
        await workflow.accept_order(order_id)

        mock_cache.delete_pattern.assert_any_call(f"order:detail:{order_id}")
        mock_cache.delete_pattern.assert_any_call("order:user:user_001:*")

    async def test_storage_failure_raises_storage_error(self, mock_cache, mock_events):
        order_repo = AsyncMock(spec=OrderRepository)
        order_repo.get_by_order_id.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        order_repo.transition_status.side_effect = OperationalError("UPDATE", {}, Exception("db down"))
        workflow = OrderWorkflowService(order_repo)
        workflow.cache = mock_cache
        workflow.events = mock_events

        with pytest.raises(StorageError) as exc_info:
            await workflow.advance_status("ORDER_1")
        assert exc_info.value.operation == "advance_status"

        with pytest.raises(StorageError):
            await workflow.accept_order("ORDER_1")
        mock_events.publish.assert_not_called()

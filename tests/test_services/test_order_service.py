"""
OrderService下单流程测试 - 使用内存数据库
"""

import pytest
import pytest_asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
from unittest.mock import AsyncMock

from sqlalchemy.exc import IntegrityError, OperationalError

from order_engine.core.exceptions import StorageError

from order_engine.models.cart import CartLineItem, PaymentMethod, ShippingDetails, ShippingMethod
from order_engine.models.coupon import CouponValidation
from order_engine.models.order import OrderStatus, PlaceOrderRequest
from order_engine.models.result import CouponErrorCode, ValidationErrorCode
from order_engine.repositories.coupon_repository import CouponRepository
from order_engine.repositories.order_repository import OrderRepository
from order_engine.services.order_service import OrderService


@pytest.mark.asyncio
class TestOrderService:
    """下单服务测试类"""

    @pytest_asyncio.fixture
    async def coupon_repo(self, db_session, now):
        repo = CouponRepository(db_session)
        await repo.create(
            coupon_code="SAVE10",
            discount_percent=10,
            created_by="admin_001",
            expires_at=now + timedelta(days=7)
        )
        return repo

    @pytest.fixture
    def order_service(self, db_session, coupon_repo, mock_cache, mock_events):
        service = OrderService(OrderRepository(db_session), coupon_repo)
        service.cache = mock_cache
        service.coupon_service.cache = mock_cache
        service.events = mock_events
        return service

    @pytest.fixture
    def place_request(self, sample_line_items, sample_shipping_details):
        def build(**overrides):
            data = dict(
                user_id="user_001",
                line_items=sample_line_items,
                shipping_details=sample_shipping_details,
                shipping_method=ShippingMethod.STANDARD,
                payment_method=PaymentMethod.CASH_ON_DELIVERY,
                coupon_code="save10"
            )
            data.update(overrides)
            return PlaceOrderRequest(**data)
        return build

    async def test_place_order_end_to_end(self, order_service, coupon_repo, place_request, mock_events, now):
        result = await order_service.place_order(place_request(), current_time=now)

        assert result.success
        order = result.data
        assert order.order_status == OrderStatus.PENDING
        assert order.breakdown.gross_subtotal == 350000
        assert order.breakdown.item_savings == 50000
        assert order.breakdown.coupon_discount == 30000
        assert order.total_amount == 297000
        assert order.applied_coupon_code == "SAVE10"
        assert order.order_id.startswith("ORDER_20240601120000_")

        coupon = coupon_repo.to_model(await coupon_repo.get_by_coupon_code("SAVE10"))
        assert coupon.usage_count == 1
        assert coupon.used_by == ["user_001"]

        redemption = await coupon_repo.get_redemption_by_order_id(order.order_id)
        assert redemption.discount_amount == 30000
        assert mock_events.publish.call_args.args[0] == "order.placed"

    async def test_stored_snapshot_matches(self, order_service, place_request, now):
        result = await order_service.place_order(place_request(), current_time=now)

        stored = await order_service.get_order_by_id(result.data.order_id, use_cache=False)

        assert stored.total_amount == 297000
        assert stored.breakdown == result.data.breakdown
        assert [item.line_id for item in stored.items] == ["line_001", "line_002"]
        assert stored.shipping_details.city == "Bandung"

    async def test_only_selected_items_are_ordered(self, order_service, place_request, sample_line_items, now):
        sample_line_items[0].selected = False

        result = await order_service.place_order(place_request(coupon_code=None), current_time=now)

        assert [item.product_id for item in result.data.items] == ["prod_shirt"]
        assert result.data.total_amount == 50000 + 25000 + 2000

    async def test_empty_selection(self, order_service, place_request, sample_line_items, now):
        for item in sample_line_items:
            item.selected = False

        result = await order_service.place_order(place_request(), current_time=now)

        assert result.error_code == ValidationErrorCode.EMPTY_SELECTION.value

    async def test_missing_shipping_fields(self, order_service, place_request, now):
        result = await order_service.place_order(
            place_request(shipping_details=ShippingDetails(email="buyer@example.com", city="Bandung")),
            current_time=now
        )

        assert result.error_code == ValidationErrorCode.MISSING_REQUIRED_SHIPPING_FIELD.value
        assert "zip_code" in result.details
        assert "email" not in result.details

    async def test_bank_transfer_requires_proof(self, order_service, place_request, now):
        missing = await order_service.place_order(
            place_request(payment_method=PaymentMethod.BANK_TRANSFER), current_time=now
        )
        provided = await order_service.place_order(
            place_request(payment_method=PaymentMethod.BANK_TRANSFER, payment_proof_ref="proofs/abc.jpg"),
            current_time=now
        )

        assert missing.error_code == ValidationErrorCode.MISSING_PAYMENT_PROOF.value
        assert provided.success
        assert provided.data.payment_proof_ref == "proofs/abc.jpg"

    async def test_cash_on_delivery_stores_no_proof(self, order_service, place_request, now):
        result = await order_service.place_order(
            place_request(payment_proof_ref="proofs/ignored.jpg"), current_time=now
        )
        assert result.data.payment_proof_ref is None

    async def test_invalid_coupon_blocks_order(self, order_service, place_request, now):
        result = await order_service.place_order(place_request(coupon_code="UNKNOWN"), current_time=now)

        assert result.error_code == CouponErrorCode.NOT_FOUND.value
        assert await order_service.get_user_orders("user_001", use_cache=False) == []

    async def test_expired_coupon_blocks_order(self, order_service, place_request, now):
        result = await order_service.place_order(place_request(), current_time=now + timedelta(days=8))
        assert result.error_code == CouponErrorCode.EXPIRED.value

    async def test_coupon_once_per_user(self, order_service, place_request, now):
        first = await order_service.place_order(place_request(), current_time=now)
        second = await order_service.place_order(place_request(), current_time=now)
        other_user = await order_service.place_order(place_request(user_id="user_002"), current_time=now)

        assert first.success
        assert second.error_code == CouponErrorCode.ALREADY_USED_BY_USER.value
        assert other_user.success

    async def test_deleted_coupon_invalidates_selection(self, order_service, coupon_repo, place_request, now):
        db_coupon = await coupon_repo.get_by_coupon_code("SAVE10")
        await coupon_repo.delete(db_coupon.coupon_id)

        result = await order_service.place_order(place_request(), current_time=now)

        assert result.error_code == CouponErrorCode.NOT_FOUND.value

    async def test_rejected_coupon_commit_rolls_back_order(self, order_service, coupon_repo, place_request, now):
        """校验通过后券被他人用完，订单与核销一起回滚"""
        db_coupon = await coupon_repo.create(
            coupon_code="ONCE", discount_percent=50, created_by="admin_001", max_usage=1
        )
        stale_coupon = coupon_repo.to_model(db_coupon)
        await coupon_repo.commit_usage(db_coupon.coupon_id, "user_999", "ORDER_OTHER", 1000)

        order_service.coupon_service.validate_coupon = AsyncMock(
            return_value=CouponValidation(is_valid=True, coupon=stale_coupon)
        )

        result = await order_service.place_order(
            place_request(coupon_code="ONCE", order_id="ORDER_RACE_001"), current_time=now
        )

        assert result.error_code == CouponErrorCode.USAGE_LIMIT_REACHED.value
        assert await order_service.get_order_by_id("ORDER_RACE_001", use_cache=False) is None
        assert await coupon_repo.get_redemption_by_order_id("ORDER_RACE_001") is None
        refreshed = coupon_repo.to_model(await coupon_repo.get_by_coupon_id(db_coupon.coupon_id))
        assert refreshed.usage_count == 1

    async def test_retry_with_same_order_id_is_idempotent(self, order_service, coupon_repo, place_request, mock_events, now):
        first = await order_service.place_order(place_request(order_id="ORDER_CLIENT_001"), current_time=now)
        retry = await order_service.place_order(place_request(order_id="ORDER_CLIENT_001"), current_time=now)

        assert first.success and retry.success
        assert retry.data.order_id == "ORDER_CLIENT_001"
        assert retry.data.total_amount == first.data.total_amount
        coupon = coupon_repo.to_model(await coupon_repo.get_by_coupon_code("SAVE10"))
        assert coupon.usage_count == 1
        assert len(await order_service.get_user_orders("user_001", use_cache=False)) == 1
        assert mock_events.publish.call_count == 1

    async def test_order_id_owned_by_other_user(self, order_service, place_request, now):
        await order_service.place_order(place_request(order_id="ORDER_CLIENT_002"), current_time=now)

        result = await order_service.place_order(
            place_request(order_id="ORDER_CLIENT_002", user_id="user_002"), current_time=now
        )

        assert result.error_code == ValidationErrorCode.ORDER_ID_CONFLICT.value

    async def test_get_order_by_id_uses_cache(self, order_service, place_request, mock_cache, now):
        placed = await order_service.place_order(place_request(), current_time=now)
        mock_cache.get.return_value = placed.data.model_dump()

        order = await order_service.get_order_by_id(placed.data.order_id)

        assert order.order_id == placed.data.order_id
        mock_cache.get.assert_called_with(f"order:detail:{placed.data.order_id}")

    async def test_user_order_history_newest_first(self, order_service, place_request, now):
        await order_service.place_order(place_request(coupon_code=None, order_id="ORDER_A"), current_time=now)
        await order_service.place_order(
            place_request(coupon_code=None, order_id="ORDER_B"), current_time=now + timedelta(minutes=5)
        )
        await order_service.place_order(place_request(user_id="user_002", coupon_code=None), current_time=now)

        orders = await order_service.get_user_orders("user_001", use_cache=False)

        assert [order.order_id for order in orders] == ["ORDER_B", "ORDER_A"]

    async def test_order_statistics(self, order_service, place_request, now):
        await order_service.place_order(place_request(), current_time=now)
        await order_service.place_order(place_request(user_id="user_002", coupon_code=None), current_time=now)

        stats = await order_service.get_order_statistics()

        assert stats.total_orders == 2
        assert stats.revenue == 297000 + 327000
        assert stats.in_progress_orders == 2
        assert stats.orders_by_status == {"pending": 2}


@asynccontextmanager
async def passthrough_transaction():
    yield


@pytest.mark.asyncio
class TestOrderServiceStorageFailure:
    """存储层不可用时统一抛出 StorageError"""

    @pytest.fixture
    def order_repo(self):
        repo = AsyncMock(spec=OrderRepository)
        repo.transaction = passthrough_transaction
        return repo

    @pytest.fixture
    def coupon_repo(self):
        return AsyncMock(spec=CouponRepository)

    @pytest.fixture
    def order_service(self, order_repo, coupon_repo, mock_cache, mock_events):
        service = OrderService(order_repo, coupon_repo)
        service.cache = mock_cache
        service.coupon_service.cache = mock_cache
        service.events = mock_events
        return service

    @pytest.fixture
    def place_request(self, sample_line_items, sample_shipping_details):
        def build(**overrides):
            data = dict(
                user_id="user_001",
                line_items=sample_line_items,
                shipping_details=sample_shipping_details,
                shipping_method=ShippingMethod.STANDARD,
                payment_method=PaymentMethod.CASH_ON_DELIVERY
            )
            data.update(overrides)
            return PlaceOrderRequest(**data)
        return build

    async def test_order_queries(self, order_service, order_repo):
        db_down = OperationalError("SELECT", {}, Exception("db down"))
        order_repo.get_by_order_id.side_effect = db_down
        order_repo.get_user_orders.side_effect = db_down
        order_repo.get_order_statistics.side_effect = db_down

        with pytest.raises(StorageError) as exc_info:
            await order_service.get_order_by_id("ORDER_1")
        assert isinstance(exc_info.value.__cause__, OperationalError)

        with pytest.raises(StorageError):
            await order_service.get_user_orders("user_001", use_cache=False)
        with pytest.raises(StorageError):
            await order_service.get_order_statistics()

    async def test_idempotency_lookup_failure(self, order_service, order_repo, mock_events, place_request, now):
        order_repo.get_by_order_id.side_effect = OperationalError("SELECT", {}, Exception("db down"))

        with pytest.raises(StorageError):
            await order_service.place_order(place_request(order_id="ORDER_RETRY"), current_time=now)

        order_repo.create_order.assert_not_called()
        mock_events.publish.assert_not_called()

    async def test_coupon_lookup_failure(self, order_service, order_repo, coupon_repo, place_request, now):
        coupon_repo.get_by_coupon_code.side_effect = OperationalError("SELECT", {}, Exception("db down"))

        with pytest.raises(StorageError) as exc_info:
            await order_service.place_order(place_request(coupon_code="SAVE10"), current_time=now)

        assert exc_info.value.operation == "validate_coupon"
        order_repo.create_order.assert_not_called()

    async def test_unresolved_write_conflict_is_chained(self, order_service, order_repo, mock_events, place_request, now):
        """写入冲突但找不到已有订单时，保留原始异常"""
        order_repo.get_by_order_id.return_value = None
        order_repo.create_order.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

        with pytest.raises(StorageError) as exc_info:
            await order_service.place_order(place_request(order_id="ORDER_RETRY"), current_time=now)

        assert exc_info.value.operation == "place_order"
        assert isinstance(exc_info.value.__cause__, IntegrityError)
        assert order_repo.get_by_order_id.call_count == 2
        mock_events.publish.assert_not_called()

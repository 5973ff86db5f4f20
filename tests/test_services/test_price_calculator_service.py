"""
价格计算测试
"""

import pytest
from unittest.mock import AsyncMock

from order_engine.models.cart import CartLineItem, ShippingMethod
from order_engine.models.coupon import Coupon, CouponValidation
from order_engine.models.result import CouponErrorCode
from order_engine.services.coupon_service import CouponService
from order_engine.services.price_calculator_service import PriceCalculatorService, calculate_price

SHIPPING_FEES = {"standard": 25000, "regular": 35000, "express": 50000}


def make_coupon(percent: int) -> Coupon:
    return Coupon(
        coupon_id=f"CPN_{percent}",
        coupon_code=f"OFF{percent}",
        discount_percent=percent,
        created_by="admin_001"
    )


class TestCalculatePrice:
    """calculate_price 纯函数测试"""

    def test_end_to_end_breakdown(self, sample_line_items, sample_coupon):
        breakdown = calculate_price(
            sample_line_items,
            ShippingMethod.STANDARD,
            sample_coupon,
            shipping_fees=SHIPPING_FEES,
            tax_amount=2000
        )

        assert breakdown.gross_subtotal == 350000
        assert breakdown.item_savings == 50000
        assert breakdown.net_before_coupon == 300000
        assert breakdown.coupon_discount == 30000
        assert breakdown.shipping_cost == 25000
        assert breakdown.tax == 2000
        assert breakdown.total == 297000
        assert breakdown.item_count == 2
        assert breakdown.coupon_code == "SAVE10"

    def test_default_fees_from_settings(self, sample_line_items):
        breakdown = calculate_price(sample_line_items, ShippingMethod.EXPRESS)
        assert breakdown.shipping_cost == 50000
        assert breakdown.tax == 2000
        assert breakdown.total == 300000 + 50000 + 2000

    def test_shipping_tiers(self, sample_line_items):
        costs = [
            calculate_price(sample_line_items, method, shipping_fees=SHIPPING_FEES, tax_amount=0).shipping_cost
            for method in (ShippingMethod.STANDARD, ShippingMethod.REGULAR, ShippingMethod.EXPRESS)
        ]
        assert costs == [25000, 35000, 50000]

    def test_unselected_items_ignored(self, sample_line_items):
        sample_line_items[1].selected = False
        breakdown = calculate_price(sample_line_items, ShippingMethod.STANDARD, tax_amount=0)
        assert breakdown.gross_subtotal == 250000
        assert breakdown.item_savings == 0
        assert breakdown.item_count == 1

    def test_quantity_multiplies_savings(self):
        items = [CartLineItem(
            line_id="l1", product_id="p1", title="t",
            unit_price=80000, pre_sale_price=100000, quantity=3
        )]
        breakdown = calculate_price(items, ShippingMethod.STANDARD, shipping_fees=SHIPPING_FEES, tax_amount=0)
        assert breakdown.gross_subtotal == 300000
        assert breakdown.item_savings == 60000
        assert breakdown.net_before_coupon == 240000

    def test_total_clamped_to_zero(self):
        """小计1000，100%优惠券，无运费无税费 → 0"""
        items = [CartLineItem(line_id="l1", product_id="p1", title="t", unit_price=1000)]
        breakdown = calculate_price(
            items,
            ShippingMethod.STANDARD,
            make_coupon(100),
            shipping_fees={"standard": 0, "regular": 0, "express": 0},
            tax_amount=0
        )
        assert breakdown.coupon_discount == 1000
        assert breakdown.total == 0

    @pytest.mark.parametrize("net", [0, 1, 99, 101, 999, 12345, 300000])
    def test_coupon_discount_is_floor_and_bounded(self, net):
        items = [CartLineItem(line_id="l1", product_id="p1", title="t", unit_price=net)]
        for percent in range(1, 101):
            breakdown = calculate_price(
                items, ShippingMethod.STANDARD, make_coupon(percent),
                shipping_fees=SHIPPING_FEES, tax_amount=0
            )
            assert breakdown.coupon_discount == (net * percent) // 100
            assert breakdown.coupon_discount <= net
            assert breakdown.total >= 0

    def test_empty_cart(self):
        breakdown = calculate_price([], ShippingMethod.STANDARD, shipping_fees=SHIPPING_FEES, tax_amount=2000)
        assert breakdown.gross_subtotal == 0
        assert breakdown.total == 27000


@pytest.mark.asyncio
class TestPriceCalculatorService:
    """价格预览测试"""

    @pytest.fixture
    def mock_coupon_service(self):
        return AsyncMock(spec=CouponService)

    @pytest.fixture
    def calculator(self, mock_coupon_service):
        service = PriceCalculatorService(mock_coupon_service)
        service.shipping_fees = SHIPPING_FEES
        service.tax_amount = 2000
        return service

    async def test_preview_with_valid_coupon(self, calculator, mock_coupon_service, sample_line_items, sample_coupon):
        mock_coupon_service.validate_coupon.return_value = CouponValidation(is_valid=True, coupon=sample_coupon)

        preview = await calculator.preview(
            sample_line_items, ShippingMethod.STANDARD, coupon_code="save10", user_id="user_001"
        )

        assert preview.breakdown.total == 297000
        assert preview.coupon_validation.is_valid
        mock_coupon_service.validate_coupon.assert_called_once_with(
            "save10", user_id="user_001", current_time=None
        )

    async def test_preview_ignores_invalid_coupon(self, calculator, mock_coupon_service, sample_line_items):
        mock_coupon_service.validate_coupon.return_value = CouponValidation(
            is_valid=False,
            error_code=CouponErrorCode.EXPIRED,
            error_message="优惠券已过期"
        )

        preview = await calculator.preview(sample_line_items, ShippingMethod.STANDARD, coupon_code="OLD")

        assert preview.breakdown.coupon_discount == 0
        assert preview.breakdown.total == 327000
        assert preview.coupon_validation.error_code == CouponErrorCode.EXPIRED

    async def test_preview_without_coupon(self, calculator, mock_coupon_service, sample_line_items):
        preview = await calculator.preview(sample_line_items, ShippingMethod.REGULAR)

        assert preview.coupon_validation is None
        assert preview.breakdown.shipping_cost == 35000
        mock_coupon_service.validate_coupon.assert_not_called()

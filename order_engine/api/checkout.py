"""
结算页接口：加入购物车快照、价格预览
"""

from fastapi import APIRouter, Depends

from order_engine.api.deps import get_flash_sale_service, get_price_calculator_service
from order_engine.api.exceptions import unwrap
from order_engine.models.cart import CartLineItem, PriceRequest
from order_engine.models.product import AddToCartRequest
from order_engine.services.flash_sale_service import FlashSaleService
from order_engine.services.price_calculator_service import PriceCalculatorService, PricePreview

router = APIRouter(prefix="/checkout", tags=["结算"])


@router.post("/line-items", response_model=CartLineItem)
async def build_line_item(
    body: AddToCartRequest,
    service: FlashSaleService = Depends(get_flash_sale_service)
):
    """按当前价格生成购物车项目"""
    return unwrap(await service.build_line_item(
        body.product_id,
        quantity=body.quantity,
        attributes=body.attributes
    ))


@router.post("/price", response_model=PricePreview)
async def preview_price(
    body: PriceRequest,
    calculator: PriceCalculatorService = Depends(get_price_calculator_service)
):
    return await calculator.preview(
        body.line_items,
        body.shipping_method,
        coupon_code=body.coupon_code,
        user_id=body.user_id
    )

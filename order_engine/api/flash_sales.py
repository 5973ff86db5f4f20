"""
限时折扣接口
"""

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends

from order_engine.api.deps import get_flash_sale_service
from order_engine.api.exceptions import BusinessException, unwrap
from order_engine.models.product import ExpiredSaleReport, FlashSaleListing, FlashSaleStart, PriceView
from order_engine.models.result import OperationResult, ValidationErrorCode
from order_engine.services.flash_sale_service import FlashSaleService

router = APIRouter(prefix="/flash-sales", tags=["限时折扣"])


@router.get("", response_model=FlashSaleListing)
async def list_flash_sales(service: FlashSaleService = Depends(get_flash_sale_service)):
    return await service.list_flash_sales()


@router.get("/expired", response_model=List[ExpiredSaleReport])
async def list_expired_sales(service: FlashSaleService = Depends(get_flash_sale_service)):
    """已过期但尚未手动结束的折扣"""
    return await service.list_expired_sales()


@router.get("/products/{product_id}", response_model=PriceView)
async def get_price_view(
    product_id: str,
    service: FlashSaleService = Depends(get_flash_sale_service)
):
    view = await service.get_price_view(product_id, datetime.now())
    if not view:
        raise BusinessException.from_result(
            OperationResult.fail(ValidationErrorCode.PRODUCT_NOT_FOUND, "商品不存在")
        )
    return view


@router.post("/products/{product_id}/start", response_model=PriceView)
async def start_sale(
    product_id: str,
    sale_data: FlashSaleStart,
    service: FlashSaleService = Depends(get_flash_sale_service)
):
    return unwrap(await service.start_sale(product_id, sale_data))


@router.post("/products/{product_id}/stop", response_model=PriceView)
async def stop_sale(
    product_id: str,
    service: FlashSaleService = Depends(get_flash_sale_service)
):
    return unwrap(await service.stop_sale(product_id))

"""
优惠券接口：管理后台维护 + 结算页校验
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field

from order_engine.api.deps import get_coupon_service
from order_engine.api.exceptions import BusinessException, unwrap
from order_engine.models.coupon import (
    CouponCreate,
    CouponResponse,
    CouponUsageSummary,
    CouponValidation
)
from order_engine.models.result import CouponErrorCode, OperationResult
from order_engine.services.coupon_service import COUPON_ERROR_MESSAGES, CouponService

router = APIRouter(prefix="/coupons", tags=["优惠券"])


class CouponValidateRequest(BaseModel):
    code: Optional[str] = Field(None, max_length=50)
    user_id: Optional[str] = None


@router.get("", response_model=List[CouponResponse])
async def list_coupons(coupon_service: CouponService = Depends(get_coupon_service)):
    coupons = await coupon_service.list_coupons()
    return [CouponResponse.from_coupon(coupon) for coupon in coupons]


@router.post("", response_model=CouponResponse, status_code=201)
async def create_coupon(
    coupon_data: CouponCreate,
    admin_id: str = Header("admin", alias="x-admin-id"),
    coupon_service: CouponService = Depends(get_coupon_service)
):
    coupon = unwrap(await coupon_service.create_coupon(coupon_data, created_by=admin_id))
    return CouponResponse.from_coupon(coupon)


@router.post("/validate", response_model=CouponValidation)
async def validate_coupon(
    body: CouponValidateRequest,
    coupon_service: CouponService = Depends(get_coupon_service)
):
    """校验结果总是200返回，由 is_valid 区分"""
    return await coupon_service.validate_coupon(body.code, user_id=body.user_id)


@router.get("/{coupon_id}/usage", response_model=CouponUsageSummary)
async def get_coupon_usage(
    coupon_id: str,
    coupon_service: CouponService = Depends(get_coupon_service)
):
    summary = await coupon_service.get_coupon_usage(coupon_id)
    if not summary:
        raise BusinessException.from_result(OperationResult.fail(
            CouponErrorCode.NOT_FOUND, COUPON_ERROR_MESSAGES[CouponErrorCode.NOT_FOUND]
        ))
    return summary


@router.post("/{coupon_id}/toggle", response_model=CouponResponse)
async def toggle_coupon(
    coupon_id: str,
    coupon_service: CouponService = Depends(get_coupon_service)
):
    coupon = unwrap(await coupon_service.toggle_coupon_active(coupon_id))
    return CouponResponse.from_coupon(coupon)


@router.delete("/{coupon_id}", status_code=204)
async def delete_coupon(
    coupon_id: str,
    coupon_service: CouponService = Depends(get_coupon_service)
):
    unwrap(await coupon_service.delete_coupon(coupon_id))

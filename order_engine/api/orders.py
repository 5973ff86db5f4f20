"""
订单接口：下单、查询、管理员推进状态
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from order_engine.api.deps import get_order_service, get_order_workflow_service
from order_engine.api.exceptions import BusinessException, unwrap
from order_engine.models.order import OrderResponse, OrderStatistics, OrderStatus, PlaceOrderRequest
from order_engine.models.result import OperationResult, WorkflowErrorCode
from order_engine.services.order_service import OrderService
from order_engine.services.order_workflow_service import OrderWorkflowService

router = APIRouter(prefix="/orders", tags=["订单"])


@router.post("", response_model=OrderResponse, status_code=201)
async def place_order(
    body: PlaceOrderRequest,
    order_service: OrderService = Depends(get_order_service)
):
    order = unwrap(await order_service.place_order(body))
    return OrderResponse.from_order(order)


@router.get("/statistics", response_model=OrderStatistics)
async def get_order_statistics(order_service: OrderService = Depends(get_order_service)):
    return await order_service.get_order_statistics()


@router.get("/users/{user_id}", response_model=List[OrderResponse])
async def get_user_orders(
    user_id: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status: Optional[OrderStatus] = None,
    order_service: OrderService = Depends(get_order_service)
):
    orders = await order_service.get_user_orders(user_id, limit=limit, offset=offset, status_filter=status)
    return [OrderResponse.from_order(order) for order in orders]


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    order_service: OrderService = Depends(get_order_service)
):
    order = await order_service.get_order_by_id(order_id)
    if not order:
        raise BusinessException.from_result(
            OperationResult.fail(WorkflowErrorCode.ORDER_NOT_FOUND, f"订单不存在: {order_id}")
        )
    return OrderResponse.from_order(order)


@router.post("/{order_id}/accept", response_model=OrderResponse)
async def accept_order(order_id: str, workflow: OrderWorkflowService = Depends(get_order_workflow_service)):
    return OrderResponse.from_order(unwrap(await workflow.accept_order(order_id)))


@router.post("/{order_id}/pack", response_model=OrderResponse)
async def start_packing(order_id: str, workflow: OrderWorkflowService = Depends(get_order_workflow_service)):
    return OrderResponse.from_order(unwrap(await workflow.start_packing(order_id)))


@router.post("/{order_id}/ship", response_model=OrderResponse)
async def hand_to_courier(order_id: str, workflow: OrderWorkflowService = Depends(get_order_workflow_service)):
    return OrderResponse.from_order(unwrap(await workflow.hand_to_courier(order_id)))


@router.post("/{order_id}/deliver", response_model=OrderResponse)
async def mark_delivered(order_id: str, workflow: OrderWorkflowService = Depends(get_order_workflow_service)):
    return OrderResponse.from_order(unwrap(await workflow.mark_delivered(order_id)))


@router.post("/{order_id}/advance", response_model=OrderResponse)
async def advance_status(order_id: str, workflow: OrderWorkflowService = Depends(get_order_workflow_service)):
    """推进到下一个状态"""
    return OrderResponse.from_order(unwrap(await workflow.advance_status(order_id)))

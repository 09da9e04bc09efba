"""
Order automation API endpoints
"""
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field
from typing import Optional

from src.business.errors import InvalidTransition, OrderNotFound, StorageFailure
from src.business.state_machine import transition
from src.models.base import OrderStatus
from src.utils.logger import logger

router = APIRouter(prefix="/api/orders", tags=["orders"])


class StatusChangeRequest(BaseModel):
    status: OrderStatus = Field(..., description="Target status")
    restaurant_id: Optional[str] = Field(None, description="Accepting restaurant (for confirmed)")
    reason: Optional[str] = Field(None, description="Cancellation reason")


@router.post("/{order_id}/placement")
async def process_placement(order_id: str, request: Request):
    """Передать новый заказ в автоматизацию"""
    automation = request.app.state.automation
    try:
        result = await automation.process_order_placement(order_id)
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    return result.to_dict()


@router.post("/{order_id}/status")
async def change_status(order_id: str, body: StatusChangeRequest, request: Request):
    """External status transitions: restaurant acceptance, rider actions, cancellation"""
    storage = request.app.state.storage
    fields = {}
    if body.restaurant_id:
        fields["restaurant_id"] = body.restaurant_id
    if body.status == OrderStatus.CANCELLED:
        fields["cancellation_reason"] = body.reason or "cancelled_externally"

    try:
        order = await transition(storage, order_id, body.status, **fields)
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StorageFailure as e:
        logger.error("Status change failed", order_id=order_id, error=str(e))
        raise HTTPException(status_code=503, detail=str(e))

    if order.is_terminal:
        await request.app.state.automation.retire_order(order_id)

    return {
        "order_id": order.id,
        "status": order.status.value,
        "restaurant_id": order.restaurant_id,
        "version": order.version,
    }


@router.get("/{order_id}/sla")
async def get_sla_state(order_id: str, request: Request):
    """Scheduled automation jobs and recorded SLA checks for an order"""
    storage = request.app.state.storage
    automation = request.app.state.automation

    order = await storage.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")

    jobs = await automation.scheduler.store.for_order(order_id)
    checks = storage.get_sla_checks(order_id) if hasattr(storage, "get_sla_checks") else []

    return {
        "order_id": order_id,
        "status": order.status.value,
        "jobs": [j.model_dump(mode="json") for j in jobs],
        "checks": [c.model_dump(mode="json") for c in checks],
    }

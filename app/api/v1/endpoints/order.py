"""
Order API Endpoints
Checkout, kitchen status transitions and the derived order queues of a tenant
"""
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from app.core.dependency_injection import get_order_engine
from app.core.exceptions import CommonErrors
from app.core.logging_config import get_logger
from app.models.dto import (
    ApiResponseDTO, CheckoutRequestDTO, CheckoutResultDTO, KitchenQueueDTO, KitchenTicketDTO,
    OrderResponseDTO, OrderStatusUpdateDTO, SalesStatsDTO, SnoozeRequestDTO
)
from app.models.schemas import Order
from app.services.order_lifecycle import KitchenQueue, is_paid, is_ready_to_cook, period_bounds
from app.services.order_service import OrderEngine

logger = get_logger(__name__)
router = APIRouter()


def as_utc(value: datetime) -> datetime:
    """Window bounds without an offset are read as UTC"""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def tenant_engine(tenant_id: str) -> OrderEngine:
    """Order engine scoped to the tenant in the path"""
    return get_order_engine(tenant_id)


def to_order_response(order: Order) -> OrderResponseDTO:
    return OrderResponseDTO.from_order(order, ready_to_cook=is_ready_to_cook(order), is_paid=is_paid(order))


def to_kitchen_response(queue: KitchenQueue) -> KitchenQueueDTO:
    buckets = {
        order_status.value: [
            KitchenTicketDTO(
                order=to_order_response(ticket.order),
                minutes_in_status=ticket.minutes_in_status,
                is_late=ticket.is_late,
                is_snoozed=ticket.is_snoozed,
            )
            for ticket in tickets
        ]
        for order_status, tickets in queue.buckets.items()
    }
    return KitchenQueueDTO(**buckets)


# =============================================================================
# CHECKOUT
# =============================================================================

@router.post("/{tenant_id}/orders/checkout",
             response_model=CheckoutResultDTO,
             status_code=status.HTTP_201_CREATED,
             summary="Submit checkout",
             description="Create an order from the session cart, with an online payment link when requested",
             responses={status.HTTP_502_BAD_GATEWAY: {"model": CheckoutResultDTO,
                                                     "description": "The order could not be saved; the cart is kept"}})
async def submit_checkout(payload: CheckoutRequestDTO, response: Response,
                          engine: OrderEngine = Depends(tenant_engine)):
    result = await engine.submit_checkout(payload.session_id, payload.to_customer())
    if not result.success:
        response.status_code = status.HTTP_502_BAD_GATEWAY
    return result


# =============================================================================
# ORDER LISTS
# =============================================================================

@router.get("/{tenant_id}/orders",
            response_model=List[OrderResponseDTO],
            summary="List orders",
            description="Most recent orders of the tenant, newest first")
async def list_orders(
    refresh: bool = Query(True, description="Re-fetch instead of serving the last snapshot"),
    engine: OrderEngine = Depends(tenant_engine)
):
    orders = await engine.list_orders(refresh=refresh)
    return [to_order_response(order) for order in orders]


@router.get("/{tenant_id}/orders/kitchen",
            response_model=KitchenQueueDTO,
            summary="Kitchen queue",
            description="Actionable orders bucketed by status, snoozed orders last")
async def kitchen_queue(engine: OrderEngine = Depends(tenant_engine)):
    await engine.refresh_orders()
    return to_kitchen_response(await engine.kitchen_queue())


@router.get("/{tenant_id}/orders/awaiting-payment",
            response_model=List[OrderResponseDTO],
            summary="Awaiting payment",
            description="Online orders that cannot be cooked until paid")
async def awaiting_payment(engine: OrderEngine = Depends(tenant_engine)):
    await engine.refresh_orders()
    return [to_order_response(order) for order in await engine.awaiting_payment()]


@router.get("/{tenant_id}/orders/stats",
            response_model=SalesStatsDTO,
            summary="Sales statistics",
            description="Revenue of paid orders in a named period or an explicit window")
async def sales_stats(
    period: Optional[str] = Query(None, description="today, week or month"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    engine: OrderEngine = Depends(tenant_engine)
):
    if start is not None and end is not None:
        start, end = as_utc(start), as_utc(end)
        if end <= start:
            raise CommonErrors.bad_request("'end' must be after 'start'")
    else:
        try:
            start, end = period_bounds(period or "today")
        except ValueError as e:
            raise CommonErrors.bad_request(str(e))

    stats = await engine.sales_stats(start, end)
    return SalesStatsDTO(**stats.model_dump())


@router.get("/{tenant_id}/orders/{order_id}",
            response_model=OrderResponseDTO,
            summary="Get order")
async def get_order(order_id: str, engine: OrderEngine = Depends(tenant_engine)):
    return to_order_response(await engine.get_order(order_id))


# =============================================================================
# TRANSITIONS
# =============================================================================

@router.patch("/{tenant_id}/orders/{order_id}/status",
              response_model=ApiResponseDTO,
              summary="Update order status",
              description="Move an order along pending, preparing, ready and dispatched")
async def update_order_status(
    order_id: str,
    payload: OrderStatusUpdateDTO,
    engine: OrderEngine = Depends(tenant_engine)
):
    order = await engine.advance_status(order_id, payload.status)
    return ApiResponseDTO(
        message=f"Order status updated to {payload.status.value}",
        data=to_order_response(order)
    )


@router.post("/{tenant_id}/orders/{order_id}/cancel",
             response_model=ApiResponseDTO,
             summary="Cancel order")
async def cancel_order(order_id: str, engine: OrderEngine = Depends(tenant_engine)):
    order = await engine.cancel(order_id)
    return ApiResponseDTO(message="Order cancelled successfully", data=to_order_response(order))


@router.post("/{tenant_id}/orders/{order_id}/snooze",
             response_model=ApiResponseDTO,
             summary="Snooze order",
             description="Sort the order after the others in its kitchen bucket for a while")
async def snooze_order(
    order_id: str,
    payload: SnoozeRequestDTO,
    engine: OrderEngine = Depends(tenant_engine)
):
    order = await engine.snooze(order_id, payload.minutes)
    return ApiResponseDTO(message=f"Order snoozed for {payload.minutes} minutes", data=to_order_response(order))

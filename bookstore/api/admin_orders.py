"""Admin order endpoints.

- GET /api/admin/orders - every order, newest first
- GET /api/admin/orders/revenue-stats - revenue and order counts
- PUT /api/admin/orders/{id}/status - change an order's status
- POST /api/admin/orders/{id}/send-invoice - email the invoice to the customer
- GET /api/admin/orders/{id}/events - logged domain events of an order
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from bookstore.api.dependencies import AdminUser, get_request_id, raise_error
from bookstore.api.schemas import (
    ErrorResponse,
    MessageResponse,
    OrderEventsResponse,
    OrderResponse,
    OrdersListResponse,
    OrderStatusUpdateRequest,
    PriceSchema,
    RevenueStatsResponse,
)
from bookstore.application.event_log import OrderEventLog
from bookstore.application.order_service import OrderService, get_order_service

router = APIRouter(prefix="/api/admin/orders", tags=["Admin"])


def get_service(request: Request) -> OrderService:
    return get_order_service(request_id=get_request_id(request))


Service = Annotated[OrderService, Depends(get_service)]


@router.get("", response_model=OrdersListResponse, summary="List all orders")
async def list_all_orders(admin: AdminUser, service: Service) -> OrdersListResponse:
    result = await service.list_all_orders()
    return OrdersListResponse(
        items=[OrderResponse.from_order(o) for o in result.orders],
        total=result.total,
    )


@router.get("/revenue-stats", response_model=RevenueStatsResponse, summary="Revenue statistics")
async def revenue_stats(admin: AdminUser, service: Service) -> RevenueStatsResponse:
    stats = await service.revenue_stats()
    return RevenueStatsResponse(
        total_revenue=PriceSchema.from_money(stats.total_revenue),
        total_orders=stats.total_orders,
        completed_orders=stats.completed_orders,
        pending_orders=stats.pending_orders,
        average_order_value=PriceSchema.from_money(stats.average_order_value),
    )


@router.put(
    "/{order_id}/status",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Update order status",
    description="Setting the current status again is a no-op.",
)
async def update_order_status(
    order_id: int,
    body: OrderStatusUpdateRequest,
    admin: AdminUser,
    service: Service,
) -> OrderResponse:
    result = await service.update_status(order_id, body.new_status)
    if not result.success or not result.order:
        raise_error(result.error_code, result.error, "STATUS_UPDATE_FAILED")
    return OrderResponse.from_order(result.order)


@router.post(
    "/{order_id}/send-invoice",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Email invoice",
)
async def send_invoice(order_id: int, admin: AdminUser, service: Service) -> MessageResponse:
    result = await service.send_invoice_email(order_id)
    if not result.success:
        raise_error(result.error_code, result.error, "INVOICE_FAILED")
    return MessageResponse(message=f"Invoice {result.filename} sent")


@router.get(
    "/{order_id}/events",
    response_model=OrderEventsResponse,
    summary="Order event history",
    description="Domain events of one order as recorded by the event log consumer, oldest first.",
)
async def order_events(order_id: int, request: Request, admin: AdminUser) -> OrderEventsResponse:
    event_log: OrderEventLog = request.app.state.order_event_log
    events = await event_log.history(order_id)
    return OrderEventsResponse(items=events, total=len(events))

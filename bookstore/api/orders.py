"""Order API endpoints for customers.

Provides endpoints for the caller's own orders:
- POST /api/orders - place an order from the cart
- GET /api/orders - order history (newest first)
- GET /api/orders/page - keyset-paginated history
- GET /api/orders/{id} - order details
- DELETE /api/orders/{id} - delete an order
- POST /api/orders/{id}/cancel - cancel an order
- GET /api/orders/{id}/invoice - download the invoice
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status

from bookstore.api.dependencies import CurrentUser, get_request_id, raise_error
from bookstore.api.schemas import (
    ErrorResponse,
    OrderCancelRequest,
    OrderResponse,
    OrdersListResponse,
    OrdersPageResponse,
    PlaceOrderRequest,
)
from bookstore.application.order_service import OrderService, get_order_service
from bookstore.domain.value_objects import Money

router = APIRouter(prefix="/api/orders", tags=["Orders"])


def get_service(request: Request) -> OrderService:
    """Get order service with request ID."""
    return get_order_service(request_id=get_request_id(request))


Service = Annotated[OrderService, Depends(get_service)]


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Place order",
    description="Convert the caller's cart into an order. The submitted total is stored as given.",
)
async def place_order(body: PlaceOrderRequest, auth: CurrentUser, service: Service) -> OrderResponse:
    result = await service.place_order(
        user_id=auth.user_id,
        shipping_address=body.shipping_address,
        payment_method=body.payment_method,
        total_amount=Money.from_decimal(body.total_amount),
    )
    if not result.success or not result.order:
        raise_error(result.error_code, result.error, "ORDER_FAILED")
    return OrderResponse.from_order(result.order)


@router.get("", response_model=OrdersListResponse, summary="Order history")
async def list_my_orders(auth: CurrentUser, service: Service) -> OrdersListResponse:
    result = await service.get_order_history(auth.user_id)
    return OrdersListResponse(
        items=[OrderResponse.from_order(o) for o in result.orders],
        total=result.total,
    )


@router.get("/page", response_model=OrdersPageResponse, summary="Paginated order history")
async def page_my_orders(
    auth: CurrentUser,
    service: Service,
    cursor: int | None = Query(default=None, ge=1, description="Last order id of the previous page"),
    size: int = Query(default=10, description="Page size, clamped to 1..50"),
) -> OrdersPageResponse:
    page = await service.get_order_history_page(auth.user_id, cursor=cursor, size=size)
    return OrdersPageResponse(
        items=[OrderResponse.from_order(o) for o in page.orders],
        size=page.size,
        next_cursor=page.next_cursor,
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Get order details",
)
async def get_order(order_id: int, auth: CurrentUser, service: Service) -> OrderResponse:
    """Get one of the caller's orders.

    Raises:
        HTTPException: 404 if the order does not exist, 403 if it belongs
            to another user.
    """
    result = await service.get_order(order_id, user_id=auth.user_id)
    if not result.success or not result.order:
        raise_error(result.error_code, result.error, "ORDER_NOT_FOUND")
    return OrderResponse.from_order(result.order)


@router.delete(
    "/{order_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Delete order",
)
async def delete_order(order_id: int, auth: CurrentUser, service: Service) -> Response:
    result = await service.delete_own_order(auth.user_id, order_id)
    if not result.success:
        raise_error(result.error_code, result.error, "DELETE_FAILED")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Cancel order",
    description="Cancel one of the caller's orders. Delivered or cancelled orders cannot be cancelled.",
)
async def cancel_order(
    order_id: int,
    auth: CurrentUser,
    service: Service,
    body: OrderCancelRequest | None = None,
) -> OrderResponse:
    result = await service.cancel_own_order(
        auth.user_id, order_id, reason=body.reason if body else None
    )
    if not result.success or not result.order:
        raise_error(result.error_code, result.error, "CANCEL_FAILED")
    return OrderResponse.from_order(result.order)


@router.get(
    "/{order_id}/invoice",
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Download invoice",
)
async def download_invoice(order_id: int, auth: CurrentUser, service: Service) -> Response:
    result = await service.render_invoice(auth.user_id, order_id)
    if not result.success:
        raise_error(result.error_code, result.error, "INVOICE_FAILED")
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )

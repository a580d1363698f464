"""Cart endpoints for the calling user."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from bookstore.api.dependencies import CurrentUser, get_request_id, raise_error
from bookstore.api.schemas import CartItemRequest, CartResponse, ErrorResponse
from bookstore.application.cart_service import CartResult, CartService, get_cart_service

router = APIRouter(prefix="/api/cart", tags=["Cart"])


def get_service(request: Request) -> CartService:
    return get_cart_service(request_id=get_request_id(request))


Service = Annotated[CartService, Depends(get_service)]


def _respond(result: CartResult) -> CartResponse:
    if not result.success or not result.cart:
        raise_error(result.error_code, result.error, "CART_FAILED")
    return CartResponse.from_cart(result.cart)


@router.get("", response_model=CartResponse, responses={404: {"model": ErrorResponse}})
async def get_cart(auth: CurrentUser, service: Service) -> CartResponse:
    return _respond(await service.get_or_create(auth.user_id))


@router.post(
    "/add",
    response_model=CartResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Add book to cart",
)
async def add_to_cart(body: CartItemRequest, auth: CurrentUser, service: Service) -> CartResponse:
    return _respond(await service.add_item(auth.user_id, body.book_id, body.quantity))


@router.put(
    "/update",
    response_model=CartResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Set line quantity",
    description="A quantity of zero or less removes the line.",
)
async def update_cart_item(body: CartItemRequest, auth: CurrentUser, service: Service) -> CartResponse:
    return _respond(await service.set_item_quantity(auth.user_id, body.book_id, body.quantity))


@router.delete("/remove/{book_id}", response_model=CartResponse, responses={404: {"model": ErrorResponse}})
async def remove_from_cart(book_id: int, auth: CurrentUser, service: Service) -> CartResponse:
    return _respond(await service.remove_item(auth.user_id, book_id))


@router.delete("/clear", response_model=CartResponse)
async def clear_cart(auth: CurrentUser, service: Service) -> CartResponse:
    return _respond(await service.clear(auth.user_id))

"""Payment and checkout endpoints.

- POST /api/payment/create-payment-intent - intent for the live cart total
- POST /api/payment/checkout/card - place the order once the intent succeeded
- POST /api/payment/checkout/cod - place a cash-on-delivery order
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from bookstore.api.dependencies import CurrentUser, get_request_id, raise_error
from bookstore.api.schemas import (
    CardCheckoutRequest,
    CashOnDeliveryRequest,
    ErrorResponse,
    OrderResponse,
    PaymentIntentResponse,
    PriceSchema,
)
from bookstore.application.payment_service import PaymentService, get_payment_service

router = APIRouter(prefix="/api/payment", tags=["Payments"])


def get_service(request: Request) -> PaymentService:
    return get_payment_service(request_id=get_request_id(request))


Service = Annotated[PaymentService, Depends(get_service)]


@router.post(
    "/create-payment-intent",
    response_model=PaymentIntentResponse,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Create payment intent",
)
async def create_payment_intent(auth: CurrentUser, service: Service) -> PaymentIntentResponse:
    result = await service.create_intent(auth.user_id)
    if not result.success:
        raise_error(result.error_code, result.error, "PAYMENT_FAILED")
    return PaymentIntentResponse(
        client_secret=result.client_secret,
        payment_intent_id=result.intent_id,
        amount=PriceSchema.from_money(result.amount),
    )


@router.post(
    "/checkout/card",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Card checkout",
    description="Confirms the payment intent with the processor and places the order.",
)
async def checkout_card(body: CardCheckoutRequest, auth: CurrentUser, service: Service) -> OrderResponse:
    result = await service.confirm_and_finalize(
        user_id=auth.user_id,
        intent_id=body.payment_intent_id,
        shipping_address=body.shipping_address,
        total_amount=body.total_amount,
        promo_code=body.promo_code,
    )
    if not result.success or not result.order:
        raise_error(result.error_code, result.error, "CHECKOUT_FAILED")
    return OrderResponse.from_order(result.order)


@router.post(
    "/checkout/cod",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Cash-on-delivery checkout",
)
async def checkout_cod(body: CashOnDeliveryRequest, auth: CurrentUser, service: Service) -> OrderResponse:
    result = await service.checkout_cash_on_delivery(
        user_id=auth.user_id,
        shipping_address=body.shipping_address,
        promo_code=body.promo_code,
    )
    if not result.success or not result.order:
        raise_error(result.error_code, result.error, "CHECKOUT_FAILED")
    return OrderResponse.from_order(result.order)

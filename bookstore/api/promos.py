"""Promo code endpoints.

Public:
- POST /api/promos/validate - check a code against a cart total

Admin:
- GET /api/admin/promos, POST /api/admin/promos
- POST /api/admin/promos/generate
- PUT /api/admin/promos/{id}, DELETE /api/admin/promos/{id}
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, Response, status

from bookstore.api.dependencies import AdminUser, CurrentUser, get_request_id, raise_error
from bookstore.api.schemas import (
    ErrorResponse,
    PromoCodeResponse,
    PromoCreateRequest,
    PromoFieldsRequest,
    PromoGenerateRequest,
    PromoListResponse,
    PromoUpdateRequest,
    PromoValidateRequest,
    PromoValidateResponse,
)
from bookstore.application.promo_service import PromoService, get_promo_service
from bookstore.domain.entities import DiscountType, PromoCode
from bookstore.domain.value_objects import Money

router = APIRouter(prefix="/api/promos", tags=["Promos"])
admin_router = APIRouter(prefix="/api/admin/promos", tags=["Admin"])


def get_service(request: Request) -> PromoService:
    return get_promo_service(request_id=get_request_id(request))


Service = Annotated[PromoService, Depends(get_service)]


def promo_fields(body: PromoFieldsRequest) -> dict[str, Any]:
    """PromoCode keyword arguments for the fields present in a request."""
    fields: dict[str, Any] = {}
    if body.description is not None:
        fields["description"] = body.description
    if body.discount_type is not None:
        fields["discount_type"] = DiscountType(body.discount_type.value)
    if body.discount_value is not None:
        fields["discount_value"] = body.discount_value
    if body.minimum_order_amount is not None:
        fields["minimum_order_amount"] = Money.from_decimal(body.minimum_order_amount)
    if body.max_uses is not None:
        fields["max_uses"] = body.max_uses
    if body.valid_from is not None:
        fields["valid_from"] = body.valid_from
    if body.valid_until is not None:
        fields["valid_until"] = body.valid_until
    if body.active is not None:
        fields["active"] = body.active
    return fields


@router.post("/validate", response_model=PromoValidateResponse, summary="Validate promo code")
async def validate_promo(body: PromoValidateRequest, auth: CurrentUser, service: Service) -> PromoValidateResponse:
    """Validate a code; invalid codes still return 200 with ``valid=false``."""
    evaluation = await service.validate(body.promo_code, auth.user_id, body.cart_total)
    return PromoValidateResponse.from_evaluation(evaluation)


@admin_router.get("", response_model=PromoListResponse, summary="List promo codes")
async def list_promos(admin: AdminUser, service: Service) -> PromoListResponse:
    result = await service.list_all()
    return PromoListResponse(
        items=[PromoCodeResponse.from_promo(p) for p in result.promos],
        total=result.total,
    )


@admin_router.post(
    "",
    response_model=PromoCodeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Create promo code",
)
async def create_promo(body: PromoCreateRequest, admin: AdminUser, service: Service) -> PromoCodeResponse:
    result = await service.create(PromoCode(id=None, code=body.code, **promo_fields(body)))
    if not result.success or not result.promo:
        raise_error(result.error_code, result.error, "PROMO_CREATE_FAILED")
    return PromoCodeResponse.from_promo(result.promo)


@admin_router.post(
    "/generate",
    response_model=PromoCodeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Generate promo code",
)
async def generate_promo(body: PromoGenerateRequest, admin: AdminUser, service: Service) -> PromoCodeResponse:
    result = await service.generate(body.prefix, **promo_fields(body))
    if not result.success or not result.promo:
        raise_error(result.error_code, result.error, "PROMO_CREATE_FAILED")
    return PromoCodeResponse.from_promo(result.promo)


@admin_router.put(
    "/{promo_id}",
    response_model=PromoCodeResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Update promo code",
)
async def update_promo(
    promo_id: int, body: PromoUpdateRequest, admin: AdminUser, service: Service
) -> PromoCodeResponse:
    changes = promo_fields(body)
    if body.code is not None:
        changes["code"] = body.code
    result = await service.update(promo_id, changes)
    if not result.success or not result.promo:
        raise_error(result.error_code, result.error, "PROMO_UPDATE_FAILED")
    return PromoCodeResponse.from_promo(result.promo)


@admin_router.delete(
    "/{promo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Delete promo code",
)
async def delete_promo(promo_id: int, admin: AdminUser, service: Service) -> Response:
    result = await service.delete(promo_id)
    if not result.success:
        raise_error(result.error_code, result.error, "PROMO_DELETE_FAILED")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

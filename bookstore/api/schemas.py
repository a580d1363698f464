"""API schemas for the bookstore API.

Pydantic models for request/response validation and serialization.
Request bodies accept the camelCase names used by the storefront
(``newStatus``, ``promoCode``...) as well as snake_case.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from bookstore.domain.entities import Cart, Order, PromoCode, PromoEvaluation
from bookstore.domain.value_objects import Money


# ============================================================================
# Common Schemas
# ============================================================================


class Currency(str, Enum):
    """Supported currencies."""

    GBP = "GBP"


class PriceSchema(BaseModel):
    """Price representation."""

    amount: int = Field(..., description="Amount in pence")
    currency: Currency = Field(default=Currency.GBP, description="Currency code")
    formatted: str = Field(..., description="Display amount, e.g. £12.99")

    @classmethod
    def from_money(cls, money: Money) -> "PriceSchema":
        return cls(amount=money.amount_pence, currency=Currency(money.currency), formatted=str(money))


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: str | None = Field(default=None, description="Field that caused the error")
    message: str = Field(..., description="Error message")


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: list[ErrorDetail] = Field(default_factory=list, description="Additional error details")
    request_id: str | None = Field(default=None, description="Request ID for correlation")


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


class RequestModel(BaseModel):
    """Base for request bodies accepting field names and aliases."""

    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Cart Schemas
# ============================================================================


class CartItemRequest(RequestModel):
    """Add or update a cart line."""

    book_id: int = Field(..., alias="bookId", ge=1)
    quantity: int = Field(default=1, description="Copies; must be at least 1 when adding")


class CartLineSchema(BaseModel):
    book_id: int
    title: str
    quantity: int
    unit_price: PriceSchema
    line_total: PriceSchema


class CartResponse(BaseModel):
    """A user's cart with live prices."""

    id: int | None
    user_id: int
    items: list[CartLineSchema]
    total: PriceSchema

    @classmethod
    def from_cart(cls, cart: Cart) -> "CartResponse":
        return cls(
            id=cart.id,
            user_id=cart.user_id,
            items=[
                CartLineSchema(
                    book_id=line.book_id,
                    title=line.title,
                    quantity=line.quantity,
                    unit_price=PriceSchema.from_money(line.unit_price),
                    line_total=PriceSchema.from_money(line.line_total),
                )
                for line in cart.lines
            ],
            total=PriceSchema.from_money(cart.total),
        )


# ============================================================================
# Order Schemas
# ============================================================================


class OrderStatusEnum(str, Enum):
    """Order lifecycle status."""

    NEW_ORDER = "NEW_ORDER"
    PROCESSING = "PROCESSING"
    PACKED = "PACKED"
    DISPATCHED = "DISPATCHED"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELED = "CANCELED"


class PlaceOrderRequest(RequestModel):
    """Place an order from the caller's cart."""

    shipping_address: str = Field(..., alias="shippingAddress", min_length=1)
    payment_method: str = Field(..., alias="paymentMethod", min_length=1, max_length=20)
    total_amount: Decimal = Field(..., alias="totalAmount", ge=0, decimal_places=2)


class OrderCancelRequest(RequestModel):
    """Customer cancellation."""

    reason: str | None = Field(default=None, max_length=500)


class OrderStatusUpdateRequest(RequestModel):
    """Operator status change; any status name is accepted and validated by the service."""

    new_status: str = Field(..., alias="newStatus")


class OrderLineSchema(BaseModel):
    book_id: int
    title: str
    quantity: int
    unit_price: PriceSchema
    line_total: PriceSchema


class OrderResponse(BaseModel):
    """Full order representation."""

    id: int
    order_number: str
    user_id: int
    status: OrderStatusEnum
    ordered_at: datetime
    updated_at: datetime
    shipping_address: str
    payment_method: str
    items: list[OrderLineSchema]
    subtotal: PriceSchema
    promo_code: str | None = None
    promo_discount: PriceSchema
    total: PriceSchema

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            status=OrderStatusEnum(order.status.value),
            ordered_at=order.ordered_at,
            updated_at=order.updated_at,
            shipping_address=order.shipping_address,
            payment_method=order.payment_method,
            items=[
                OrderLineSchema(
                    book_id=line.book_id,
                    title=line.title,
                    quantity=line.quantity,
                    unit_price=PriceSchema.from_money(line.unit_price),
                    line_total=PriceSchema.from_money(line.line_total),
                )
                for line in order.lines
            ],
            subtotal=PriceSchema.from_money(order.subtotal),
            promo_code=order.promo_code,
            promo_discount=PriceSchema.from_money(order.promo_discount),
            total=PriceSchema.from_money(order.total_amount),
        )


class OrdersListResponse(BaseModel):
    """All matching orders, newest first."""

    items: list[OrderResponse]
    total: int


class OrdersPageResponse(BaseModel):
    """Keyset page of orders."""

    items: list[OrderResponse]
    size: int
    next_cursor: int | None = Field(default=None, description="Pass as ``cursor`` for the next page")


class RevenueStatsResponse(BaseModel):
    total_revenue: PriceSchema
    total_orders: int
    completed_orders: int
    pending_orders: int
    average_order_value: PriceSchema


class OrderEventSchema(BaseModel):
    event_id: str
    event_type: str
    aggregate_id: str
    payload: dict[str, Any]
    occurred_at: datetime


class OrderEventsResponse(BaseModel):
    """Logged domain events of one order, oldest first."""

    items: list[OrderEventSchema]
    total: int


# ============================================================================
# Payment Schemas
# ============================================================================


class PaymentIntentResponse(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount: PriceSchema


class CardCheckoutRequest(RequestModel):
    """Finalize a card payment into an order."""

    payment_intent_id: str | None = Field(default=None, alias="paymentIntentId")
    shipping_address: str = Field(..., alias="shippingAddress", min_length=1)
    total_amount: Decimal = Field(..., alias="totalAmount", ge=0, decimal_places=2)
    promo_code: str | None = Field(default=None, alias="promoCode")


class CashOnDeliveryRequest(RequestModel):
    shipping_address: str = Field(..., alias="shippingAddress", min_length=1)
    promo_code: str | None = Field(default=None, alias="promoCode")


# ============================================================================
# Promo Schemas
# ============================================================================


class DiscountTypeEnum(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class PromoValidateRequest(RequestModel):
    promo_code: str | None = Field(default=None, alias="promoCode")
    cart_total: Decimal = Field(..., alias="cartTotal")


class PromoValidateResponse(BaseModel):
    """Outcome of a promo validation; never an error status."""

    valid: bool
    message: str
    code: str | None = None
    cart_total: PriceSchema
    discount: PriceSchema
    discounted_total: PriceSchema

    @classmethod
    def from_evaluation(cls, evaluation: PromoEvaluation) -> "PromoValidateResponse":
        return cls(
            valid=evaluation.valid,
            message=evaluation.message,
            code=evaluation.code,
            cart_total=PriceSchema.from_money(evaluation.cart_total),
            discount=PriceSchema.from_money(evaluation.discount),
            discounted_total=PriceSchema.from_money(evaluation.discounted_total),
        )


class PromoFieldsRequest(RequestModel):
    """Optional promo fields shared by create, generate and update."""

    description: str | None = Field(default=None, max_length=500)
    discount_type: DiscountTypeEnum | None = Field(default=None, alias="discountType")
    discount_value: Decimal | None = Field(default=None, alias="discountValue", ge=0)
    minimum_order_amount: Decimal | None = Field(default=None, alias="minimumOrderAmount", ge=0)
    max_uses: int | None = Field(default=None, alias="maxUses", ge=1)
    valid_from: datetime | None = Field(default=None, alias="validFrom")
    valid_until: datetime | None = Field(default=None, alias="validUntil")
    active: bool | None = None


class PromoCreateRequest(PromoFieldsRequest):
    code: str = Field(..., min_length=1, max_length=50)


class PromoGenerateRequest(PromoFieldsRequest):
    prefix: str | None = Field(default=None, max_length=40)


class PromoUpdateRequest(PromoFieldsRequest):
    code: str | None = Field(default=None, min_length=1, max_length=50)


class PromoCodeResponse(BaseModel):
    id: int
    code: str
    description: str
    discount_type: DiscountTypeEnum
    discount_value: Decimal
    minimum_order_amount: PriceSchema
    max_uses: int
    current_uses: int
    valid_from: datetime
    valid_until: datetime
    active: bool
    currently_valid: bool

    @classmethod
    def from_promo(cls, promo: PromoCode) -> "PromoCodeResponse":
        return cls(
            id=promo.id,
            code=promo.code,
            description=promo.description,
            discount_type=DiscountTypeEnum(promo.discount_type.value),
            discount_value=promo.discount_value,
            minimum_order_amount=PriceSchema.from_money(promo.minimum_order_amount),
            max_uses=promo.max_uses,
            current_uses=promo.current_uses,
            valid_from=promo.valid_from,
            valid_until=promo.valid_until,
            active=promo.active,
            currently_valid=promo.is_valid(),
        )


class PromoListResponse(BaseModel):
    items: list[PromoCodeResponse]
    total: int


# ============================================================================
# Site Settings Schemas
# ============================================================================


class SettingsResponse(BaseModel):
    settings: dict[str, str]


class SettingValueRequest(BaseModel):
    value: str


class SettingValueResponse(BaseModel):
    key: str
    value: str

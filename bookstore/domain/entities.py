"""Domain entities for the order-fulfillment core.

Entities reference their owners by id only (a cart knows its ``user_id``,
an order line knows its ``book_id``); aggregates are assembled by the
repositories from explicit queries.
"""

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum

from bookstore.domain.base import AggregateRoot, Entity, ValueObject
from bookstore.domain.events import OrderCreated, OrderStatusUpdated
from bookstore.domain.exceptions import (
    CartEmptyError,
    InvalidQuantityError,
    OrderNotCancellableError,
    OrderNotOwnedError,
)
from bookstore.domain.state_machines import OrderStatus, validate_order_transition
from bookstore.domain.value_objects import Money, sum_money


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from the database."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============================================================================
# Cart
# ============================================================================


@dataclass
class CartLine(Entity[int | None]):
    """One book in a cart, with the book's live catalog price.

    Attributes:
        book_id: Referenced book.
        quantity: Number of copies (at least 1).
        unit_price: Current catalog price of the book.
        title: Book title for display.
    """

    book_id: int
    quantity: int
    unit_price: Money
    title: str = ""

    def __post_init__(self) -> None:
        validate_quantity(self.quantity)

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity


def validate_quantity(quantity: int) -> None:
    """Raise InvalidQuantityError unless quantity is at least 1."""
    if quantity < 1:
        raise InvalidQuantityError(quantity)


@dataclass
class Cart(Entity[int | None]):
    """A user's pending selection of books.

    At most one line exists per book; the repository enforces it with a
    unique constraint and the cart service accumulates quantities.
    """

    user_id: int
    lines: list[CartLine] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def total(self) -> Money:
        """Sum of live price times quantity; zero for an empty cart."""
        return sum_money([line.line_total for line in self.lines])

    def line_for(self, book_id: int) -> CartLine | None:
        for line in self.lines:
            if line.book_id == book_id:
                return line
        return None


# ============================================================================
# Order
# ============================================================================


@dataclass
class OrderLine(Entity[int | None]):
    """A priced line of an order.

    ``unit_price`` is captured at purchase time and never re-derived from
    the catalog afterwards.
    """

    book_id: int
    quantity: int
    unit_price: Money
    title: str = ""

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity


def generate_order_number() -> str:
    """Generate a human-displayable order number like ``ORD-1718000000000-3FA2``."""
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(2).upper()}"


@dataclass(kw_only=True)
class Order(AggregateRoot[int | None]):
    """Immutable snapshot of a completed checkout plus its status.

    Attributes:
        order_number: Unique display number.
        user_id: Owning user.
        ordered_at: Placement timestamp.
        total_amount: Total the customer agreed to pay.
        shipping_address: Free-form shipping address.
        payment_method: Payment method tag (``CARD``, ``COD``...).
        status: Current lifecycle status.
        lines: Order lines owned by this order.
        promo_code: Promo code applied at checkout, if any.
        promo_discount: Discount granted by the promo code.
    """

    id: int | None = None
    order_number: str
    user_id: int
    ordered_at: datetime = field(default_factory=utcnow)
    total_amount: Money
    shipping_address: str = ""
    payment_method: str = ""
    status: OrderStatus = OrderStatus.NEW_ORDER
    lines: list[OrderLine] = field(default_factory=list)
    promo_code: str | None = None
    promo_discount: Money = field(default_factory=Money.zero)

    @classmethod
    def place(
        cls,
        cart: Cart,
        total_amount: Money,
        shipping_address: str,
        payment_method: str,
        promo_code: str | None = None,
        promo_discount: Money | None = None,
    ) -> "Order":
        """Build a NEW_ORDER order from a cart.

        Every cart line becomes an order line carrying the book's current
        price. The caller-supplied total is kept as given.

        Args:
            cart: Cart to convert; must not be empty.
            total_amount: Total submitted by the caller.
            shipping_address: Shipping address.
            payment_method: Payment method tag.
            promo_code: Applied promo code, if any.
            promo_discount: Discount the promo granted.

        Returns:
            New unsaved Order.

        Raises:
            CartEmptyError: If the cart has no lines.
        """
        if cart.is_empty:
            raise CartEmptyError(cart.user_id)

        now = utcnow()
        lines = [
            OrderLine(
                id=None,
                book_id=line.book_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                title=line.title,
            )
            for line in cart.lines
        ]
        return cls(
            order_number=generate_order_number(),
            user_id=cart.user_id,
            ordered_at=now,
            total_amount=total_amount,
            shipping_address=shipping_address,
            payment_method=payment_method,
            lines=lines,
            promo_code=promo_code,
            promo_discount=promo_discount or Money.zero(),
            created_at=now,
            updated_at=now,
        )

    @property
    def subtotal(self) -> Money:
        """Sum of quantity times captured unit price."""
        return sum_money([line.line_total for line in self.lines])

    @property
    def expected_total(self) -> Money:
        """Subtotal minus the recorded promo discount, floored at zero."""
        return self.subtotal.clamp_subtract(self.promo_discount)

    def reconciles(self) -> bool:
        """Check that the stored total matches lines minus discount."""
        return self.total_amount == self.expected_total

    def record_created(self, correlation_id: str | None = None) -> None:
        """Record ORDER_CREATED once the order has an id."""
        self._record_event(
            OrderCreated(
                aggregate_id=str(self.id),
                aggregate_type="order",
                correlation_id=correlation_id,
                order_number=self.order_number,
                user_id=self.user_id,
                total_pence=self.total_amount.amount_pence,
                line_count=len(self.lines),
            )
        )

    def change_status(
        self,
        new_status: OrderStatus,
        enforce_transitions: bool = False,
        correlation_id: str | None = None,
    ) -> bool:
        """Move the order to ``new_status``.

        Args:
            new_status: Target status.
            enforce_transitions: Apply the forward-only transition table.
            correlation_id: Correlation id stamped on the event.

        Returns:
            False when the order already has ``new_status`` (nothing
            recorded), True otherwise.

        Raises:
            InvalidStateTransitionError: If enforcement is on and the move
                is not in the transition table.
        """
        if self.status == new_status:
            return False
        if enforce_transitions:
            validate_order_transition(str(self.id), self.status, new_status)

        previous = self.status
        self.status = new_status
        self._touch()
        self._record_event(
            OrderStatusUpdated(
                aggregate_id=str(self.id),
                aggregate_type="order",
                correlation_id=correlation_id,
                order_number=self.order_number,
                previous_status=previous.value,
                status=new_status.value,
            )
        )
        return True

    def ensure_owned_by(self, user_id: int) -> None:
        """Raise OrderNotOwnedError unless ``user_id`` owns this order."""
        if self.user_id != user_id:
            raise OrderNotOwnedError(self.id or 0, user_id)

    def ensure_cancellable_by(self, user_id: int) -> None:
        """Check ownership and that the order is not delivered or canceled."""
        self.ensure_owned_by(user_id)
        if not self.status.is_customer_cancellable():
            raise OrderNotCancellableError(self.id or 0, self.status.value)


# ============================================================================
# Promo Codes
# ============================================================================


class DiscountType(str, Enum):
    """How a promo code computes its discount."""

    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


@dataclass(frozen=True)
class PromoEvaluation(ValueObject):
    """Outcome of validating a promo code against a cart total.

    Invariant: ``discounted_total == cart_total - discount`` and the
    discounted total is never negative.
    """

    valid: bool
    message: str
    cart_total: Money
    discount: Money
    discounted_total: Money
    code: str | None = None

    @classmethod
    def rejected(cls, message: str, cart_total: Money, code: str | None = None) -> "PromoEvaluation":
        return cls(
            valid=False,
            message=message,
            cart_total=cart_total,
            discount=Money.zero(cart_total.currency),
            discounted_total=cart_total,
            code=code,
        )


def normalize_code(code: str | None) -> str:
    """Trim and uppercase a promo code."""
    return (code or "").strip().upper()


@dataclass
class PromoCode(Entity[int | None]):
    """A discount rule with a validity window and usage cap."""

    code: str = "DEFAULT"
    description: str = "Promotional discount"
    discount_type: DiscountType = DiscountType.FIXED_AMOUNT
    discount_value: Decimal = Decimal("0")
    minimum_order_amount: Money = field(default_factory=Money.zero)
    max_uses: int = 1000
    current_uses: int = 0
    valid_from: datetime = field(default_factory=utcnow)
    valid_until: datetime = field(default_factory=lambda: utcnow() + timedelta(days=365))
    active: bool = True

    def __post_init__(self) -> None:
        self.code = normalize_code(self.code)
        self.valid_from = as_utc(self.valid_from)
        self.valid_until = as_utc(self.valid_until)

    def validity_failure(self, now: datetime) -> str | None:
        """Return the most specific reason the code is unusable at ``now``.

        Reasons are checked in order: inactive, not yet active, expired,
        usage exhausted. Returns None when the code is usable.
        """
        if not self.active:
            return "Promo code is inactive"
        if now < self.valid_from:
            return "Promo code is not yet active"
        if now >= self.valid_until:
            return "Promo code has expired"
        if self.current_uses >= self.max_uses:
            return "Promo code usage limit exceeded"
        return None

    def is_valid(self, now: datetime | None = None) -> bool:
        return self.validity_failure(now or utcnow()) is None

    def discount_for(self, cart_total: Money) -> Money:
        """Raw discount before clamping."""
        if self.discount_type == DiscountType.PERCENTAGE:
            return cart_total.percentage(self.discount_value)
        fixed = Money.from_decimal(self.discount_value, cart_total.currency)
        return min(fixed, cart_total)

    def evaluate(self, cart_total: Money, now: datetime | None = None) -> PromoEvaluation:
        """Validate this code against a cart total and compute the discount.

        Args:
            cart_total: Total the discount applies to.
            now: Evaluation time (defaults to the current time).

        Returns:
            PromoEvaluation; a clamped discount equals the cart total.
        """
        failure = self.validity_failure(now or utcnow())
        if failure:
            return PromoEvaluation.rejected(failure, cart_total, self.code)

        if cart_total < self.minimum_order_amount:
            return PromoEvaluation.rejected(
                f"Minimum order amount of {self.minimum_order_amount} required",
                cart_total,
                self.code,
            )

        discount = self.discount_for(cart_total)
        if discount > cart_total:
            discount = cart_total
        return PromoEvaluation(
            valid=True,
            message="Promo code applied successfully",
            cart_total=cart_total,
            discount=discount,
            discounted_total=cart_total - discount,
            code=self.code,
        )


# ============================================================================
# Payments
# ============================================================================


class PaymentStatus(str, Enum):
    """Terminal outcome of a payment."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Payment(Entity[int | None]):
    """Side-record linking an order to a confirmed processor intent."""

    order_id: int
    intent_id: str
    amount: Money
    status: PaymentStatus = PaymentStatus.SUCCEEDED
    paid_at: datetime = field(default_factory=utcnow)

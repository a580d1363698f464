"""SQLAlchemy ORM models.

Money columns hold integer pence. Owners are referenced by foreign key
only; the one-way relationships below (cart to lines, order to lines,
order line to book) exist so repositories can load an aggregate in one
explicit query.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookstore.domain.entities import (
    Cart,
    CartLine,
    DiscountType,
    Order,
    OrderLine,
    Payment,
    PaymentStatus,
    PromoCode,
    as_utc,
)
from bookstore.domain.state_machines import OrderStatus
from bookstore.domain.value_objects import Money
from bookstore.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Users and Books (owned by the account and catalog services)
# ============================================================================


class UserModel(Base):
    """Minimal user row: orders and carts only need existence and email."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="USER")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class BookModel(Base):
    """Catalog book with its live price."""

    __tablename__ = "books"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    author: Mapped[str | None] = mapped_column(String(255), nullable=True)
    price_pence: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


# ============================================================================
# Carts
# ============================================================================


class CartModel(Base):
    """One cart per user, created lazily."""

    __tablename__ = "carts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    lines: Mapped[list["CartLineModel"]] = relationship(
        cascade="all, delete-orphan",
        order_by="CartLineModel.id",
    )

    def to_entity(self) -> Cart:
        """Convert to domain Cart (lines and their books must be loaded)."""
        return Cart(
            id=self.id,
            user_id=self.user_id,
            lines=[line.to_entity() for line in self.lines],
        )


class CartLineModel(Base):
    """Book and quantity inside a cart; unique per (cart, book)."""

    __tablename__ = "cart_lines"
    __table_args__ = (UniqueConstraint("cart_id", "book_id", name="uq_cart_lines_cart_book"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cart_id: Mapped[int] = mapped_column(
        ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    book: Mapped[BookModel] = relationship()

    def to_entity(self) -> CartLine:
        return CartLine(
            id=self.id,
            book_id=self.book_id,
            quantity=self.quantity,
            unit_price=Money(amount_pence=self.book.price_pence),
            title=self.book.title,
        )


# ============================================================================
# Orders
# ============================================================================


class OrderModel(Base):
    """Placed order with its status."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    ordered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_pence: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="GBP")
    promo_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    promo_discount_pence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shipping_address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OrderStatus.NEW_ORDER.value, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    lines: Mapped[list["OrderLineModel"]] = relationship(
        cascade="all, delete-orphan",
        order_by="OrderLineModel.id",
    )

    @classmethod
    def from_entity(cls, order: Order) -> "OrderModel":
        """Build a new row (with lines) from an unsaved Order."""
        return cls(
            order_number=order.order_number,
            user_id=order.user_id,
            ordered_at=order.ordered_at,
            total_pence=order.total_amount.amount_pence,
            currency=order.total_amount.currency,
            promo_code=order.promo_code,
            promo_discount_pence=order.promo_discount.amount_pence,
            shipping_address=order.shipping_address,
            payment_method=order.payment_method,
            status=order.status.value,
            created_at=order.created_at,
            updated_at=order.updated_at,
            lines=[
                OrderLineModel(
                    book_id=line.book_id,
                    quantity=line.quantity,
                    unit_price_pence=line.unit_price.amount_pence,
                )
                for line in order.lines
            ],
        )

    def to_entity(self) -> Order:
        """Convert to domain Order (lines and their books must be loaded)."""
        return Order(
            id=self.id,
            order_number=self.order_number,
            user_id=self.user_id,
            ordered_at=as_utc(self.ordered_at),
            total_amount=Money(amount_pence=self.total_pence, currency=self.currency),
            shipping_address=self.shipping_address,
            payment_method=self.payment_method,
            status=OrderStatus(self.status),
            lines=[line.to_entity(self.currency) for line in self.lines],
            promo_code=self.promo_code,
            promo_discount=Money(amount_pence=self.promo_discount_pence, currency=self.currency),
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )


class OrderLineModel(Base):
    """Order line with the unit price captured at purchase time."""

    __tablename__ = "order_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_pence: Mapped[int] = mapped_column(Integer, nullable=False)

    book: Mapped[BookModel] = relationship()

    def to_entity(self, currency: str = "GBP") -> OrderLine:
        return OrderLine(
            id=self.id,
            book_id=self.book_id,
            quantity=self.quantity,
            unit_price=Money(amount_pence=self.unit_price_pence, currency=currency),
            title=self.book.title if self.book is not None else "",
        )


# ============================================================================
# Payments
# ============================================================================


class PaymentModel(Base):
    """Processor-side record of a confirmed payment."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    intent_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    amount_pence: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    def to_entity(self) -> Payment:
        return Payment(
            id=self.id,
            order_id=self.order_id,
            intent_id=self.intent_id,
            amount=Money(amount_pence=self.amount_pence),
            status=PaymentStatus(self.status),
            paid_at=as_utc(self.paid_at),
        )


# ============================================================================
# Promo Codes
# ============================================================================


class PromoCodeModel(Base):
    """Promo code with validity window and usage counter."""

    __tablename__ = "promo_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    minimum_order_pence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def apply(self, promo: PromoCode) -> None:
        """Copy editable fields from a domain PromoCode onto this row."""
        self.code = promo.code
        self.description = promo.description
        self.discount_type = promo.discount_type.value
        self.discount_value = promo.discount_value
        self.minimum_order_pence = promo.minimum_order_amount.amount_pence
        self.max_uses = promo.max_uses
        self.current_uses = promo.current_uses
        self.valid_from = promo.valid_from
        self.valid_until = promo.valid_until
        self.active = promo.active

    def to_entity(self) -> PromoCode:
        return PromoCode(
            id=self.id,
            code=self.code,
            description=self.description,
            discount_type=DiscountType(self.discount_type),
            discount_value=Decimal(self.discount_value),
            minimum_order_amount=Money(amount_pence=self.minimum_order_pence),
            max_uses=self.max_uses,
            current_uses=self.current_uses,
            valid_from=as_utc(self.valid_from),
            valid_until=as_utc(self.valid_until),
            active=self.active,
        )


# ============================================================================
# Site Settings
# ============================================================================


class SiteSettingModel(Base):
    """Key/value row of the runtime configuration store."""

    __tablename__ = "site_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


# ============================================================================
# Outbox and Event Log
# ============================================================================


class OutboxEventModel(Base):
    """Broker record that could not be published and awaits relay."""

    __tablename__ = "outbox_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    topic: Mapped[str] = mapped_column(String(100), nullable=False)
    key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "topic": self.topic,
            "key": self.key,
            "payload": self.payload,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class OrderEventLogModel(Base):
    """Audit copy of every order domain event consumed from the broker."""

    __tablename__ = "order_event_log"

    event_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    aggregate_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "aggregate_id": self.aggregate_id,
            "payload": self.payload,
            "occurred_at": as_utc(self.occurred_at).isoformat(),
        }

"""Domain layer - Entities, value objects, the order state machine, domain events.

This module exports the core domain building blocks following DDD patterns:

- **Entities**: Objects with identity (Cart, Order, PromoCode, Payment)
- **Value Objects**: Immutable objects compared by value (Money, PromoEvaluation)
- **State Machines**: Order lifecycle (OrderStatus)
- **Domain Events**: ORDER_CREATED and ORDER_STATUS_UPDATED
- **Exceptions**: Domain-specific errors and invariant violations

Example usage:
    from bookstore.domain import Cart, CartLine, Money, Order

    cart = Cart(id=1, user_id=7)
    cart.lines.append(
        CartLine(id=None, book_id=3, quantity=2, unit_price=Money.from_decimal("10.00"))
    )
    order = Order.place(cart, cart.total, "1 High St", "CARD")
    print(order.total_amount)  # £20.00
"""

# Base classes
from bookstore.domain.base import AggregateRoot, DomainEvent, Entity, ValueObject

# Entities
from bookstore.domain.entities import (
    Cart,
    CartLine,
    DiscountType,
    Order,
    OrderLine,
    Payment,
    PaymentStatus,
    PromoCode,
    PromoEvaluation,
    normalize_code,
)

# Domain Events
from bookstore.domain.events import (
    EVENT_REGISTRY,
    OrderCreated,
    OrderStatusUpdated,
    get_event_class,
)

# Exceptions
from bookstore.domain.exceptions import (
    CartEmptyError,
    ConflictError,
    DomainError,
    ExternalServiceError,
    IllegalStateError,
    InvalidOrderStatusError,
    InvalidQuantityError,
    InvalidStateTransitionError,
    NotFoundError,
    OrderNotCancellableError,
    OrderNotOwnedError,
    PaymentNotCompleteError,
    PaymentProcessorError,
    PromoRedemptionConflictError,
    ValidationError,
)

# State Machines
from bookstore.domain.state_machines import OrderStatus, validate_order_transition

# Value Objects
from bookstore.domain.value_objects import Money

__all__ = [
    # Base
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "ValueObject",
    # Entities
    "Cart",
    "CartLine",
    "DiscountType",
    "Order",
    "OrderLine",
    "Payment",
    "PaymentStatus",
    "PromoCode",
    "PromoEvaluation",
    "normalize_code",
    # Events
    "EVENT_REGISTRY",
    "OrderCreated",
    "OrderStatusUpdated",
    "get_event_class",
    # Exceptions
    "CartEmptyError",
    "ConflictError",
    "DomainError",
    "ExternalServiceError",
    "IllegalStateError",
    "InvalidOrderStatusError",
    "InvalidQuantityError",
    "InvalidStateTransitionError",
    "NotFoundError",
    "OrderNotCancellableError",
    "OrderNotOwnedError",
    "PaymentNotCompleteError",
    "PaymentProcessorError",
    "PromoRedemptionConflictError",
    "ValidationError",
    # State Machines
    "OrderStatus",
    "validate_order_transition",
    # Value Objects
    "Money",
]

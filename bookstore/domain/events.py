"""Domain events for the order lifecycle.

Events are published to the ``orders.events`` topic keyed by order id so
that all events of one order stay in publish order on one partition.
"""

from dataclasses import dataclass
from typing import Any, ClassVar

from bookstore.domain.base import DomainEvent


# ============================================================================
# Order Events
# ============================================================================


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Event raised when an order is placed from a cart."""

    event_type: ClassVar[str] = "ORDER_CREATED"

    order_number: str = ""
    user_id: int = 0
    total_pence: int = 0
    line_count: int = 0

    def _payload(self) -> dict[str, Any]:
        return {
            "orderNumber": self.order_number,
            "userId": self.user_id,
            "totalPence": self.total_pence,
            "lineCount": self.line_count,
        }


@dataclass(frozen=True)
class OrderStatusUpdated(DomainEvent):
    """Event raised when an order moves to a different status."""

    event_type: ClassVar[str] = "ORDER_STATUS_UPDATED"

    order_number: str = ""
    previous_status: str = ""
    status: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "orderNumber": self.order_number,
            "previousStatus": self.previous_status,
            "status": self.status,
        }


# ============================================================================
# Event Registry
# ============================================================================


EVENT_REGISTRY: dict[str, type[DomainEvent]] = {
    OrderCreated.event_type: OrderCreated,
    OrderStatusUpdated.event_type: OrderStatusUpdated,
}


def get_event_class(event_type: str) -> type[DomainEvent] | None:
    """Get event class by type string.

    Args:
        event_type: Event type string (e.g., "ORDER_CREATED").

    Returns:
        Event class if found, None otherwise.
    """
    return EVENT_REGISTRY.get(event_type)

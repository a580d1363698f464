"""State machine for the order lifecycle.

Every status is reachable from NEW_ORDER. Customers may only cancel
orders that are not yet DELIVERED or CANCELED. The forward-only
transition table is available to the admin path and is applied there
when enforcement is switched on in settings.
"""

from enum import Enum

from bookstore.domain.exceptions import InvalidOrderStatusError, InvalidStateTransitionError


# ============================================================================
# Order State Machine
# ============================================================================


class OrderStatus(str, Enum):
    """Order lifecycle states.

    State diagram (forward-only table):
        NEW_ORDER ─► PROCESSING ─► PACKED ─► DISPATCHED ─► IN_TRANSIT
                                                              │
                      DELIVERED ◄── OUT_FOR_DELIVERY ◄────────┘

        any non-terminal state ─► CANCELED
    """

    NEW_ORDER = "NEW_ORDER"
    PROCESSING = "PROCESSING"
    PACKED = "PACKED"
    DISPATCHED = "DISPATCHED"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELED = "CANCELED"

    @classmethod
    def parse(cls, value: str) -> "OrderStatus":
        """Parse a status name case-insensitively.

        Args:
            value: Status name such as ``"shipped"`` or ``"DELIVERED"``.

        Returns:
            Matching OrderStatus.

        Raises:
            InvalidOrderStatusError: If the name is unknown.
        """
        normalized = (value or "").strip().upper()
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidOrderStatusError(value, [s.value for s in cls]) from None

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check if a forward transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _ORDER_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["OrderStatus"]:
        """Get list of valid target states in lifecycle order."""
        allowed = _ORDER_TRANSITIONS.get(self, set())
        return [s for s in OrderStatus if s in allowed]

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state."""
        return len(_ORDER_TRANSITIONS.get(self, set())) == 0

    def is_customer_cancellable(self) -> bool:
        """Check if a customer may still cancel an order in this state."""
        return self not in {OrderStatus.DELIVERED, OrderStatus.CANCELED}


_LIFECYCLE: list[OrderStatus] = [
    OrderStatus.NEW_ORDER,
    OrderStatus.PROCESSING,
    OrderStatus.PACKED,
    OrderStatus.DISPATCHED,
    OrderStatus.IN_TRANSIT,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]


def _build_forward_transitions() -> dict[OrderStatus, set[OrderStatus]]:
    transitions: dict[OrderStatus, set[OrderStatus]] = {}
    for index, status in enumerate(_LIFECYCLE):
        later = set(_LIFECYCLE[index + 1 :])
        if status is not OrderStatus.DELIVERED:
            later.add(OrderStatus.CANCELED)
        transitions[status] = later
    transitions[OrderStatus.CANCELED] = set()  # Terminal state
    return transitions


# Order state transitions
_ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = _build_forward_transitions()


# ============================================================================
# State Machine Helpers
# ============================================================================


def validate_order_transition(
    order_id: str,
    current_status: OrderStatus,
    target_status: OrderStatus,
) -> None:
    """Validate and raise if order state transition is invalid.

    Args:
        order_id: Order identifier for error message.
        current_status: Current order status.
        target_status: Target order status.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="Order",
            entity_id=order_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )

"""Tests for the order status state machine."""

import pytest

from bookstore.domain.exceptions import InvalidOrderStatusError, InvalidStateTransitionError
from bookstore.domain.state_machines import OrderStatus, validate_order_transition


class TestParse:
    """Tests for OrderStatus.parse."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("delivered", OrderStatus.DELIVERED),
            ("PROCESSING", OrderStatus.PROCESSING),
            (" out_for_delivery ", OrderStatus.OUT_FOR_DELIVERY),
            ("Canceled", OrderStatus.CANCELED),
        ],
    )
    def test_parse_is_case_insensitive(self, raw, expected):
        assert OrderStatus.parse(raw) is expected

    def test_unknown_status_lists_valid_names(self):
        with pytest.raises(InvalidOrderStatusError) as exc_info:
            OrderStatus.parse("shipped")

        error = exc_info.value
        assert error.error_code == "INVALID_STATUS"
        assert "NEW_ORDER" in error.details["valid_statuses"]
        assert "shipped" in error.message

    def test_empty_status_rejected(self):
        with pytest.raises(InvalidOrderStatusError):
            OrderStatus.parse("")


class TestTransitions:
    """Tests for the forward-only transition table."""

    def test_new_order_can_skip_ahead(self):
        assert OrderStatus.NEW_ORDER.can_transition_to(OrderStatus.DELIVERED)
        assert OrderStatus.NEW_ORDER.can_transition_to(OrderStatus.CANCELED)

    def test_no_backward_moves(self):
        assert not OrderStatus.DISPATCHED.can_transition_to(OrderStatus.PROCESSING)
        assert not OrderStatus.DELIVERED.can_transition_to(OrderStatus.CANCELED)

    def test_terminal_states(self):
        assert OrderStatus.CANCELED.is_terminal()
        assert OrderStatus.DELIVERED.is_terminal()
        assert not OrderStatus.IN_TRANSIT.is_terminal()

    def test_allowed_transitions_in_lifecycle_order(self):
        assert OrderStatus.OUT_FOR_DELIVERY.allowed_transitions() == [
            OrderStatus.DELIVERED,
            OrderStatus.CANCELED,
        ]

    def test_customer_cancellable(self):
        assert OrderStatus.NEW_ORDER.is_customer_cancellable()
        assert OrderStatus.IN_TRANSIT.is_customer_cancellable()
        assert not OrderStatus.DELIVERED.is_customer_cancellable()
        assert not OrderStatus.CANCELED.is_customer_cancellable()

    def test_validate_order_transition_raises_with_allowed(self):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_order_transition("7", OrderStatus.DELIVERED, OrderStatus.PROCESSING)

        assert exc_info.value.error_code == "INVALID_TRANSITION"
        assert exc_info.value.details["allowed_transitions"] == []

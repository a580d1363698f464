"""Domain exceptions.

All domain-level errors that represent business rule violations. The
hierarchy mirrors how the API reports them: validation and illegal-state
errors are client mistakes, not-found errors are missing resources,
conflicts are ownership or concurrency violations and external-service
errors come from the payment processor or the message broker.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    error_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# Validation Errors
# ============================================================================


class ValidationError(DomainError):
    """Raised when caller input breaks a business rule."""

    error_code = "VALIDATION_ERROR"


class InvalidQuantityError(ValidationError):
    """Raised when an invalid quantity is provided."""

    error_code = "INVALID_QUANTITY"

    def __init__(self, quantity: int, reason: str = "Quantity must be at least 1") -> None:
        super().__init__(
            f"Invalid quantity {quantity}: {reason}",
            details={"quantity": quantity, "reason": reason},
        )


class InvalidOrderStatusError(ValidationError):
    """Raised when a status name is not one of the known order states."""

    error_code = "INVALID_STATUS"

    def __init__(self, status: str, valid_statuses: list[str]) -> None:
        super().__init__(
            f"Invalid order status: {status}. Valid statuses are: [{', '.join(valid_statuses)}]",
            details={"status": status, "valid_statuses": valid_statuses},
        )


class OrderTotalMismatchError(ValidationError):
    """Raised when a submitted total does not reconcile with the order lines."""

    error_code = "TOTAL_MISMATCH"

    def __init__(self, submitted: str, expected: str) -> None:
        super().__init__(
            f"Submitted total {submitted} does not match expected total {expected}",
            details={"submitted": submitted, "expected": expected},
        )


class InvalidPromoError(ValidationError):
    """Raised when a promo code supplied at checkout fails validation."""

    error_code = "INVALID_PROMO"

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid promo: {reason}", details={"reason": reason})


# ============================================================================
# Not Found Errors
# ============================================================================


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""

    error_code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        """Initialize not found error.

        Args:
            entity_type: Type of entity (e.g., "Order", "User").
            entity_id: Identifier that was looked up.
        """
        super().__init__(
            f"{entity_type} not found with ID: {entity_id}",
            details={"entity_type": entity_type, "entity_id": str(entity_id)},
        )
        self.entity_type = entity_type
        self.error_code = f"{entity_type.upper().replace(' ', '_')}_NOT_FOUND"


# ============================================================================
# Illegal State Errors
# ============================================================================


class IllegalStateError(DomainError):
    """Raised when an operation is impossible in the current state."""

    error_code = "ILLEGAL_STATE"


class CartEmptyError(IllegalStateError):
    """Raised when trying to place an order from an empty cart."""

    error_code = "CART_EMPTY"

    def __init__(self, user_id: int) -> None:
        super().__init__(
            "Cannot place an order with an empty cart.",
            details={"user_id": user_id},
        )


class InvalidStateTransitionError(IllegalStateError):
    """Raised when an invalid state transition is attempted.

    This error indicates that the requested operation cannot be performed
    in the current state of the entity.
    """

    error_code = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "Order").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


# ============================================================================
# Conflict Errors
# ============================================================================


class ConflictError(DomainError):
    """Raised when an operation conflicts with ownership or concurrent state."""

    error_code = "CONFLICT"


class OrderNotOwnedError(ConflictError):
    """Raised when a user acts on an order that belongs to someone else."""

    error_code = "ORDER_NOT_OWNED"

    def __init__(self, order_id: int, user_id: int) -> None:
        super().__init__(
            f"Order {order_id} does not belong to user {user_id}",
            details={"order_id": order_id, "user_id": user_id},
        )


class OrderNotCancellableError(ConflictError):
    """Raised when trying to cancel an order that cannot be cancelled."""

    error_code = "ORDER_NOT_CANCELLABLE"

    def __init__(self, order_id: int, current_status: str) -> None:
        super().__init__(
            f"Order {order_id} cannot be cancelled in status '{current_status}'",
            details={"order_id": order_id, "current_status": current_status},
        )


class PromoRedemptionConflictError(ConflictError):
    """Raised when a promo code reached its usage cap before redemption."""

    error_code = "PROMO_EXHAUSTED"

    def __init__(self, code: str) -> None:
        super().__init__(
            "Promo code usage limit exceeded",
            details={"code": code},
        )


class DuplicatePromoCodeError(ConflictError):
    """Raised when a promo code string is already taken."""

    error_code = "PROMO_CODE_EXISTS"

    def __init__(self, code: str) -> None:
        super().__init__(f"Promo code already exists: {code}", details={"code": code})


class PaymentAlreadyUsedError(ConflictError):
    """Raised when a payment intent already paid for an order."""

    error_code = "PAYMENT_ALREADY_USED"

    def __init__(self, intent_id: str) -> None:
        super().__init__(
            "Payment has already been used for an order",
            details={"intent_id": intent_id},
        )


class PaymentNotOwnedError(ConflictError):
    """Raised when a payment intent was created for another user."""

    error_code = "PAYMENT_NOT_OWNED"

    def __init__(self, intent_id: str, user_id: int) -> None:
        super().__init__(
            f"Payment {intent_id} does not belong to user {user_id}",
            details={"intent_id": intent_id, "user_id": user_id},
        )


# ============================================================================
# External Service Errors
# ============================================================================


class ExternalServiceError(DomainError):
    """Raised when a collaborator outside the process fails."""

    error_code = "EXTERNAL_SERVICE_ERROR"


class PaymentProcessorError(ExternalServiceError):
    """Raised when the payment processor cannot be reached or rejects a call."""

    error_code = "PAYMENT_PROCESSOR_ERROR"


class PaymentNotCompleteError(ExternalServiceError):
    """Raised when a payment intent has not succeeded."""

    error_code = "PAYMENT_NOT_COMPLETE"

    def __init__(self, intent_id: str, status: str) -> None:
        super().__init__(
            f"Payment not successful. Status: {status}",
            details={"intent_id": intent_id, "status": status},
        )


class BrokerPublishError(ExternalServiceError):
    """Raised by broker adapters when a record cannot be appended."""

    error_code = "BROKER_PUBLISH_ERROR"


# ============================================================================
# Money Errors
# ============================================================================


class MoneyError(ValidationError):
    """Base class for money-related errors."""

    pass


class CurrencyMismatchError(MoneyError):
    """Raised when operating on money with different currencies."""

    def __init__(self, currency1: str, currency2: str) -> None:
        super().__init__(
            f"Cannot operate on different currencies: {currency1} and {currency2}",
            details={"currency1": currency1, "currency2": currency2},
        )


class NegativeMoneyError(MoneyError):
    """Raised when money amount would be negative."""

    def __init__(self, amount_pence: int) -> None:
        super().__init__(
            f"Money amount cannot be negative: {amount_pence}",
            details={"amount_pence": amount_pence},
        )

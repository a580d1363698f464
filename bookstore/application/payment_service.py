"""Payment application service.

Card checkout is two calls: ``create_intent`` charges nothing and returns
the client secret the payment form needs; once the processor reports the
intent as ``succeeded``, ``confirm_and_finalize`` places the order and
records the payment in the same transaction. Cash on delivery places the
order directly.

Processor calls have no retry here; an outage fails the request.
"""

from dataclasses import dataclass
from decimal import Decimal

import structlog

from bookstore.application.cart_service import CartService
from bookstore.application.order_service import OrderResult, OrderService, PaymentCapture
from bookstore.application.promo_service import PromoService
from bookstore.domain.entities import PromoEvaluation
from bookstore.domain.exceptions import (
    DomainError,
    InvalidPromoError,
    PaymentNotCompleteError,
    PaymentNotOwnedError,
    PaymentProcessorError,
    ValidationError,
)
from bookstore.domain.value_objects import Money
from bookstore.infrastructure.config import settings
from bookstore.infrastructure.database import SessionFactory, get_session_factory
from bookstore.infrastructure.payment_processor import (
    PaymentProcessor,
    StripePaymentProcessor,
    get_payment_processor,
)

logger = structlog.get_logger()

PAYMENT_METHOD_CARD = "CARD"
PAYMENT_METHOD_COD = "COD"


@dataclass
class PaymentIntentResult:
    """Result of creating a payment intent."""

    client_secret: str | None = None
    intent_id: str | None = None
    amount: Money | None = None
    currency: str | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def failed(cls, error: DomainError) -> "PaymentIntentResult":
        return cls(success=False, error=error.message, error_code=error.error_code)


class PaymentService:
    """Application service coupling payment confirmation to order creation."""

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        processor: PaymentProcessor | None = None,
        orders: OrderService | None = None,
        carts: CartService | None = None,
        promos: PromoService | None = None,
        request_id: str | None = None,
    ) -> None:
        self.session_factory = session_factory or get_session_factory()
        self.processor = processor or get_payment_processor()
        self.orders = orders or OrderService(session_factory=self.session_factory, request_id=request_id)
        self.carts = carts or CartService(session_factory=self.session_factory, request_id=request_id)
        self.promos = promos or PromoService(session_factory=self.session_factory, request_id=request_id)
        self.request_id = request_id

    async def create_intent(self, user_id: int) -> PaymentIntentResult:
        """Create a processor intent for the user's live cart total.

        Args:
            user_id: Paying user.

        Returns:
            PaymentIntentResult with the client secret.
        """
        try:
            if isinstance(self.processor, StripePaymentProcessor) and not settings.stripe_secret_key:
                raise PaymentProcessorError("Payment processor is not configured")

            total = await self.carts.total(user_id)
            if total.is_zero():
                raise ValidationError("Cannot create a payment for an empty or zero-total cart.")
            minimum = Money(amount_pence=settings.payment_minimum_charge_pence)
            if total < minimum:
                raise ValidationError(
                    f"Minimum charge is {minimum}",
                    details={"amount_pence": total.amount_pence},
                )

            intent = await self.processor.create_intent(
                amount_pence=total.amount_pence,
                currency=settings.payment_currency,
                metadata={"user_id": str(user_id)},
            )
        except DomainError as e:
            logger.warning(
                "Payment intent creation failed",
                user_id=user_id,
                error=e.message,
                request_id=self.request_id,
            )
            return PaymentIntentResult.failed(e)

        logger.info(
            "Payment intent created",
            user_id=user_id,
            intent_id=intent.id,
            amount_pence=intent.amount_pence,
            request_id=self.request_id,
        )
        return PaymentIntentResult(
            client_secret=intent.client_secret,
            intent_id=intent.id,
            amount=Money(amount_pence=intent.amount_pence),
            currency=intent.currency,
        )

    async def _apply_promo(self, code: str | None, user_id: int, total: Money) -> PromoEvaluation | None:
        if not code or not code.strip():
            return None
        evaluation = await self.promos.validate(code, user_id, total)
        if not evaluation.valid:
            raise InvalidPromoError(evaluation.message)
        return evaluation

    async def confirm_and_finalize(
        self,
        user_id: int,
        intent_id: str | None,
        shipping_address: str,
        total_amount: Money | Decimal | str,
        promo_code: str | None = None,
    ) -> OrderResult:
        """Place a card order once its payment intent has succeeded.

        The intent must have been created for ``user_id`` and must not
        have paid for another order yet.

        Args:
            user_id: Ordering user.
            intent_id: Processor intent id from the payment form.
            shipping_address: Shipping address.
            total_amount: Order total submitted with the request.
            promo_code: Promo code to re-validate and redeem.

        Returns:
            OrderResult with the placed order.
        """
        try:
            if not intent_id or not intent_id.strip():
                raise ValidationError("Missing paymentIntentId")

            intent = await self.processor.retrieve_intent(intent_id)
            if not intent.succeeded:
                raise PaymentNotCompleteError(intent.id, intent.status)
            if intent.metadata.get("user_id") != str(user_id):
                raise PaymentNotOwnedError(intent.id, user_id)

            total = total_amount if isinstance(total_amount, Money) else Money.from_decimal(total_amount)
            evaluation = await self._apply_promo(promo_code, user_id, total)
        except DomainError as e:
            logger.warning(
                "Card checkout rejected",
                user_id=user_id,
                intent_id=intent_id,
                error=e.message,
                request_id=self.request_id,
            )
            return OrderResult.failed(e)

        result = await self.orders.place_order(
            user_id=user_id,
            shipping_address=shipping_address,
            payment_method=PAYMENT_METHOD_CARD,
            total_amount=evaluation.discounted_total if evaluation else total,
            promo_code=evaluation.code if evaluation else None,
            promo_discount=evaluation.discount if evaluation else None,
            payment=PaymentCapture(intent_id=intent.id, amount=Money(amount_pence=intent.amount_pence)),
        )
        if result.success:
            logger.info(
                "Card checkout completed",
                user_id=user_id,
                order_id=result.order.id,
                intent_id=intent.id,
                request_id=self.request_id,
            )
        return result

    async def checkout_cash_on_delivery(
        self,
        user_id: int,
        shipping_address: str,
        promo_code: str | None = None,
    ) -> OrderResult:
        """Place a cash-on-delivery order priced from the live cart."""
        try:
            total = await self.carts.total(user_id)
            evaluation = await self._apply_promo(promo_code, user_id, total)
        except DomainError as e:
            return OrderResult.failed(e)

        return await self.orders.place_order(
            user_id=user_id,
            shipping_address=shipping_address,
            payment_method=PAYMENT_METHOD_COD,
            total_amount=evaluation.discounted_total if evaluation else total,
            promo_code=evaluation.code if evaluation else None,
            promo_discount=evaluation.discount if evaluation else None,
        )


def get_payment_service(request_id: str | None = None) -> PaymentService:
    """Get payment service instance."""
    return PaymentService(request_id=request_id)

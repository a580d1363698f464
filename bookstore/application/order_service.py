"""Order application service.

Orchestrates the order lifecycle:
- Placing an order from the user's cart (order insert, cart delete, promo
  redemption and payment record in one transaction)
- Status updates by operators and cancellation by customers
- Order queries, revenue statistics and invoices

Domain events and notifications are sent only after the transaction has
committed, and their failures never undo the business operation.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.application.event_publisher import EventPublisher, get_event_publisher
from bookstore.application.notification_service import NotificationService
from bookstore.application.promo_service import redeem_in_session
from bookstore.application.settings_service import SettingsService
from bookstore.domain.entities import Order, Payment, PaymentStatus, utcnow
from bookstore.domain.exceptions import (
    CartEmptyError,
    DomainError,
    NotFoundError,
    OrderTotalMismatchError,
    PaymentAlreadyUsedError,
)
from bookstore.domain.state_machines import OrderStatus
from bookstore.domain.value_objects import Money
from bookstore.infrastructure.config import settings
from bookstore.infrastructure.database import SessionFactory, get_session_factory, with_transaction
from bookstore.infrastructure.documents import DocumentRenderer, get_document_renderer
from bookstore.infrastructure.mailer import Attachment, Mailer, get_mailer
from bookstore.infrastructure.repositories import (
    CartRepository,
    OrderRepository,
    PaymentRepository,
    UserRepository,
)

logger = structlog.get_logger()

T = TypeVar("T")

PAGE_SIZE_MIN = 1
PAGE_SIZE_MAX = 50


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class OrderResult:
    """Result of an operation on a single order."""

    order: Order | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def failed(cls, error: DomainError) -> "OrderResult":
        return cls(success=False, error=error.message, error_code=error.error_code)


@dataclass
class OrderListResult:
    """Result of listing orders."""

    orders: list[Order] = field(default_factory=list)
    total: int = 0


@dataclass
class OrderPage:
    """Keyset page of orders, newest id first."""

    orders: list[Order] = field(default_factory=list)
    size: int = 0
    next_cursor: int | None = None


@dataclass
class RevenueStats:
    """Aggregate sales figures."""

    total_revenue: Money
    total_orders: int
    completed_orders: int
    pending_orders: int
    average_order_value: Money


@dataclass
class InvoiceResult:
    """Rendered invoice."""

    content: bytes = b""
    filename: str = ""
    media_type: str = ""
    success: bool = True
    error: str | None = None
    error_code: str | None = None


@dataclass
class PaymentCapture:
    """Confirmed processor payment to record with a new order."""

    intent_id: str
    amount: Money


def clamp_page_size(size: int | None) -> int:
    """Clamp a requested page size to 1..50 (default 10)."""
    if size is None:
        return 10
    return max(PAGE_SIZE_MIN, min(PAGE_SIZE_MAX, size))


# ============================================================================
# Order Service
# ============================================================================


class OrderService:
    """Application service for the order lifecycle."""

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        publisher: EventPublisher | None = None,
        notifications: NotificationService | None = None,
        site_settings: SettingsService | None = None,
        mailer: Mailer | None = None,
        renderer: DocumentRenderer | None = None,
        enforce_server_total: bool | None = None,
        enforce_forward_transitions: bool | None = None,
        request_id: str | None = None,
    ) -> None:
        """Initialize service.

        Args:
            session_factory: Session factory for units of work.
            publisher: Domain event publisher.
            notifications: Notification producer.
            site_settings: Configuration store (``notifications.enabled``).
            mailer: Mailer for invoice emails.
            renderer: Invoice renderer.
            enforce_server_total: Reject orders whose total does not reconcile.
            enforce_forward_transitions: Apply the transition table to admin updates.
            request_id: Request ID for correlation.
        """
        self.session_factory = session_factory or get_session_factory()
        self.publisher = publisher or get_event_publisher()
        self.notifications = notifications or NotificationService(publisher=self.publisher)
        self.site_settings = site_settings or SettingsService(session_factory=self.session_factory)
        self.mailer = mailer or get_mailer()
        self.renderer = renderer or get_document_renderer()
        self.enforce_server_total = (
            settings.enforce_server_total if enforce_server_total is None else enforce_server_total
        )
        self.enforce_forward_transitions = (
            settings.enforce_forward_transitions
            if enforce_forward_transitions is None
            else enforce_forward_transitions
        )
        self.request_id = request_id

    async def _run(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        return await with_transaction(self.session_factory, work)

    # ------------------------------------------------------------------
    # Placing orders
    # ------------------------------------------------------------------

    async def place_order(
        self,
        user_id: int,
        shipping_address: str,
        payment_method: str,
        total_amount: Money,
        promo_code: str | None = None,
        promo_discount: Money | None = None,
        payment: PaymentCapture | None = None,
    ) -> OrderResult:
        """Convert the user's cart into an order.

        The order (with its lines), the cart deletion, the promo redemption
        and the payment record are written in one transaction. The
        caller-supplied total is stored as given.

        Args:
            user_id: Ordering user.
            shipping_address: Shipping address.
            payment_method: Payment method tag (``CARD``, ``COD``...).
            total_amount: Total the customer agreed to pay.
            promo_code: Promo code to redeem with this order.
            promo_discount: Discount granted by the promo code.
            payment: Confirmed payment to record with the order.

        Returns:
            OrderResult with the persisted order.
        """

        async def work(session: AsyncSession) -> tuple[Order, str]:
            user = await UserRepository(session).get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)

            payments = PaymentRepository(session)
            if payment is not None and await payments.get_by_intent(payment.intent_id) is not None:
                raise PaymentAlreadyUsedError(payment.intent_id)

            carts = CartRepository(session)
            cart = await carts.get(user_id)
            if cart is None:
                raise CartEmptyError(user_id)

            order = Order.place(
                cart,
                total_amount=total_amount,
                shipping_address=shipping_address,
                payment_method=payment_method,
                promo_code=promo_code or None,
                promo_discount=promo_discount,
            )
            self._check_total(order)

            await OrderRepository(session).add(order)
            await carts.delete(cart.id)

            if promo_code:
                await redeem_in_session(session, promo_code)
            if payment is not None:
                await payments.add(
                    Payment(
                        id=None,
                        order_id=order.id,
                        intent_id=payment.intent_id,
                        amount=payment.amount,
                        status=PaymentStatus.SUCCEEDED,
                        paid_at=utcnow(),
                    )
                )

            order.record_created(correlation_id=self.request_id)
            return order, user.email

        try:
            order, email = await self._run(work)
        except DomainError as e:
            logger.warning(
                "Order placement failed",
                user_id=user_id,
                error=e.message,
                error_code=e.error_code,
                request_id=self.request_id,
            )
            return OrderResult.failed(e)

        logger.info(
            "Order placed",
            order_id=order.id,
            order_number=order.order_number,
            user_id=user_id,
            lines=len(order.lines),
            total=str(order.total_amount),
            payment_method=payment_method,
            request_id=self.request_id,
        )

        self._publish_events(order)
        if await self._notifications_enabled():
            await self.notifications.order_created(order, email)
            if payment is not None:
                await self.notifications.payment_succeeded(order)

        return OrderResult(order=order)

    def _check_total(self, order: Order) -> None:
        if order.reconciles():
            return
        logger.warning(
            "order_total_mismatch",
            user_id=order.user_id,
            submitted=str(order.total_amount),
            expected=str(order.expected_total),
            enforced=self.enforce_server_total,
            request_id=self.request_id,
        )
        if self.enforce_server_total:
            raise OrderTotalMismatchError(str(order.total_amount), str(order.expected_total))

    # ------------------------------------------------------------------
    # Status lifecycle
    # ------------------------------------------------------------------

    async def update_status(self, order_id: int, new_status: str | OrderStatus) -> OrderResult:
        """Move an order to a new status (operator path).

        Setting the status an order already has is a no-op that emits
        nothing. Concurrent updates of one order are last-writer-wins.

        Args:
            order_id: Order identifier.
            new_status: Target status name or value.

        Returns:
            OrderResult with the (possibly unchanged) order.
        """
        try:
            target = OrderStatus.parse(new_status)
        except DomainError as e:
            return OrderResult.failed(e)

        async def work(session: AsyncSession) -> tuple[Order, bool]:
            repo = OrderRepository(session)
            order = await repo.get(order_id)
            if order is None:
                raise NotFoundError("Order", order_id)
            changed = order.change_status(
                target,
                enforce_transitions=self.enforce_forward_transitions,
                correlation_id=self.request_id,
            )
            if changed:
                await repo.save_status(order)
            return order, changed

        try:
            order, changed = await self._run(work)
        except DomainError as e:
            return OrderResult.failed(e)

        if changed:
            await self._after_status_change(order)
        return OrderResult(order=order)

    async def cancel_own_order(self, user_id: int, order_id: int, reason: str | None = None) -> OrderResult:
        """Cancel an order on behalf of its owner.

        Raises nothing; ownership violations come back as ``ORDER_NOT_OWNED``
        and delivered or cancelled orders as ``ORDER_NOT_CANCELLABLE``.
        """

        async def work(session: AsyncSession) -> Order:
            repo = OrderRepository(session)
            order = await repo.get(order_id)
            if order is None:
                raise NotFoundError("Order", order_id)
            order.ensure_cancellable_by(user_id)
            order.change_status(OrderStatus.CANCELED, correlation_id=self.request_id)
            await repo.save_status(order)
            return order

        try:
            order = await self._run(work)
        except DomainError as e:
            return OrderResult.failed(e)

        logger.info(
            "Order cancelled by customer",
            order_id=order_id,
            user_id=user_id,
            reason=reason,
            request_id=self.request_id,
        )
        await self._after_status_change(order)
        return OrderResult(order=order)

    async def _after_status_change(self, order: Order) -> None:
        logger.info(
            "Order status updated",
            order_id=order.id,
            status=order.status.value,
            request_id=self.request_id,
        )
        self._publish_events(order)
        if await self._notifications_enabled():
            await self.notifications.status_changed(order)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_order(self, order_id: int, user_id: int | None = None) -> OrderResult:
        """Get an order; when ``user_id`` is given the caller must own it."""

        async def work(session: AsyncSession) -> Order | None:
            return await OrderRepository(session).get(order_id)

        order = await self._run(work)
        if order is None:
            return OrderResult.failed(NotFoundError("Order", order_id))
        if user_id is not None:
            try:
                order.ensure_owned_by(user_id)
            except DomainError as e:
                return OrderResult.failed(e)
        return OrderResult(order=order)

    async def get_order_history(self, user_id: int) -> OrderListResult:
        """All orders of a user, newest first."""

        async def work(session: AsyncSession) -> list[Order]:
            return await OrderRepository(session).list_for_user(user_id)

        orders = await self._run(work)
        return OrderListResult(orders=orders, total=len(orders))

    async def get_order_history_page(
        self, user_id: int, cursor: int | None = None, size: int | None = None
    ) -> OrderPage:
        """One keyset page of a user's orders.

        Args:
            user_id: Owning user.
            cursor: Last order id seen on the previous page.
            size: Page size, clamped to 1..50.

        Returns:
            OrderPage whose ``next_cursor`` is None on the last page.
        """
        page_size = clamp_page_size(size)

        async def work(session: AsyncSession) -> list[Order]:
            return await OrderRepository(session).page_for_user(user_id, cursor, page_size + 1)

        orders = await self._run(work)
        has_more = len(orders) > page_size
        orders = orders[:page_size]
        return OrderPage(
            orders=orders,
            size=page_size,
            next_cursor=orders[-1].id if has_more and orders else None,
        )

    async def list_all_orders(self) -> OrderListResult:
        async def work(session: AsyncSession) -> list[Order]:
            return await OrderRepository(session).list_all()

        orders = await self._run(work)
        return OrderListResult(orders=orders, total=len(orders))

    async def revenue_stats(self) -> RevenueStats:
        """Revenue and counts; revenue counts delivered orders only."""

        async def work(session: AsyncSession) -> dict[OrderStatus, tuple[int, int]]:
            return await OrderRepository(session).totals_by_status()

        by_status = await self._run(work)
        total_orders = sum(count for count, _ in by_status.values())
        completed, revenue_pence = by_status.get(OrderStatus.DELIVERED, (0, 0))
        canceled, _ = by_status.get(OrderStatus.CANCELED, (0, 0))

        average_pence = 0
        if completed:
            average_pence = int(
                (Decimal(revenue_pence) / completed).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
            )
        return RevenueStats(
            total_revenue=Money(amount_pence=revenue_pence),
            total_orders=total_orders,
            completed_orders=completed,
            pending_orders=total_orders - completed - canceled,
            average_order_value=Money(amount_pence=average_pence),
        )

    # ------------------------------------------------------------------
    # Deletion and invoices
    # ------------------------------------------------------------------

    async def delete_own_order(self, user_id: int, order_id: int) -> OrderResult:
        """Delete an order (with its lines) owned by ``user_id``."""

        async def work(session: AsyncSession) -> Order:
            repo = OrderRepository(session)
            order = await repo.get(order_id)
            if order is None:
                raise NotFoundError("Order", order_id)
            order.ensure_owned_by(user_id)
            await repo.delete(order_id)
            return order

        try:
            order = await self._run(work)
        except DomainError as e:
            return OrderResult.failed(e)

        logger.info("Order deleted", order_id=order_id, user_id=user_id, request_id=self.request_id)
        return OrderResult(order=order)

    async def _order_with_email(self, order_id: int) -> tuple[Order, str | None]:
        async def work(session: AsyncSession) -> tuple[Order, str | None]:
            order = await OrderRepository(session).get(order_id)
            if order is None:
                raise NotFoundError("Order", order_id)
            user = await UserRepository(session).get(order.user_id)
            return order, user.email if user else None

        return await self._run(work)

    async def render_invoice(self, user_id: int, order_id: int) -> InvoiceResult:
        """Render the invoice of an order owned by ``user_id``."""
        try:
            order, email = await self._order_with_email(order_id)
            order.ensure_owned_by(user_id)
        except DomainError as e:
            return InvoiceResult(success=False, error=e.message, error_code=e.error_code)

        return InvoiceResult(
            content=self.renderer.render_invoice(order, email),
            filename=self.renderer.filename_for(order),
            media_type=self.renderer.media_type,
        )

    async def send_invoice_email(self, order_id: int) -> InvoiceResult:
        """Mail the invoice of an order to its owner."""
        try:
            order, email = await self._order_with_email(order_id)
        except DomainError as e:
            return InvoiceResult(success=False, error=e.message, error_code=e.error_code)
        if not email:
            error = NotFoundError("User", order.user_id)
            return InvoiceResult(success=False, error=error.message, error_code=error.error_code)

        invoice = InvoiceResult(
            content=self.renderer.render_invoice(order, email),
            filename=self.renderer.filename_for(order),
            media_type=self.renderer.media_type,
        )
        sent = await self.mailer.send(
            to=email,
            subject=f"Invoice for order {order.order_number}",
            body=f"Please find attached the invoice for your order {order.order_number}.",
            attachments=[Attachment(invoice.filename, invoice.content, invoice.media_type)],
        )
        if sent.get("status") != "sent":
            logger.error("Invoice email failed", order_id=order_id, error=sent.get("error"))
            return InvoiceResult(
                success=False,
                error=sent.get("error") or "Email delivery failed",
                error_code="EMAIL_FAILED",
            )
        logger.info("Invoice emailed", order_id=order_id, to=email, request_id=self.request_id)
        return invoice

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _publish_events(self, order: Order) -> None:
        for event in order.collect_events():
            try:
                self.publisher.publish_event(event)
            except Exception as e:
                logger.error(
                    "Event publish failed",
                    order_id=order.id,
                    event_type=event.event_type,
                    error=str(e),
                )

    async def _notifications_enabled(self) -> bool:
        try:
            return await self.site_settings.notifications_enabled()
        except Exception as e:
            logger.warning("Could not read notifications flag", error=str(e))
            return True


# ============================================================================
# Service Factory
# ============================================================================


def get_order_service(request_id: str | None = None) -> OrderService:
    """Get order service instance.

    Args:
        request_id: Request ID for correlation.

    Returns:
        OrderService instance.
    """
    return OrderService(request_id=request_id)

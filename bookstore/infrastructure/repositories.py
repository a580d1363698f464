"""Repositories for database operations.

Each repository wraps one AsyncSession supplied by the caller's unit of
work; none of them commits. Aggregates are loaded with explicit eager
options so that nothing lazy-loads outside the session.
"""

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bookstore.domain.entities import Cart, Order, Payment, PromoCode
from bookstore.domain.exceptions import PaymentAlreadyUsedError
from bookstore.domain.state_machines import OrderStatus
from bookstore.infrastructure.models import (
    BookModel,
    CartLineModel,
    CartModel,
    OrderEventLogModel,
    OrderLineModel,
    OrderModel,
    OutboxEventModel,
    PaymentModel,
    PromoCodeModel,
    SiteSettingModel,
    UserModel,
)


# ============================================================================
# Users and Books
# ============================================================================


class UserRepository:
    """Read access to users."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: int) -> UserModel | None:
        return await self.session.get(UserModel, user_id)

    async def add(self, email: str, username: str, role: str = "USER") -> UserModel:
        user = UserModel(email=email, username=username, role=role)
        self.session.add(user)
        await self.session.flush()
        return user


class BookRepository:
    """Read access to catalog books."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, book_id: int) -> BookModel | None:
        return await self.session.get(BookModel, book_id)

    async def add(self, title: str, price_pence: int, author: str | None = None) -> BookModel:
        book = BookModel(title=title, price_pence=price_pence, author=author)
        self.session.add(book)
        await self.session.flush()
        return book


# ============================================================================
# Carts
# ============================================================================


class CartRepository:
    """Repository for carts and cart lines.

    Example usage:
        async def work(session):
            repo = CartRepository(session)
            cart = await repo.get_or_create(user_id=7)
            return cart.total
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self.session = session

    async def _load(self, user_id: int) -> CartModel | None:
        query = (
            select(CartModel)
            .where(CartModel.user_id == user_id)
            .options(selectinload(CartModel.lines).selectinload(CartLineModel.book))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get(self, user_id: int) -> Cart | None:
        """Get a user's cart with lines and live book prices."""
        model = await self._load(user_id)
        return model.to_entity() if model else None

    async def get_or_create(self, user_id: int) -> Cart:
        """Get a user's cart, inserting an empty one if missing."""
        model = await self._load(user_id)
        if model is None:
            self.session.add(CartModel(user_id=user_id))
            await self.session.flush()
            model = await self._load(user_id)
        return model.to_entity()

    async def get_line(self, cart_id: int, book_id: int) -> CartLineModel | None:
        result = await self.session.execute(
            select(CartLineModel).where(
                CartLineModel.cart_id == cart_id,
                CartLineModel.book_id == book_id,
            )
        )
        return result.scalar_one_or_none()

    async def add_line(self, cart_id: int, book_id: int, quantity: int) -> None:
        self.session.add(CartLineModel(cart_id=cart_id, book_id=book_id, quantity=quantity))
        await self.session.flush()

    async def increment_line_quantity(self, cart_id: int, book_id: int, quantity: int) -> bool:
        """Add to an existing line in one statement; False when there is no line."""
        result = await self.session.execute(
            update(CartLineModel)
            .where(CartLineModel.cart_id == cart_id, CartLineModel.book_id == book_id)
            .values(quantity=CartLineModel.quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def set_line_quantity(self, line: CartLineModel, quantity: int) -> None:
        line.quantity = quantity
        await self.session.flush()

    async def delete_line(self, line: CartLineModel) -> None:
        await self.session.delete(line)
        await self.session.flush()

    async def clear(self, cart_id: int) -> int:
        """Remove all lines of a cart; returns the number removed."""
        result = await self.session.execute(
            delete(CartLineModel).where(CartLineModel.cart_id == cart_id)
        )
        return result.rowcount or 0

    async def delete(self, cart_id: int) -> None:
        """Delete a cart and its lines."""
        await self.clear(cart_id)
        await self.session.execute(delete(CartModel).where(CartModel.id == cart_id))


# ============================================================================
# Orders
# ============================================================================


class OrderRepository:
    """Repository for orders and their lines."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _select(self) -> Any:
        return select(OrderModel).options(
            selectinload(OrderModel.lines).selectinload(OrderLineModel.book)
        )

    async def add(self, order: Order) -> Order:
        """Insert an order with its lines and assign the generated ids.

        Args:
            order: Unsaved order.

        Returns:
            The same order with ``id`` (and line ids) set.
        """
        model = OrderModel.from_entity(order)
        self.session.add(model)
        await self.session.flush()
        order.id = model.id
        for line, line_model in zip(order.lines, model.lines):
            line.id = line_model.id
        return order

    async def get(self, order_id: int) -> Order | None:
        """Get order by ID with lines."""
        result = await self.session.execute(
            self._select()
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def save_status(self, order: Order) -> None:
        """Persist the status of an order (last writer wins)."""
        await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order.id)
            .values(status=order.status.value, updated_at=order.updated_at)
            .execution_options(synchronize_session=False)
        )

    async def list_for_user(self, user_id: int) -> list[Order]:
        """All orders of a user, newest first."""
        result = await self.session.execute(
            self._select()
            .where(OrderModel.user_id == user_id)
            .order_by(OrderModel.ordered_at.desc(), OrderModel.id.desc())
        )
        return [m.to_entity() for m in result.scalars().all()]

    async def page_for_user(self, user_id: int, cursor: int | None, size: int) -> list[Order]:
        """Keyset page of a user's orders by id descending.

        Args:
            user_id: Owning user.
            cursor: Last seen order id (exclusive); None starts at the newest.
            size: Page size.
        """
        query = self._select().where(OrderModel.user_id == user_id)
        if cursor is not None:
            query = query.where(OrderModel.id < cursor)
        result = await self.session.execute(query.order_by(OrderModel.id.desc()).limit(size))
        return [m.to_entity() for m in result.scalars().all()]

    async def list_all(self) -> list[Order]:
        """Every order, newest first."""
        result = await self.session.execute(
            self._select().order_by(OrderModel.ordered_at.desc(), OrderModel.id.desc())
        )
        return [m.to_entity() for m in result.scalars().all()]

    async def totals_by_status(self) -> dict[OrderStatus, tuple[int, int]]:
        """Order count and summed total pence per status."""
        result = await self.session.execute(
            select(
                OrderModel.status,
                func.count(OrderModel.id),
                func.coalesce(func.sum(OrderModel.total_pence), 0),
            ).group_by(OrderModel.status)
        )
        return {OrderStatus(status): (int(n), int(total)) for status, n, total in result.all()}

    async def delete(self, order_id: int) -> None:
        """Delete an order together with its lines and payments."""
        await self.session.execute(delete(PaymentModel).where(PaymentModel.order_id == order_id))
        await self.session.execute(delete(OrderLineModel).where(OrderLineModel.order_id == order_id))
        await self.session.execute(delete(OrderModel).where(OrderModel.id == order_id))


# ============================================================================
# Payments
# ============================================================================


class PaymentRepository:
    """Repository for payment side-records."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, payment: Payment) -> Payment:
        model = PaymentModel(
            order_id=payment.order_id,
            intent_id=payment.intent_id,
            amount_pence=payment.amount.amount_pence,
            paid_at=payment.paid_at,
            status=payment.status.value,
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise PaymentAlreadyUsedError(payment.intent_id) from e
        payment.id = model.id
        return payment

    async def get_by_intent(self, intent_id: str) -> Payment | None:
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.intent_id == intent_id)
        )
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None


# ============================================================================
# Promo Codes
# ============================================================================


class PromoCodeRepository:
    """Repository for promo codes."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, promo_id: int) -> PromoCode | None:
        model = await self.session.get(PromoCodeModel, promo_id, populate_existing=True)
        return model.to_entity() if model else None

    async def get_by_code(self, code: str) -> PromoCode | None:
        """Look up by already-normalized code."""
        result = await self.session.execute(
            select(PromoCodeModel)
            .where(PromoCodeModel.code == code)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def code_exists(self, code: str, exclude_id: int | None = None) -> bool:
        query = select(func.count(PromoCodeModel.id)).where(PromoCodeModel.code == code)
        if exclude_id is not None:
            query = query.where(PromoCodeModel.id != exclude_id)
        return (await self.session.scalar(query) or 0) > 0

    async def list_all(self) -> list[PromoCode]:
        result = await self.session.execute(select(PromoCodeModel).order_by(PromoCodeModel.id))
        return [m.to_entity() for m in result.scalars().all()]

    async def add(self, promo: PromoCode) -> PromoCode:
        model = PromoCodeModel()
        model.apply(promo)
        self.session.add(model)
        await self.session.flush()
        promo.id = model.id
        return promo

    async def update(self, promo: PromoCode) -> PromoCode | None:
        model = await self.session.get(PromoCodeModel, promo.id)
        if model is None:
            return None
        model.apply(promo)
        await self.session.flush()
        return promo

    async def delete(self, promo_id: int) -> bool:
        result = await self.session.execute(
            delete(PromoCodeModel).where(PromoCodeModel.id == promo_id)
        )
        return (result.rowcount or 0) > 0

    async def try_increment_usage(self, code: str) -> bool:
        """Atomically count one redemption if the cap is not reached.

        Runs ``UPDATE ... SET current_uses = current_uses + 1 WHERE code = :code
        AND current_uses < max_uses``; concurrent redemptions serialize on the
        row and at most ``max_uses`` of them succeed.

        Returns:
            True if a use was counted, False if the code is missing or exhausted.
        """
        result = await self.session.execute(
            update(PromoCodeModel)
            .where(
                PromoCodeModel.code == code,
                PromoCodeModel.current_uses < PromoCodeModel.max_uses,
            )
            .values(current_uses=PromoCodeModel.current_uses + 1)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1


# ============================================================================
# Site Settings
# ============================================================================


class SiteSettingRepository:
    """Key/value rows of the configuration store."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def all(self) -> dict[str, str]:
        result = await self.session.execute(select(SiteSettingModel).order_by(SiteSettingModel.key))
        return {row.key: row.value for row in result.scalars().all()}

    async def get(self, key: str) -> str | None:
        row = await self.session.get(SiteSettingModel, key)
        return row.value if row else None

    async def put(self, key: str, value: str) -> None:
        row = await self.session.get(SiteSettingModel, key)
        if row is None:
            self.session.add(SiteSettingModel(key=key, value=value))
        else:
            row.value = value
        await self.session.flush()

    async def delete(self, key: str) -> bool:
        result = await self.session.execute(delete(SiteSettingModel).where(SiteSettingModel.key == key))
        return (result.rowcount or 0) > 0

    async def delete_all(self) -> None:
        await self.session.execute(delete(SiteSettingModel))


# ============================================================================
# Outbox
# ============================================================================


class OutboxRepository:
    """Broker records waiting for relay."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, topic: str, key: str | None, payload: dict[str, Any], error: str | None) -> OutboxEventModel:
        row = OutboxEventModel(
            topic=topic,
            key=key,
            payload=payload,
            status="pending",
            attempts=0,
            last_error=error,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def pending(self, limit: int = 100) -> Sequence[OutboxEventModel]:
        result = await self.session.execute(
            select(OutboxEventModel)
            .where(OutboxEventModel.status == "pending")
            .order_by(OutboxEventModel.id)
            .limit(limit)
        )
        return result.scalars().all()

    async def has_pending(self, topic: str, key: str) -> bool:
        """Whether a lane still has rows waiting for relay."""
        result = await self.session.execute(
            select(OutboxEventModel.id)
            .where(
                OutboxEventModel.status == "pending",
                OutboxEventModel.topic == topic,
                OutboxEventModel.key == key,
            )
            .limit(1)
        )
        return result.first() is not None

    async def list_by_status(self, status: str) -> Sequence[OutboxEventModel]:
        result = await self.session.execute(
            select(OutboxEventModel)
            .where(OutboxEventModel.status == status)
            .order_by(OutboxEventModel.id)
        )
        return result.scalars().all()


# ============================================================================
# Order Event Log
# ============================================================================


class OrderEventLogRepository:
    """Audit log of consumed order events."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add_if_absent(
        self,
        event_id: str,
        event_type: str,
        aggregate_id: str,
        payload: dict[str, Any],
        occurred_at: datetime,
    ) -> bool:
        """Store an event once; redelivered events are ignored.

        Returns:
            True if the event was new.
        """
        if await self.session.get(OrderEventLogModel, event_id) is not None:
            return False
        self.session.add(
            OrderEventLogModel(
                event_id=event_id,
                event_type=event_type,
                aggregate_id=aggregate_id,
                payload=payload,
                occurred_at=occurred_at,
                received_at=datetime.now(timezone.utc),
            )
        )
        await self.session.flush()
        return True

    async def list_for_aggregate(self, aggregate_id: str) -> Sequence[OrderEventLogModel]:
        result = await self.session.execute(
            select(OrderEventLogModel)
            .where(OrderEventLogModel.aggregate_id == aggregate_id)
            .order_by(OrderEventLogModel.occurred_at)
        )
        return result.scalars().all()

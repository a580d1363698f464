"""Cart application service.

Owns the per-user shopping cart. Carts are created lazily on first
access; adding a book that is already in the cart accumulates its
quantity instead of creating a second line.
"""

from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.domain.entities import Cart, validate_quantity
from bookstore.domain.exceptions import DomainError, NotFoundError
from bookstore.domain.value_objects import Money
from bookstore.infrastructure.database import SessionFactory, get_session_factory, with_transaction
from bookstore.infrastructure.repositories import BookRepository, CartRepository, UserRepository

logger = structlog.get_logger()


@dataclass
class CartResult:
    """Result of a cart operation."""

    cart: Cart | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def failed(cls, error: DomainError) -> "CartResult":
        return cls(success=False, error=error.message, error_code=error.error_code)


async def _require_user(session: AsyncSession, user_id: int) -> None:
    if await UserRepository(session).get(user_id) is None:
        raise NotFoundError("User", user_id)


class CartService:
    """Application service for shopping carts."""

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        request_id: str | None = None,
    ) -> None:
        """Initialize service.

        Args:
            session_factory: Session factory for units of work.
            request_id: Request ID for correlation.
        """
        self.session_factory = session_factory or get_session_factory()
        self.request_id = request_id

    async def get_or_create(self, user_id: int) -> CartResult:
        """Return the user's cart, creating an empty one if needed."""

        async def work(session: AsyncSession) -> Cart:
            await _require_user(session, user_id)
            return await CartRepository(session).get_or_create(user_id)

        try:
            return CartResult(cart=await with_transaction(self.session_factory, work))
        except DomainError as e:
            return CartResult.failed(e)

    async def add_item(self, user_id: int, book_id: int, quantity: int = 1) -> CartResult:
        """Add a book to the cart, accumulating quantity for an existing line.

        Args:
            user_id: Cart owner.
            book_id: Book to add.
            quantity: Copies to add; must be at least 1.

        Returns:
            CartResult with the updated cart.
        """

        async def work(session: AsyncSession) -> Cart:
            await _require_user(session, user_id)
            if await BookRepository(session).get(book_id) is None:
                raise NotFoundError("Book", book_id)

            repo = CartRepository(session)
            cart = await repo.get_or_create(user_id)
            if not await repo.increment_line_quantity(cart.id, book_id, quantity):
                await repo.add_line(cart.id, book_id, quantity)
            return await repo.get_or_create(user_id)

        try:
            validate_quantity(quantity)
            cart = await with_transaction(self.session_factory, work)
        except DomainError as e:
            return CartResult.failed(e)

        logger.info(
            "Cart item added",
            user_id=user_id,
            book_id=book_id,
            quantity=quantity,
            request_id=self.request_id,
        )
        return CartResult(cart=cart)

    async def set_item_quantity(self, user_id: int, book_id: int, quantity: int) -> CartResult:
        """Overwrite a line's quantity; zero or less removes the line."""

        async def work(session: AsyncSession) -> Cart:
            await _require_user(session, user_id)
            repo = CartRepository(session)
            cart = await repo.get_or_create(user_id)
            line = await repo.get_line(cart.id, book_id)
            if line is None:
                raise NotFoundError("Cart item", book_id)
            if quantity <= 0:
                await repo.delete_line(line)
            else:
                await repo.set_line_quantity(line, quantity)
            return await repo.get_or_create(user_id)

        try:
            cart = await with_transaction(self.session_factory, work)
        except DomainError as e:
            return CartResult.failed(e)

        logger.info(
            "Cart item quantity set",
            user_id=user_id,
            book_id=book_id,
            quantity=quantity,
            request_id=self.request_id,
        )
        return CartResult(cart=cart)

    async def remove_item(self, user_id: int, book_id: int) -> CartResult:
        """Remove one book from the cart."""

        async def work(session: AsyncSession) -> Cart:
            await _require_user(session, user_id)
            repo = CartRepository(session)
            cart = await repo.get_or_create(user_id)
            line = await repo.get_line(cart.id, book_id)
            if line is None:
                raise NotFoundError("Cart item", book_id)
            await repo.delete_line(line)
            return await repo.get_or_create(user_id)

        try:
            return CartResult(cart=await with_transaction(self.session_factory, work))
        except DomainError as e:
            return CartResult.failed(e)

    async def clear(self, user_id: int) -> CartResult:
        """Remove every line from the cart."""

        async def work(session: AsyncSession) -> Cart:
            await _require_user(session, user_id)
            repo = CartRepository(session)
            cart = await repo.get_or_create(user_id)
            removed = await repo.clear(cart.id)
            logger.info("Cart cleared", user_id=user_id, removed=removed, request_id=self.request_id)
            return await repo.get_or_create(user_id)

        try:
            return CartResult(cart=await with_transaction(self.session_factory, work))
        except DomainError as e:
            return CartResult.failed(e)

    async def total(self, user_id: int) -> Money:
        """Live total of the cart; zero when there is no cart."""

        async def work(session: AsyncSession) -> Money:
            cart = await CartRepository(session).get(user_id)
            return cart.total if cart else Money.zero()

        return await with_transaction(self.session_factory, work)


def get_cart_service(request_id: str | None = None) -> CartService:
    """Get cart service instance."""
    return CartService(request_id=request_id)

"""Tests for CartService."""

import pytest

from bookstore.domain.value_objects import Money
from bookstore.infrastructure.database import with_transaction
from bookstore.infrastructure.repositories import CartRepository


class TestGetOrCreate:
    """Tests for lazy cart creation."""

    async def test_creates_empty_cart_once(self, cart_service, catalog):
        first = await cart_service.get_or_create(catalog.alice_id)
        second = await cart_service.get_or_create(catalog.alice_id)

        assert first.success
        assert first.cart.is_empty
        assert first.cart.id == second.cart.id

    async def test_unknown_user(self, cart_service, catalog):
        result = await cart_service.get_or_create(9999)

        assert not result.success
        assert result.error_code == "USER_NOT_FOUND"


class TestAddItem:
    """Tests for adding books to the cart."""

    async def test_add_accumulates_quantity(self, cart_service, catalog):
        await cart_service.add_item(catalog.alice_id, catalog.book_a, 1)
        result = await cart_service.add_item(catalog.alice_id, catalog.book_a, 2)

        assert result.success
        assert len(result.cart.lines) == 1
        assert result.cart.lines[0].quantity == 3
        assert result.cart.total == Money(3000)

    async def test_lines_carry_live_price_and_title(self, cart_service, catalog):
        result = await cart_service.add_item(catalog.alice_id, catalog.book_b, 1)

        line = result.cart.line_for(catalog.book_b)
        assert line.unit_price == Money(500)
        assert line.title == "Emma"

    async def test_zero_quantity_rejected(self, cart_service, catalog):
        result = await cart_service.add_item(catalog.alice_id, catalog.book_a, 0)

        assert not result.success
        assert result.error_code == "INVALID_QUANTITY"
        assert (await cart_service.total(catalog.alice_id)).is_zero()

    async def test_unknown_book(self, cart_service, catalog):
        result = await cart_service.add_item(catalog.alice_id, 9999, 1)

        assert not result.success
        assert result.error_code == "BOOK_NOT_FOUND"

    async def test_unknown_user(self, cart_service, catalog):
        result = await cart_service.add_item(9999, catalog.book_a, 1)

        assert result.error_code == "USER_NOT_FOUND"


class TestChangeItems:
    """Tests for quantity updates, removal and clearing."""

    async def test_set_quantity_overwrites(self, cart_service, catalog, fill_cart):
        await fill_cart()

        result = await cart_service.set_item_quantity(catalog.alice_id, catalog.book_a, 5)

        assert result.cart.line_for(catalog.book_a).quantity == 5

    async def test_set_quantity_zero_removes_line(self, cart_service, catalog, fill_cart):
        await fill_cart()

        result = await cart_service.set_item_quantity(catalog.alice_id, catalog.book_a, 0)

        assert result.cart.line_for(catalog.book_a) is None
        assert result.cart.total == Money(500)

    async def test_set_quantity_for_missing_line(self, cart_service, catalog):
        result = await cart_service.set_item_quantity(catalog.alice_id, catalog.book_a, 2)

        assert result.error_code == "CART_ITEM_NOT_FOUND"

    async def test_remove_item(self, cart_service, catalog, fill_cart):
        await fill_cart()

        result = await cart_service.remove_item(catalog.alice_id, catalog.book_b)

        assert [line.book_id for line in result.cart.lines] == [catalog.book_a]

    async def test_clear(self, cart_service, catalog, fill_cart):
        await fill_cart()

        result = await cart_service.clear(catalog.alice_id)

        assert result.success
        assert result.cart.is_empty


class TestTotal:
    """Tests for the live cart total."""

    async def test_total_of_filled_cart(self, cart_service, catalog, fill_cart):
        await fill_cart()

        assert await cart_service.total(catalog.alice_id) == Money.from_decimal("25.00")

    async def test_total_without_cart_is_zero(self, cart_service, catalog):
        assert await cart_service.total(catalog.bob_id) == Money.zero()


class TestUnknownUser:
    """Every cart mutation checks the user first."""

    @pytest.mark.parametrize(
        "change",
        [
            lambda service, book_id: service.set_item_quantity(9999, book_id, 2),
            lambda service, book_id: service.remove_item(9999, book_id),
            lambda service, book_id: service.clear(9999),
        ],
        ids=["set_quantity", "remove", "clear"],
    )
    async def test_mutation_for_unknown_user(self, cart_service, catalog, change):
        result = await change(cart_service, catalog.book_a)

        assert result.error_code == "USER_NOT_FOUND"


class TestLineIncrement:
    """Tests for the single-statement quantity increment."""

    async def test_increment_existing_and_missing_line(self, database, catalog):
        async def work(session):
            repo = CartRepository(session)
            cart = await repo.get_or_create(catalog.alice_id)
            missing = await repo.increment_line_quantity(cart.id, catalog.book_a, 1)
            await repo.add_line(cart.id, catalog.book_a, 1)
            await repo.increment_line_quantity(cart.id, catalog.book_a, 2)
            await repo.increment_line_quantity(cart.id, catalog.book_a, 3)
            return missing, await repo.get(catalog.alice_id)

        missing, cart = await with_transaction(database.session_factory, work)

        assert missing is False
        assert cart.line_for(catalog.book_a).quantity == 6

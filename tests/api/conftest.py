"""API test fixtures.

Clients are used as context managers so that the application lifespan
runs and every request shares one event loop.
"""

from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient

from bookstore.infrastructure.config import settings
from bookstore.main import app

Headers = dict[str, str]


@pytest.fixture
def client(database) -> Generator[TestClient, None, None]:
    """Test client without the API key."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_client(database) -> Generator[TestClient, None, None]:
    """Test client sending a valid API key."""
    with TestClient(app, headers={"Authorization": f"Bearer {settings.bookstore_api_key}"}) as test_client:
        yield test_client


@pytest.fixture
def user_headers() -> Callable[..., Headers]:
    """Build the gateway identity headers for a user."""

    def build(user_id: int, *roles: str) -> Headers:
        headers = {"X-User-Id": str(user_id)}
        if roles:
            headers["X-User-Roles"] = ",".join(roles)
        return headers

    return build


@pytest.fixture
def alice(catalog, user_headers) -> Headers:
    return user_headers(catalog.alice_id, "USER")


@pytest.fixture
def bob(catalog, user_headers) -> Headers:
    return user_headers(catalog.bob_id, "USER")


@pytest.fixture
def admin(catalog, user_headers) -> Headers:
    return user_headers(catalog.admin_id, "ROLE_ADMIN")


@pytest.fixture
def fill_cart(auth_client, catalog) -> Callable[[Headers], None]:
    """Put two copies of book A (£10.00) and one of book B (£5.00) in a cart."""

    def fill(headers: Headers) -> None:
        for book_id, quantity in ((catalog.book_a, 2), (catalog.book_b, 1)):
            response = auth_client.post(
                "/api/cart/add", json={"bookId": book_id, "quantity": quantity}, headers=headers
            )
            assert response.status_code == 200

    return fill


@pytest.fixture
def place_order(auth_client, fill_cart) -> Callable[[Headers], dict]:
    """Fill the cart and place a £25.00 order; returns the order body."""

    def place(headers: Headers) -> dict:
        fill_cart(headers)
        response = auth_client.post(
            "/api/orders",
            json={"shippingAddress": "4 Privet Drive", "paymentMethod": "COD", "totalAmount": "25.00"},
            headers=headers,
        )
        assert response.status_code == 201
        return response.json()

    return place

"""Fixtures wiring application services to the test database."""

import json
from collections.abc import Awaitable, Callable

import pytest

from bookstore.application.cart_service import CartService
from bookstore.application.event_publisher import EventPublisher
from bookstore.application.notification_service import NotificationService
from bookstore.application.order_service import OrderService
from bookstore.application.payment_service import PaymentService
from bookstore.application.promo_service import PromoService
from bookstore.application.settings_service import SettingsService
from bookstore.infrastructure.broker import InMemoryBroker, get_broker
from bookstore.infrastructure.database import Database
from bookstore.infrastructure.mailer import FakeMailer
from bookstore.infrastructure.payment_processor import FakePaymentProcessor
from bookstore.infrastructure.push import PushHub, get_push_hub


@pytest.fixture
def broker() -> InMemoryBroker:
    return get_broker()


@pytest.fixture
def push_hub() -> PushHub:
    return get_push_hub()


@pytest.fixture
def publisher(database: Database, broker: InMemoryBroker) -> EventPublisher:
    return EventPublisher(
        broker=broker,
        session_factory=database.session_factory,
        retries=1,
        retry_backoff_seconds=0,
    )


@pytest.fixture
def notifications(publisher: EventPublisher, push_hub: PushHub, mailer: FakeMailer) -> NotificationService:
    return NotificationService(publisher=publisher, push_hub=push_hub, mailer=mailer, broker_enabled=True)


@pytest.fixture
def site_settings(database: Database) -> SettingsService:
    return SettingsService(session_factory=database.session_factory)


@pytest.fixture
def cart_service(database: Database) -> CartService:
    return CartService(session_factory=database.session_factory)


@pytest.fixture
def promo_service(database: Database) -> PromoService:
    return PromoService(session_factory=database.session_factory)


@pytest.fixture
def order_service(
    database: Database,
    publisher: EventPublisher,
    notifications: NotificationService,
    site_settings: SettingsService,
    mailer: FakeMailer,
) -> OrderService:
    return OrderService(
        session_factory=database.session_factory,
        publisher=publisher,
        notifications=notifications,
        site_settings=site_settings,
        mailer=mailer,
        enforce_server_total=False,
        enforce_forward_transitions=False,
    )


@pytest.fixture
def payment_service(
    database: Database,
    processor: FakePaymentProcessor,
    order_service: OrderService,
    cart_service: CartService,
    promo_service: PromoService,
) -> PaymentService:
    return PaymentService(
        session_factory=database.session_factory,
        processor=processor,
        orders=order_service,
        carts=cart_service,
        promos=promo_service,
    )


@pytest.fixture
def fill_cart(cart_service: CartService, catalog) -> Callable[..., Awaitable[None]]:
    """Put two copies of book A (£10.00) and one of book B (£5.00) in a cart."""

    async def fill(user_id: int | None = None) -> None:
        owner = user_id or catalog.alice_id
        await cart_service.add_item(owner, catalog.book_a, 2)
        await cart_service.add_item(owner, catalog.book_b, 1)

    return fill


@pytest.fixture
def topic_values(broker: InMemoryBroker) -> Callable[[str], list[dict]]:
    """Decoded values of every record in a topic."""

    def read(topic: str) -> list[dict]:
        return [json.loads(record.value) for record in broker.records(topic)]

    return read

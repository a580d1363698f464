"""Shared fixtures for all tests.

Every test gets fresh broker, push hub, publisher, mailer and payment
processor singletons. Tests that touch persistence request ``database``,
which points the application at a new SQLite file.
"""

from collections.abc import AsyncGenerator, Generator
from dataclasses import dataclass

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.application.event_publisher import reset_event_publisher
from bookstore.infrastructure.broker import reset_broker
from bookstore.infrastructure.config import settings
from bookstore.infrastructure.database import Database, configure_database, with_transaction
from bookstore.infrastructure.mailer import FakeMailer, set_mailer
from bookstore.infrastructure.payment_processor import FakePaymentProcessor, set_payment_processor
from bookstore.infrastructure.push import reset_push_hub
from bookstore.infrastructure.repositories import BookRepository, UserRepository


@dataclass(frozen=True)
class Catalog:
    """Ids of the seeded users and books."""

    alice_id: int
    bob_id: int
    admin_id: int
    book_a: int  # £10.00
    book_b: int  # £5.00


@pytest.fixture(autouse=True)
def isolated_runtime(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Reset process-wide singletons and keep background workers off."""
    monkeypatch.setattr(settings, "broker_backend", "memory")
    monkeypatch.setattr(settings, "consumers_autostart", False)
    monkeypatch.setattr(settings, "database_create_schema", False)
    monkeypatch.setattr(settings, "consumer_backoff_seconds", 0.0)
    reset_broker()
    reset_push_hub()
    reset_event_publisher()
    yield
    reset_event_publisher()
    reset_broker()


@pytest.fixture(autouse=True)
def mailer() -> Generator[FakeMailer, None, None]:
    """Fake mailer installed as the application mailer."""
    fake = FakeMailer()
    set_mailer(fake)
    yield fake
    set_mailer(None)


@pytest.fixture(autouse=True)
def processor() -> Generator[FakePaymentProcessor, None, None]:
    """Fake payment processor installed as the application processor."""
    fake = FakePaymentProcessor()
    set_payment_processor(fake)
    yield fake
    set_payment_processor(None)


@pytest.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """Fresh SQLite database with all tables."""
    db = configure_database(f"sqlite+aiosqlite:///{tmp_path / 'bookstore.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
async def catalog(database: Database) -> Catalog:
    """Two customers, one admin and two books."""

    async def work(session: AsyncSession) -> Catalog:
        users = UserRepository(session)
        books = BookRepository(session)
        alice = await users.add("alice@example.com", "alice")
        bob = await users.add("bob@example.com", "bob")
        admin = await users.add("admin@example.com", "admin", role="ADMIN")
        dune = await books.add("Dune", 1000, author="Frank Herbert")
        emma = await books.add("Emma", 500, author="Jane Austen")
        return Catalog(
            alice_id=alice.id,
            bob_id=bob.id,
            admin_id=admin.id,
            book_a=dune.id,
            book_b=emma.id,
        )

    return await with_transaction(database.session_factory, work)

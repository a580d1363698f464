#!/usr/bin/env python3
"""Seed a development bookstore.

Creates demo users, a shelf of books and a couple of promo codes so the
API can be exercised end to end.

Usage:
    python scripts/seed_bookstore.py
    python scripts/seed_bookstore.py --database-url sqlite+aiosqlite:///./bookstore.db
    python scripts/seed_bookstore.py --no-promos
"""

import argparse
import asyncio
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.domain.entities import DiscountType, PromoCode
from bookstore.domain.value_objects import Money
from bookstore.infrastructure.config import settings
from bookstore.infrastructure.database import configure_database, with_transaction
from bookstore.infrastructure.repositories import BookRepository, PromoCodeRepository, UserRepository

USERS = [
    ("admin@dreambooks.example", "admin", "ADMIN"),
    ("reader@dreambooks.example", "reader", "USER"),
]

# (title, author, price in pence)
BOOKS = [
    ("Dune", "Frank Herbert", 999),
    ("Emma", "Jane Austen", 599),
    ("Middlemarch", "George Eliot", 899),
    ("The Left Hand of Darkness", "Ursula K. Le Guin", 1099),
    ("Beloved", "Toni Morrison", 949),
    ("The Remains of the Day", "Kazuo Ishiguro", 850),
]

PROMOS = [
    PromoCode(
        id=None,
        code="WELCOME10",
        description="10% off your first order",
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
    ),
    PromoCode(
        id=None,
        code="FIVEOFF",
        description="£5 off orders over £30",
        discount_type=DiscountType.FIXED_AMOUNT,
        discount_value=Decimal("5.00"),
        minimum_order_amount=Money.from_decimal(Decimal("30.00")),
        max_uses=100,
    ),
]


async def seed(session: AsyncSession, with_promos: bool) -> dict:
    users = UserRepository(session)
    books = BookRepository(session)
    promos = PromoCodeRepository(session)

    for email, username, role in USERS:
        await users.add(email, username, role=role)
    for title, author, price_pence in BOOKS:
        await books.add(title, price_pence, author=author)

    promos_created = 0
    if with_promos:
        for promo in PROMOS:
            if not await promos.code_exists(promo.code):
                await promos.add(promo)
                promos_created += 1

    return {"users": len(USERS), "books": len(BOOKS), "promos": promos_created}


async def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seed a development bookstore")
    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="Database URL (default: DATABASE_URL from the environment)",
    )
    parser.add_argument(
        "--no-promos",
        action="store_true",
        help="Don't create the demo promo codes",
    )
    args = parser.parse_args()

    print("=" * 60)
    print("Bookstore Seeder")
    print("=" * 60)
    print(f"Database: {args.database_url}")
    print()

    database = configure_database(args.database_url)
    try:
        print("Creating database tables...")
        await database.create_all()
        print("Tables ready.")
        print()

        result = await with_transaction(
            database.session_factory,
            lambda session: seed(session, with_promos=not args.no_promos),
        )
        print(f"  ✓ Users: {result['users']}")
        print(f"  ✓ Books: {result['books']}")
        print(f"  ✓ Promo codes: {result['promos']}")
        print()
    finally:
        await database.dispose()

    print("=" * 60)
    print("Seeding complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())

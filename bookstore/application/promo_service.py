"""Promo code application service.

Validation is a pure read and never raises: every failure comes back as
an invalid ``PromoEvaluation`` with a reason. Redemption increments the
usage counter with a single conditional UPDATE so that concurrent
checkouts can never push a code past ``max_uses``.
"""

import dataclasses
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.domain.entities import PromoCode, PromoEvaluation, normalize_code, utcnow
from bookstore.domain.exceptions import (
    DomainError,
    DuplicatePromoCodeError,
    NotFoundError,
    PromoRedemptionConflictError,
)
from bookstore.domain.value_objects import Money
from bookstore.infrastructure.database import SessionFactory, get_session_factory, with_transaction
from bookstore.infrastructure.repositories import PromoCodeRepository

logger = structlog.get_logger()

GENERATE_MAX_ATTEMPTS = 10


@dataclass
class PromoResult:
    """Result of an admin promo operation."""

    promo: PromoCode | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def failed(cls, error: DomainError) -> "PromoResult":
        return cls(success=False, error=error.message, error_code=error.error_code)


@dataclass
class PromoListResult:
    """Result of listing promo codes."""

    promos: list[PromoCode] = field(default_factory=list)
    total: int = 0


def _to_decimal(value: Any) -> Decimal | None:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def generate_code(prefix: str | None) -> str:
    """Build a candidate code such as ``SUMMER_4821``."""
    base = normalize_code(prefix) or "PROMO"
    return f"{base}_{int(time.time() * 1000) % 10000}"


async def redeem_in_session(session: AsyncSession, code: str | None) -> bool:
    """Count one redemption of ``code`` inside the caller's transaction.

    Args:
        session: Session of the enclosing unit of work.
        code: Promo code; an empty code is a no-op.

    Returns:
        True if a use was counted, False for an empty code.

    Raises:
        PromoRedemptionConflictError: If the code is missing or exhausted.
    """
    normalized = normalize_code(code)
    if not normalized:
        logger.debug("Empty promo code, nothing to redeem")
        return False
    if not await PromoCodeRepository(session).try_increment_usage(normalized):
        raise PromoRedemptionConflictError(normalized)
    logger.info("Promo code redeemed", code=normalized)
    return True


class PromoService:
    """Application service for promo codes."""

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        request_id: str | None = None,
    ) -> None:
        self.session_factory = session_factory or get_session_factory()
        self.request_id = request_id

    # ------------------------------------------------------------------
    # Validation and redemption
    # ------------------------------------------------------------------

    async def validate(
        self,
        code: str | None,
        user_id: int | None,
        cart_total: Money | Decimal | str | float,
    ) -> PromoEvaluation:
        """Validate a code against a cart total.

        Args:
            code: Code as typed by the user.
            user_id: Requesting user (logged only).
            cart_total: Cart total as Money or as an amount in pounds.

        Returns:
            PromoEvaluation; invalid results carry the most specific reason.
        """
        normalized = normalize_code(code)
        if isinstance(cart_total, Money):
            total = cart_total
        else:
            amount = _to_decimal(cart_total)
            total = Money.from_decimal(amount) if amount is not None and amount > 0 else Money.zero()

        if not normalized:
            return PromoEvaluation.rejected("Promo code is required", total)
        if total.is_zero():
            return PromoEvaluation.rejected("Cart total must be greater than zero", total, normalized)

        async def work(session: AsyncSession) -> PromoCode | None:
            return await PromoCodeRepository(session).get_by_code(normalized)

        promo = await with_transaction(self.session_factory, work)
        if promo is None:
            evaluation = PromoEvaluation.rejected("Invalid promo code", total, normalized)
        else:
            evaluation = promo.evaluate(total, utcnow())

        logger.info(
            "Promo code validated",
            code=normalized,
            user_id=user_id,
            valid=evaluation.valid,
            reason=None if evaluation.valid else evaluation.message,
            request_id=self.request_id,
        )
        return evaluation

    async def redeem(self, code: str, user_id: int | None = None, order_id: int | None = None) -> bool:
        """Redeem a code in its own transaction.

        Raises:
            PromoRedemptionConflictError: If the code is missing or exhausted.
        """

        async def work(session: AsyncSession) -> bool:
            return await redeem_in_session(session, code)

        redeemed = await with_transaction(self.session_factory, work)
        if redeemed:
            logger.info("Promo redemption recorded", code=normalize_code(code), user_id=user_id, order_id=order_id)
        return redeemed

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def generate(self, prefix: str | None = None, **fields: Any) -> PromoResult:
        """Create a promo with a generated ``<PREFIX>_<nnnn>`` code.

        Args:
            prefix: Code prefix, ``PROMO`` when empty.
            **fields: Other PromoCode fields.
        """

        async def work(session: AsyncSession) -> PromoCode:
            repo = PromoCodeRepository(session)
            for _ in range(GENERATE_MAX_ATTEMPTS):
                code = generate_code(prefix)
                if not await repo.code_exists(code):
                    return await repo.add(PromoCode(id=None, code=code, **fields))
            raise DuplicatePromoCodeError(code)

        try:
            promo = await with_transaction(self.session_factory, work)
        except DomainError as e:
            return PromoResult.failed(e)

        logger.info("Promo code generated", code=promo.code, promo_id=promo.id, request_id=self.request_id)
        return PromoResult(promo=promo)

    async def create(self, promo: PromoCode) -> PromoResult:
        """Create a promo with an explicit code."""

        async def work(session: AsyncSession) -> PromoCode:
            repo = PromoCodeRepository(session)
            if await repo.code_exists(promo.code):
                raise DuplicatePromoCodeError(promo.code)
            return await repo.add(promo)

        try:
            created = await with_transaction(self.session_factory, work)
        except DomainError as e:
            return PromoResult.failed(e)

        logger.info("Promo code created", code=created.code, promo_id=created.id, request_id=self.request_id)
        return PromoResult(promo=created)

    async def update(self, promo_id: int, changes: dict[str, Any]) -> PromoResult:
        """Apply field changes to an existing promo."""

        async def work(session: AsyncSession) -> PromoCode:
            repo = PromoCodeRepository(session)
            existing = await repo.get(promo_id)
            if existing is None:
                raise NotFoundError("Promo code", promo_id)
            updated = dataclasses.replace(existing, **changes)
            if updated.code != existing.code and await repo.code_exists(updated.code, exclude_id=promo_id):
                raise DuplicatePromoCodeError(updated.code)
            await repo.update(updated)
            return updated

        try:
            promo = await with_transaction(self.session_factory, work)
        except DomainError as e:
            return PromoResult.failed(e)

        logger.info("Promo code updated", promo_id=promo_id, fields=sorted(changes), request_id=self.request_id)
        return PromoResult(promo=promo)

    async def delete(self, promo_id: int) -> PromoResult:
        async def work(session: AsyncSession) -> bool:
            return await PromoCodeRepository(session).delete(promo_id)

        if not await with_transaction(self.session_factory, work):
            return PromoResult.failed(NotFoundError("Promo code", promo_id))
        logger.info("Promo code deleted", promo_id=promo_id, request_id=self.request_id)
        return PromoResult()

    async def list_all(self) -> PromoListResult:
        async def work(session: AsyncSession) -> list[PromoCode]:
            return await PromoCodeRepository(session).list_all()

        promos = await with_transaction(self.session_factory, work)
        return PromoListResult(promos=promos, total=len(promos))


def get_promo_service(request_id: str | None = None) -> PromoService:
    """Get promo service instance."""
    return PromoService(request_id=request_id)

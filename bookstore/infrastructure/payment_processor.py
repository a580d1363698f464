"""Payment processor adapters.

``PaymentProcessor`` is the port the payment service talks to. The fake
adapter keeps intents in memory and is the default for development and
tests; the Stripe adapter speaks the processor's REST API over httpx.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import httpx
import structlog

from bookstore.domain.exceptions import PaymentProcessorError, ValidationError
from bookstore.infrastructure.config import settings

logger = structlog.get_logger()


# ============================================================================
# Port
# ============================================================================


@dataclass(frozen=True)
class PaymentIntent:
    """Processor-side payment intent."""

    id: str
    client_secret: str
    status: str
    amount_pence: int
    currency: str
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


class PaymentProcessor(ABC):
    """Abstract payment processor interface."""

    @abstractmethod
    async def create_intent(
        self,
        amount_pence: int,
        currency: str,
        metadata: dict[str, str] | None = None,
    ) -> PaymentIntent:
        """Create a payment intent for ``amount_pence`` in ``currency``."""
        ...

    @abstractmethod
    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        """Fetch the current state of an intent.

        Raises:
            ValidationError: If the id cannot be an intent id.
            PaymentProcessorError: If the intent is unknown or the call fails.
        """
        ...


# ============================================================================
# Fake Adapter
# ============================================================================


class FakePaymentProcessor(PaymentProcessor):
    """Configurable in-memory processor.

    Intents start in ``requires_payment_method``; tests move them along
    with ``complete()`` the way the client-side payment form would.
    """

    def __init__(self) -> None:
        self.intents: dict[str, PaymentIntent] = {}
        self.calls: list[dict[str, Any]] = []
        self.should_succeed = True
        self.failure_reason = "Processor unavailable"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Processor unavailable") -> None:
        """Configure the fake processor behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    async def create_intent(
        self,
        amount_pence: int,
        currency: str,
        metadata: dict[str, str] | None = None,
    ) -> PaymentIntent:
        self.calls.append(
            {"method": "create_intent", "amount_pence": amount_pence, "currency": currency}
        )
        if not self.should_succeed:
            raise PaymentProcessorError(self.failure_reason)

        intent_id = f"pi_fake_{uuid4().hex[:16]}"
        intent = PaymentIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid4().hex[:12]}",
            status="requires_payment_method",
            amount_pence=amount_pence,
            currency=currency,
            metadata=dict(metadata or {}),
        )
        self.intents[intent_id] = intent
        return intent

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        self.calls.append({"method": "retrieve_intent", "intent_id": intent_id})
        if not self.should_succeed:
            raise PaymentProcessorError(self.failure_reason)
        intent = self.intents.get(intent_id)
        if intent is None:
            raise PaymentProcessorError(f"No such payment_intent: '{intent_id}'")
        return intent

    def complete(self, intent_id: str, status: str = "succeeded") -> PaymentIntent:
        """Move an intent to ``status`` as if the customer had paid."""
        intent = self.intents[intent_id]
        updated = PaymentIntent(
            id=intent.id,
            client_secret=intent.client_secret,
            status=status,
            amount_pence=intent.amount_pence,
            currency=intent.currency,
            metadata=intent.metadata,
        )
        self.intents[intent_id] = updated
        return updated

    def reset(self) -> None:
        """Clear intents and calls (useful between tests)."""
        self.intents.clear()
        self.calls.clear()
        self.should_succeed = True
        self.failure_reason = "Processor unavailable"


# ============================================================================
# Stripe Adapter
# ============================================================================


INTENT_ID_PATTERN = re.compile(r"pi_[A-Za-z0-9_]+")


class StripePaymentProcessor(PaymentProcessor):
    """Payment intents through the Stripe REST API.

    Stripe takes form-encoded bodies and authenticates with the secret key
    as a bearer token. Transport errors and non-2xx answers are raised as
    PaymentProcessorError; no retry is attempted here.
    """

    def __init__(
        self,
        secret_key: str,
        api_base: str = "https://api.stripe.com/v1",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Stripe processor.

        Args:
            secret_key: Stripe secret API key.
            api_base: REST API base URL.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.secret_key = secret_key
        self.api_base = api_base
        self.timeout = timeout
        self.transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_base,
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.secret_key}"},
                transport=self.transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def create_intent(
        self,
        amount_pence: int,
        currency: str,
        metadata: dict[str, str] | None = None,
    ) -> PaymentIntent:
        data: dict[str, Any] = {
            "amount": amount_pence,
            "currency": currency,
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in (metadata or {}).items():
            data[f"metadata[{key}]"] = value
        body = await self._request("POST", "/payment_intents", data=data)
        return self._to_intent(body)

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        if not INTENT_ID_PATTERN.fullmatch(intent_id):
            raise ValidationError("Invalid paymentIntentId", details={"intent_id": intent_id})
        body = await self._request("GET", f"/payment_intents/{intent_id}")
        return self._to_intent(body)

    async def _request(self, method: str, path: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            client = await self._get_client()
            response = await client.request(method, path, data=data)
        except httpx.RequestError as e:
            logger.error("Payment processor request failed", path=path, error=str(e))
            raise PaymentProcessorError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("error", {}).get("message", response.text)
            except ValueError:
                message = response.text
            logger.warning(
                "Payment processor returned error",
                path=path,
                status_code=response.status_code,
                error=message,
            )
            raise PaymentProcessorError(
                message, details={"status_code": response.status_code, "path": path}
            )
        return response.json()

    @staticmethod
    def _to_intent(body: dict[str, Any]) -> PaymentIntent:
        if body.get("object") != "payment_intent":
            raise PaymentProcessorError(
                f"Expected a payment_intent, got {body.get('object')!r}",
                details={"id": body.get("id")},
            )
        return PaymentIntent(
            id=body["id"],
            client_secret=body.get("client_secret", ""),
            status=body.get("status", "unknown"),
            amount_pence=body.get("amount", 0),
            currency=body.get("currency", ""),
            metadata=body.get("metadata") or {},
        )


# ============================================================================
# Processor Registry
# ============================================================================


_processor: PaymentProcessor | None = None


def get_payment_processor() -> PaymentProcessor:
    """Get the configured payment processor singleton."""
    global _processor
    if _processor is None:
        if settings.payment_provider == "stripe":
            _processor = StripePaymentProcessor(
                secret_key=settings.stripe_secret_key,
                api_base=settings.stripe_api_base,
                timeout=settings.stripe_timeout_seconds,
            )
        else:
            _processor = FakePaymentProcessor()
        logger.info("Payment processor configured", provider=settings.payment_provider)
    return _processor


def set_payment_processor(processor: PaymentProcessor | None) -> None:
    """Replace the processor singleton (tests and wiring)."""
    global _processor
    _processor = processor

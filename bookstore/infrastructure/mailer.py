"""Mail delivery port.

Delivery mechanics belong to the mail service; the application only
hands over recipient, subject, bodies and optional attachments.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from uuid import uuid4

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class Attachment:
    """File attached to an email."""

    filename: str
    content: bytes
    media_type: str


class Mailer(ABC):
    """Abstract interface for email dispatch adapters."""

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: str | None = None,
        attachments: list[Attachment] | None = None,
    ) -> dict:
        """Send an email message.

        Returns:
            dict with keys: message_id, status ("sent" or "failed"), error (optional)
        """
        ...


class FakeMailer(Mailer):
    """Mailer that records messages in memory."""

    def __init__(self) -> None:
        self.sent_emails: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Email delivery failed") -> None:
        """Configure the fake mailer behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: str | None = None,
        attachments: list[Attachment] | None = None,
    ) -> dict:
        if not self.should_succeed:
            logger.warning("Email delivery failed", to=to, subject=subject)
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"email-{uuid4().hex[:12]}"
        self.sent_emails.append(
            {
                "message_id": message_id,
                "to": to,
                "subject": subject,
                "body": body,
                "html_body": html_body,
                "attachments": list(attachments or []),
            }
        )
        logger.info("Email sent", to=to, subject=subject, message_id=message_id)
        return {"message_id": message_id, "status": "sent"}

    def reset(self) -> None:
        """Clear sent emails (useful between tests)."""
        self.sent_emails.clear()
        self.should_succeed = True


_mailer: Mailer | None = None


def get_mailer() -> Mailer:
    """Get mailer singleton."""
    global _mailer
    if _mailer is None:
        _mailer = FakeMailer()
    return _mailer


def set_mailer(mailer: Mailer | None) -> None:
    """Replace the mailer singleton."""
    global _mailer
    _mailer = mailer

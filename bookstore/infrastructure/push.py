"""Real-time push hub.

Connected clients subscribe (optionally as a user) and receive messages
sent to broadcast destinations such as ``/topic/notifications`` or to
their private ``/queue/notifications`` destination. Every message is
also kept in ``sent`` for inspection.
"""

import asyncio
from dataclasses import dataclass, field
from itertools import count
from typing import Any

import structlog

logger = structlog.get_logger()

BROADCAST_DESTINATION = "/topic/notifications"
USER_DESTINATION = "/queue/notifications"


@dataclass(frozen=True)
class PushMessage:
    """A message delivered through the hub."""

    destination: str
    payload: dict[str, Any]
    user_id: int | None = None


@dataclass
class Subscription:
    """A connected client."""

    id: int
    user_id: int | None
    queue: asyncio.Queue[PushMessage] = field(repr=False)


class PushHub:
    """Fan-out of push messages to connected subscribers."""

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self.sent: list[PushMessage] = []
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = count(1)

    def subscribe(self, user_id: int | None = None) -> Subscription:
        """Register a client and return its subscription."""
        subscription = Subscription(
            id=next(self._ids),
            user_id=user_id,
            queue=asyncio.Queue(maxsize=self.queue_size),
        )
        self._subscriptions[subscription.id] = subscription
        logger.info("Push client subscribed", subscription_id=subscription.id, user_id=user_id)
        return subscription

    def unsubscribe(self, subscription_id: int) -> None:
        if self._subscriptions.pop(subscription_id, None) is not None:
            logger.info("Push client unsubscribed", subscription_id=subscription_id)

    async def broadcast(self, destination: str, payload: dict[str, Any]) -> int:
        """Send to every connected client; returns the number reached."""
        message = PushMessage(destination=destination, payload=payload)
        self.sent.append(message)
        return self._deliver(message, list(self._subscriptions.values()))

    async def send_to_user(self, user_id: int, destination: str, payload: dict[str, Any]) -> int:
        """Send to the clients of one user; returns the number reached."""
        message = PushMessage(destination=destination, payload=payload, user_id=user_id)
        self.sent.append(message)
        targets = [s for s in self._subscriptions.values() if s.user_id == user_id]
        return self._deliver(message, targets)

    def _deliver(self, message: PushMessage, targets: list[Subscription]) -> int:
        delivered = 0
        for subscription in targets:
            try:
                subscription.queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "Push queue full, message dropped",
                    subscription_id=subscription.id,
                    destination=message.destination,
                )
        return delivered

    def messages_for(self, destination: str, user_id: int | None = None) -> list[PushMessage]:
        """Sent messages filtered by destination (and user)."""
        return [
            m
            for m in self.sent
            if m.destination == destination and (user_id is None or m.user_id == user_id)
        ]


# Global hub instance
_push_hub: PushHub | None = None


def get_push_hub() -> PushHub:
    """Get push hub singleton."""
    global _push_hub
    if _push_hub is None:
        _push_hub = PushHub()
    return _push_hub


def reset_push_hub() -> None:
    """Reset push hub (for testing)."""
    global _push_hub
    _push_hub = PushHub()

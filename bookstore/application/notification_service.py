"""Notification producer.

Builds ``NotificationMessage`` records for order events and routes them:

- through the ``notifications.events`` topic (the durable path consumed by
  ``NotificationFanout``), keyed ``created_<orderId>``, ``status_<orderId>``,
  ``payment_<orderId>`` or ``general_<userId>``;
- straight to the user's push queue for status changes (the low-latency
  path);
- by email for order confirmations when the broker is disabled.

Every method is best-effort: failures are logged and never raised.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field

from bookstore.application.event_publisher import EventPublisher, get_event_publisher
from bookstore.domain.entities import Order
from bookstore.domain.state_machines import OrderStatus
from bookstore.infrastructure.broker import NOTIFICATIONS_TOPIC
from bookstore.infrastructure.config import settings
from bookstore.infrastructure.mailer import Mailer, get_mailer
from bookstore.infrastructure.push import USER_DESTINATION, PushHub, get_push_hub

logger = structlog.get_logger()


# ============================================================================
# Message
# ============================================================================


class NotificationMessage(BaseModel):
    """Notification record carried on the notifications topic and pushed to clients."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: str
    title: str
    message: str
    user_id: int | None = None
    order_id: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    read: bool = False


STATUS_TITLES: dict[OrderStatus, str] = {
    OrderStatus.NEW_ORDER: "Order Received! 📋",
    OrderStatus.PROCESSING: "Order Processing! ⚙️",
    OrderStatus.PACKED: "Order Packed! 📦",
    OrderStatus.DISPATCHED: "Order Dispatched! 🚚",
    OrderStatus.IN_TRANSIT: "Order In Transit! 🚛",
    OrderStatus.OUT_FOR_DELIVERY: "Out for Delivery! 🏠",
    OrderStatus.DELIVERED: "Order Delivered! ✅",
    OrderStatus.CANCELED: "Order Cancelled ❌",
}

STATUS_MESSAGES: dict[OrderStatus, str] = {
    OrderStatus.NEW_ORDER: "We have received your order {number}.",
    OrderStatus.PROCESSING: "Your order {number} is being processed.",
    OrderStatus.PACKED: "Your order {number} has been packed.",
    OrderStatus.DISPATCHED: "Your order {number} has been dispatched.",
    OrderStatus.IN_TRANSIT: "Your order {number} is on its way.",
    OrderStatus.OUT_FOR_DELIVERY: "Your order {number} is out for delivery.",
    OrderStatus.DELIVERED: "Your order {number} has been delivered. Enjoy your books!",
    OrderStatus.CANCELED: "Your order {number} has been cancelled.",
}

TRACKING_URL = "/order-history"


def order_created_message(order: Order) -> NotificationMessage:
    return NotificationMessage(
        type="ORDER_CREATED",
        title="Order Confirmed! 📚",
        message=f"Your order {order.order_number} has been placed successfully and is being processed.",
        user_id=order.user_id,
        order_id=order.id,
        metadata={
            "orderNumber": order.order_number,
            "status": order.status.value,
            "totalAmount": str(order.total_amount.to_decimal()),
            "trackingUrl": TRACKING_URL,
            "actionText": "Track Your Order",
        },
    )


def status_changed_message(order: Order) -> NotificationMessage:
    return NotificationMessage(
        type="ORDER_STATUS_UPDATED",
        title=STATUS_TITLES[order.status],
        message=STATUS_MESSAGES[order.status].format(number=order.order_number),
        user_id=order.user_id,
        order_id=order.id,
        metadata={
            "orderNumber": order.order_number,
            "status": order.status.value,
            "trackingUrl": TRACKING_URL,
            "actionText": "Track Your Order",
        },
    )


def payment_succeeded_message(order: Order) -> NotificationMessage:
    return NotificationMessage(
        type="PAYMENT_SUCCESS",
        title="Payment Successful! 🎉",
        message=f"Payment of {order.total_amount} for order {order.order_number} was received.",
        user_id=order.user_id,
        order_id=order.id,
        metadata={
            "orderNumber": order.order_number,
            "amount": str(order.total_amount.to_decimal()),
            "paymentMethod": order.payment_method,
        },
    )


# ============================================================================
# Service
# ============================================================================


class NotificationService:
    """Routes order notifications to the broker, the push hub or the mailer."""

    def __init__(
        self,
        publisher: EventPublisher | None = None,
        push_hub: PushHub | None = None,
        mailer: Mailer | None = None,
        broker_enabled: bool | None = None,
    ) -> None:
        self.publisher = publisher or get_event_publisher()
        self.push_hub = push_hub or get_push_hub()
        self.mailer = mailer or get_mailer()
        self.broker_enabled = settings.broker_enabled if broker_enabled is None else broker_enabled

    def _publish(self, key: str, message: NotificationMessage) -> None:
        self.publisher.publish(NOTIFICATIONS_TOPIC, key, message.model_dump(mode="json"))

    async def order_created(self, order: Order, email: str | None = None) -> None:
        """Confirm a newly placed order."""
        message = order_created_message(order)
        try:
            if self.broker_enabled:
                self._publish(f"created_{order.id}", message)
            elif email:
                await self.mailer.send(
                    to=email,
                    subject=f"Order Confirmation - {order.order_number}",
                    body=message.message,
                )
            logger.info("Order confirmation sent", order_id=order.id, user_id=order.user_id)
        except Exception as e:
            logger.warning("Order confirmation failed", order_id=order.id, error=str(e))

    async def status_changed(self, order: Order) -> None:
        """Push the new status to the user and publish it for fan-out."""
        message = status_changed_message(order)
        try:
            await self.push_hub.send_to_user(
                order.user_id, USER_DESTINATION, message.model_dump(mode="json")
            )
        except Exception as e:
            logger.warning("Direct status push failed", order_id=order.id, error=str(e))
        try:
            self._publish(f"status_{order.id}", message)
        except Exception as e:
            logger.warning("Status notification publish failed", order_id=order.id, error=str(e))

    async def payment_succeeded(self, order: Order) -> None:
        try:
            self._publish(f"payment_{order.id}", payment_succeeded_message(order))
        except Exception as e:
            logger.warning("Payment notification publish failed", order_id=order.id, error=str(e))

    async def general(self, user_id: int, title: str, text: str, metadata: dict[str, Any] | None = None) -> None:
        message = NotificationMessage(
            type="GENERAL",
            title=title,
            message=text,
            user_id=user_id,
            metadata=metadata or {},
        )
        try:
            self._publish(f"general_{user_id}", message)
        except Exception as e:
            logger.warning("General notification publish failed", user_id=user_id, error=str(e))

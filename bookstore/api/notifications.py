"""WebSocket endpoint streaming push notifications.

Clients connect to ``/ws/notifications?user_id=<id>`` and receive JSON
frames ``{"destination": ..., "payload": ...}`` for broadcasts and for
messages addressed to that user. Frames sent by the client are ignored.
"""

import asyncio

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from bookstore.infrastructure.push import Subscription, get_push_hub

logger = structlog.get_logger()

router = APIRouter(tags=["Notifications"])


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        message = await subscription.queue.get()
        await websocket.send_json({"destination": message.destination, "payload": message.payload})


@router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket, user_id: int | None = Query(default=None)) -> None:
    hub = get_push_hub()
    # Subscribe before accepting so nothing sent after the handshake is missed
    subscription = hub.subscribe(user_id)
    forwarder: asyncio.Task[None] | None = None
    try:
        await websocket.accept()
        forwarder = asyncio.create_task(_forward(websocket, subscription))
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Push client disconnected", subscription_id=subscription.id, user_id=user_id)
    finally:
        if forwarder is not None:
            forwarder.cancel()
            await asyncio.gather(forwarder, return_exceptions=True)
        hub.unsubscribe(subscription.id)

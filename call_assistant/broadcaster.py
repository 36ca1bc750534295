"""
Live event feed for status panels.

``EventBroadcaster`` is registered as a webhook listener and pushes every
canonical telephony event to each connected ``/ws/events`` socket.
"""

import logging
from typing import Set

from fastapi import WebSocket

from call_assistant.config.constants import LOGGER_NAME
from call_assistant.models.message_schemas import TelephonyEventMessage
from call_assistant.models.telephony_events import TelephonyEvent

logger = logging.getLogger(LOGGER_NAME)


class EventBroadcaster:
    """Tracks event feed subscribers and fans events out to them."""

    def __init__(self):
        self.subscribers: Set[WebSocket] = set()

    def subscribe(self, websocket: WebSocket) -> None:
        self.subscribers.add(websocket)
        logger.info(f"Event feed subscriber added ({len(self.subscribers)} connected)")

    def unsubscribe(self, websocket: WebSocket) -> None:
        self.subscribers.discard(websocket)
        logger.info(f"Event feed subscriber removed ({len(self.subscribers)} connected)")

    async def __call__(self, event: TelephonyEvent) -> None:
        await self.broadcast(event)

    async def broadcast(self, event: TelephonyEvent) -> int:
        """
        Send ``event`` to every subscriber.

        Subscribers whose socket fails are dropped.

        Returns:
            Number of subscribers the event was delivered to
        """
        if not self.subscribers:
            return 0

        frame = TelephonyEventMessage(event=event.model_dump(mode="json")).model_dump_json()
        delivered = 0
        for websocket in list(self.subscribers):
            try:
                await websocket.send_text(frame)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping event feed subscriber after send failure: {e}")
                self.subscribers.discard(websocket)
        logger.debug(f"Broadcast {event.kind.value} for call {event.call_id} to {delivered} subscriber(s)")
        return delivered

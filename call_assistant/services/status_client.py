"""
WebSocket client for the live telephony event feed.

Lets a status panel or tool running outside the browser subscribe to
``/ws/events`` and receive canonical telephony events as they are dispatched.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from pydantic import ValidationError

from call_assistant.config.constants import LOGGER_NAME, MESSAGE_TYPE_TELEPHONY_EVENT
from call_assistant.models.telephony_events import TelephonyEvent, TelephonyEventAdapter

logger = logging.getLogger(LOGGER_NAME)

EventHandler = Callable[[TelephonyEvent], Awaitable[None]]


class CallStatusClient:
    """
    Client for the service's live event feed.

    This class connects to the feed, parses each frame back into a canonical
    event and hands it to a callback.
    """

    def __init__(self, url: str):
        """
        Initialize the event feed client.

        Args:
            url: The WebSocket URL of the feed, e.g. ``ws://localhost:8000/ws/events``
        """
        self.url = url
        self.websocket: Optional[Any] = None

    async def connect(self) -> bool:
        """
        Establish a connection to the event feed.

        Returns:
            True if connection was successful, False otherwise
        """
        try:
            self.websocket = await websockets.connect(self.url)
            logger.info(f"Connected to event feed at {self.url}")
            return True
        except (OSError, WebSocketException) as e:
            logger.error(f"Failed to connect to event feed: {e}")
            return False

    @staticmethod
    def parse_frame(frame: str) -> Optional[TelephonyEvent]:
        """Parse one feed frame; returns None for frames that are not events."""
        try:
            message = json.loads(frame)
        except json.JSONDecodeError:
            logger.warning(f"Received invalid JSON: {frame[:100]}...")
            return None
        if not isinstance(message, dict) or message.get("type") != MESSAGE_TYPE_TELEPHONY_EVENT:
            return None
        try:
            return TelephonyEventAdapter.validate_python(message.get("event"))
        except ValidationError as e:
            logger.warning(f"Received malformed telephony event: {e}")
            return None

    async def listen(self, handler: EventHandler) -> None:
        """
        Listen for events until the connection closes.

        Args:
            handler: Coroutine called with each parsed event
        """
        if not self.websocket:
            logger.error("Cannot listen: Not connected")
            return

        try:
            async for frame in self.websocket:
                event = self.parse_frame(frame)
                if event is not None:
                    await handler(event)
        except ConnectionClosed:
            logger.info("Event feed connection closed by server")
        finally:
            self.websocket = None

    async def close(self) -> None:
        """Close the WebSocket connection."""
        if self.websocket:
            await self.websocket.close()
            logger.info("Closed event feed connection")
            self.websocket = None

"""
Webhook dispatcher for inbound dialer provider events.

The dispatcher is the explicit listener registry of the service. It is built
by the composition root in ``call_assistant.main`` and handed the webhook
secret there; nothing in this module is a process-wide singleton.

Inbound handling is: verify the signature over the raw bytes, normalize the
parsed payload, then invoke each listener in registration order. Listener
failures are logged and never stop the remaining listeners.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

from call_assistant.config.constants import LOGGER_NAME
from call_assistant.errors import SignatureError
from call_assistant.models.telephony_events import TelephonyEvent
from call_assistant.webhooks.normalizer import normalize
from call_assistant.webhooks.signature import verify

logger = logging.getLogger(LOGGER_NAME)

# Listeners may be plain functions or coroutines
EventListener = Callable[[TelephonyEvent], Union[None, Awaitable[None]]]


class WebhookDispatcher:
    """
    Verifies, normalizes and fans out inbound provider events.

    Listeners are append-only and live as long as the dispatcher. No
    deduplication or reordering is done; consumers that need idempotence
    should key off ``call_id``/``session_id`` themselves.
    """

    def __init__(self, webhook_secret: Optional[str]):
        self.webhook_secret = webhook_secret
        self._listeners: List[EventListener] = []

    @property
    def listeners(self) -> List[EventListener]:
        return list(self._listeners)

    def add_listener(self, listener: EventListener) -> None:
        """Register a listener; it is invoked after every listener added before it."""
        self._listeners.append(listener)
        logger.info(f"Registered webhook listener: {getattr(listener, '__name__', type(listener).__name__)}")

    async def dispatch(self, event: TelephonyEvent) -> int:
        """
        Invoke every listener with ``event``.

        Returns:
            Number of listeners that completed without raising
        """
        delivered = 0
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Error in webhook listener for {event.kind.value} event on call {event.call_id}: {e}",
                    exc_info=True,
                )
        return delivered

    async def handle_inbound(
        self,
        raw_body: bytes,
        payload: Any,
        signature: Optional[str],
    ) -> Optional[TelephonyEvent]:
        """
        Handle one inbound webhook request.

        Args:
            raw_body: Request body exactly as received
            payload: The parsed JSON body
            signature: Value of the provider signature header

        Returns:
            The dispatched canonical event, or None when the payload was an
            unrecognized no-op

        Raises:
            SignatureError: If the signature does not verify; nothing is
                normalized or dispatched in that case
        """
        self.authenticate(raw_body, signature)
        return await self.process(payload)

    def authenticate(self, raw_body: bytes, signature: Optional[str]) -> None:
        """
        Verify the signature of a raw request body.

        Raises:
            SignatureError: If the signature is missing or does not match
        """
        if not verify(raw_body, signature, self.webhook_secret):
            logger.warning("Rejected webhook with invalid or missing signature")
            raise SignatureError("Invalid signature")

    async def process(self, payload: Any) -> Optional[TelephonyEvent]:
        """Normalize an authenticated payload and dispatch it. Unknown payloads are a no-op."""
        event = normalize(payload)
        if event is None:
            return None

        logger.info(
            f"Received webhook event: type={event.kind.value} call_id={event.call_id} status={event.status}"
        )
        await self.dispatch(event)
        return event

"""
HTTP client for the remote dialer provider.

Creates a recorded dialer session whose events are delivered to our webhook,
and terminates it when the call ends.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from call_assistant.config.constants import LOGGER_NAME
from call_assistant.config.settings import AssistantSettings
from call_assistant.errors import RemoteSessionError, RemoteTerminationError

logger = logging.getLogger(LOGGER_NAME)


def _error_message(response: httpx.Response, default: str) -> str:
    """Pull a provider error message out of a failed response."""
    try:
        data = response.json()
    except ValueError:
        return default
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return error.get("message") or default
        return data.get("message") or error or default
    return default


class DialerClient:
    """
    Client for the dialer provider's session endpoints.

    Args:
        settings: Settings carrying the API key and base URL
        http_client: Optional pre-built ``httpx.AsyncClient`` (tests inject a
            client with a mock transport)
    """

    def __init__(self, settings: AssistantSettings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.base_url = settings.dialer_base_url.rstrip("/")
        self._client = http_client
        self._owns_client = http_client is None

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.dialer_api_key}",
            "Content-Type": "application/json",
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.http_timeout)
        return self._client

    async def create_session(self, webhook_url: Optional[str] = None) -> str:
        """
        Create a recorded dialer session.

        Args:
            webhook_url: Callback URL for provider events (defaults to settings)

        Returns:
            The session identifier issued by the provider

        Raises:
            RemoteSessionError: On transport failure, non-2xx status or a
                response without a session identifier
        """
        payload = {
            "recording_enabled": True,
            "webhook_url": webhook_url or self.settings.webhook_url,
        }
        logger.info("Initializing dialer session...")
        try:
            response = await self._get_client().post(
                f"{self.base_url}/calls/init", json=payload, headers=self._headers()
            )
        except httpx.HTTPError as e:
            raise RemoteSessionError(f"Dialer session request failed: {e}") from e

        if not response.is_success:
            message = _error_message(response, "Failed to initialize dialer session")
            logger.error(f"Dialer API error response ({response.status_code}): {message}")
            raise RemoteSessionError(message, status_code=response.status_code)

        try:
            data: Dict[str, Any] = response.json()
        except ValueError as e:
            raise RemoteSessionError("Dialer returned a non-JSON response", response.status_code) from e

        session_id = data.get("session_id") if isinstance(data, dict) else None
        if not session_id:
            raise RemoteSessionError("No session ID received from dialer", response.status_code)

        logger.info(f"Dialer session initialized: {session_id}")
        return str(session_id)

    async def terminate_session(self, session_id: str) -> None:
        """
        End a dialer session.

        Raises:
            RemoteTerminationError: On transport failure or non-2xx status
        """
        try:
            response = await self._get_client().post(
                f"{self.base_url}/calls/{session_id}/end", headers=self._headers()
            )
        except httpx.HTTPError as e:
            raise RemoteTerminationError(f"Dialer termination request failed: {e}") from e

        if not response.is_success:
            message = _error_message(response, "Failed to end dialer session")
            raise RemoteTerminationError(message, status_code=response.status_code)
        logger.info(f"Dialer session ended: {session_id}")

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

"""
HTTP client for the speech-to-text provider.

Each sealed audio chunk is posted as a multipart upload together with the
model selector. Empty or whitespace-only text means "no words", not failure.
"""

import logging
from typing import Optional

import httpx

from call_assistant.config.constants import AUDIO_FILENAMES, LOGGER_NAME
from call_assistant.config.settings import AssistantSettings
from call_assistant.errors import TranscriptionError
from call_assistant.models.session import AudioChunk

logger = logging.getLogger(LOGGER_NAME)


class TranscriptionClient:
    """Client for a Whisper-compatible ``audio/transcriptions`` endpoint."""

    def __init__(self, settings: AssistantSettings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.http_timeout)
        return self._client

    async def transcribe(self, chunk: AudioChunk) -> str:
        """
        Transcribe one audio chunk.

        Returns:
            Recognized text stripped of surrounding whitespace (may be empty)

        Raises:
            TranscriptionError: On transport failure, non-2xx status or an
                unreadable response body
        """
        filename = AUDIO_FILENAMES.get(chunk.media_format, "audio.webm")
        files = {"file": (filename, chunk.data, chunk.media_format)}
        data = {"model": self.settings.transcription_model}
        headers = {"Authorization": f"Bearer {self.settings.transcription_api_key}"}

        try:
            response = await self._get_client().post(
                self.settings.transcription_url, headers=headers, files=files, data=data
            )
        except httpx.HTTPError as e:
            raise TranscriptionError(f"Transcription request failed: {e}") from e

        if not response.is_success:
            message = "Failed to transcribe audio"
            try:
                message = response.json().get("error", {}).get("message") or message
            except (ValueError, AttributeError):
                pass
            raise TranscriptionError(message, status_code=response.status_code)

        try:
            text = response.json().get("text") or ""
        except (ValueError, AttributeError) as e:
            raise TranscriptionError("Transcription response was not valid JSON") from e

        logger.debug(f"Transcribed chunk {chunk.sequence} ({len(chunk)} bytes): {len(text)} characters")
        return str(text).strip()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

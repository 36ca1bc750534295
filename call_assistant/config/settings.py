"""
Environment-driven settings for the call assistant.

Values are read from the process environment (after loading a ``.env`` file
if one exists). Session credentials are checked by ``validate_for_session``
before a session is allowed to make any network call.
"""

import os
import re
from pathlib import Path
from typing import Dict, List, Optional

import dotenv
from pydantic import BaseModel, Field, ValidationError

from call_assistant.config.constants import (
    DEFAULT_CHUNK_INTERVAL,
    DEFAULT_DIALER_BASE_URL,
    DEFAULT_DRAIN_TIMEOUT,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_MAX_PENDING_CHUNKS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_TRANSCRIPTION_MODEL,
    DEFAULT_TRANSCRIPTION_URL,
)
from call_assistant.errors import ConfigurationError

# Dialer credentials are issued as an "api_key:api_secret" pair of hex strings
DIALER_KEY_PATTERN = re.compile(r"^[0-9a-fA-F]+:[0-9a-fA-F]+$")


class AssistantSettings(BaseModel):
    """Settings for the webhook relay and the call session pipeline."""

    dialer_api_key: str = ""
    transcription_api_key: str = ""
    webhook_secret: str = ""
    webhook_url: str = ""
    dialer_base_url: str = DEFAULT_DIALER_BASE_URL
    transcription_url: str = DEFAULT_TRANSCRIPTION_URL
    transcription_model: str = DEFAULT_TRANSCRIPTION_MODEL
    chunk_interval: float = Field(DEFAULT_CHUNK_INTERVAL, gt=0)
    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=0)
    retry_base_delay: float = Field(DEFAULT_RETRY_BASE_DELAY, ge=0)
    drain_timeout: float = Field(DEFAULT_DRAIN_TIMEOUT, gt=0)
    max_pending_chunks: int = Field(DEFAULT_MAX_PENDING_CHUNKS, ge=1)
    http_timeout: float = Field(DEFAULT_HTTP_TIMEOUT, gt=0)
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(
        cls,
        environ: Optional[Dict[str, str]] = None,
        env_file: Optional[Path] = Path(".") / ".env",
    ) -> "AssistantSettings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ`` (used by tests)
            env_file: Optional dotenv file loaded into ``os.environ`` first

        Returns:
            AssistantSettings populated from the environment

        Raises:
            ConfigurationError: If a value cannot be parsed or is out of range
        """
        if environ is None:
            if env_file is not None and env_file.exists():
                dotenv.load_dotenv(env_file)
            environ = dict(os.environ)

        def number(name: str, default, cast):
            raw = environ.get(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return cast(raw)
            except ValueError:
                raise ConfigurationError(f"{name} must be a number, got {raw!r}")

        try:
            return cls(
                dialer_api_key=environ.get("JUSTCALL_API_KEY", "").strip(),
                transcription_api_key=environ.get("OPENAI_API_KEY", "").strip(),
                webhook_secret=environ.get("JUSTCALL_WEBHOOK_SECRET", ""),
                webhook_url=environ.get("WEBHOOK_URL", "").strip(),
                dialer_base_url=environ.get("JUSTCALL_API_URL", DEFAULT_DIALER_BASE_URL),
                transcription_url=environ.get("TRANSCRIPTION_API_URL", DEFAULT_TRANSCRIPTION_URL),
                transcription_model=environ.get("TRANSCRIPTION_MODEL", DEFAULT_TRANSCRIPTION_MODEL),
                chunk_interval=number("CHUNK_INTERVAL_SECONDS", DEFAULT_CHUNK_INTERVAL, float),
                max_retries=number("TRANSCRIPTION_MAX_RETRIES", DEFAULT_MAX_RETRIES, int),
                retry_base_delay=number("TRANSCRIPTION_RETRY_BASE_DELAY", DEFAULT_RETRY_BASE_DELAY, float),
                drain_timeout=number("DRAIN_TIMEOUT_SECONDS", DEFAULT_DRAIN_TIMEOUT, float),
                max_pending_chunks=number("MAX_PENDING_CHUNKS", DEFAULT_MAX_PENDING_CHUNKS, int),
                http_timeout=number("HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT, float),
                host=environ.get("HOST", "0.0.0.0"),
                port=number("PORT", 8000, int),
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings: {e}")

    def session_problems(self) -> List[str]:
        """Return every problem that would prevent a call session from starting."""
        problems = []
        if not self.dialer_api_key:
            problems.append("Dialer API key is required")
        elif not DIALER_KEY_PATTERN.match(self.dialer_api_key):
            problems.append("Invalid dialer API key format. Expected format: key:secret")
        if not self.transcription_api_key:
            problems.append("Speech-to-Text API key is required")
        if not self.webhook_url:
            problems.append("Webhook URL is required")
        elif not self.webhook_url.startswith(("http://", "https://")):
            problems.append("Webhook URL must start with http:// or https://")
        return problems

    def validate_for_session(self) -> None:
        """
        Check the credentials needed to start a call session.

        Raises:
            ConfigurationError: Listing every problem found
        """
        problems = self.session_problems()
        if problems:
            raise ConfigurationError("; ".join(problems), problems)

"""
Call session state models.

``CallSession`` is owned by a single ``CallSessionController`` for its whole
lifetime. ``AudioChunk`` is one sealed capture segment, consumed exactly once
by the transcription step.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from call_assistant.config.constants import AUDIO_FORMAT_WEBM


class SessionState(str, Enum):
    """Lifecycle states of a call session."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    STOPPING = "stopping"
    ENDED = "ended"


# States in which a remote dialer session handle must be held
REMOTE_HANDLE_STATES = (SessionState.ACTIVE, SessionState.STOPPING)


class AudioChunk(BaseModel):
    """An immutable segment of captured audio."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    sequence: int = Field(0, ge=0, description="Position in capture order, starting at 0")
    media_format: str = AUDIO_FORMAT_WEBM

    def __len__(self) -> int:
        return len(self.data)


class CallSession(BaseModel):
    """Mutable record of one call session."""

    session_id: Optional[str] = None
    state: SessionState = SessionState.IDLE
    transcript_parts: List[str] = Field(default_factory=list)
    retry_count: int = 0
    chunks_sealed: int = 0
    chunks_dropped: int = 0

    @property
    def transcript(self) -> str:
        """Transcript parts joined in capture order."""
        return " ".join(self.transcript_parts)

    @property
    def holds_remote_handle(self) -> bool:
        return self.state in REMOTE_HANDLE_STATES

"""
Pydantic models for the overlay client session socket.

This module defines structured data models for the messages exchanged on
``/ws/session`` between the browser overlay and the service, plus the frame
sent to live event feed subscribers on ``/ws/events``.
"""

import base64
import binascii
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from call_assistant.config.constants import (
    AUDIO_FORMAT_WAV,
    AUDIO_FORMAT_WEBM,
    DEFAULT_CHANNELS,
    DEFAULT_SAMPLE_RATE,
)

SUPPORTED_MEDIA_FORMATS = [AUDIO_FORMAT_WEBM, AUDIO_FORMAT_WAV]

ObjectionMap = Dict[str, Dict[str, List[str]]]


class BaseMessage(BaseModel):
    """Base model for all session socket messages."""

    type: str = Field(..., description="Message type identifier")


# Client -> service
class SessionStartMessage(BaseMessage):
    """Model for session.start message from the overlay."""

    type: Literal["session.start"]
    microphonePermission: Literal["granted", "denied", "prompt"] = Field(
        "prompt", description="Microphone permission state reported by the browser"
    )
    mediaFormat: str = Field(AUDIO_FORMAT_WEBM, description="Container format of the audio chunks")
    sampleRate: int = Field(DEFAULT_SAMPLE_RATE, gt=0, description="Sample rate of raw PCM chunks")
    channels: int = Field(DEFAULT_CHANNELS, ge=1, le=2, description="Channel count of raw PCM chunks")
    script: Optional[str] = Field(None, description="Call script used for grading")
    objections: Optional[ObjectionMap] = Field(None, description="Objection responses used for grading")

    @field_validator("mediaFormat")
    def validate_media_format(cls, v):
        """Validate that media format is supported."""
        if v not in SUPPORTED_MEDIA_FORMATS:
            raise ValueError(f"Unsupported media format: {v}")
        return v


class AudioChunkMessage(BaseMessage):
    """Model for audio.chunk message from the overlay."""

    type: Literal["audio.chunk"]
    audioChunk: str = Field(..., description="Base64-encoded audio data")
    segmentEnd: bool = Field(False, description="True on the last message of a recorder segment")

    @field_validator("audioChunk")
    def validate_audio_chunk(cls, v):
        """Validate that audio chunk is valid base64."""
        if not v:
            raise ValueError("Audio chunk cannot be empty")
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("Invalid base64 encoded audio data")
        return v

    def audio_bytes(self) -> bytes:
        return base64.b64decode(self.audioChunk)


class SessionStopMessage(BaseMessage):
    """Model for session.stop message from the overlay."""

    type: Literal["session.stop"]


# Service -> client
class SessionStartedResponse(BaseMessage):
    type: Literal["session.started"] = "session.started"
    sessionId: str


class TranscriptUpdateMessage(BaseMessage):
    type: Literal["transcript.update"] = "transcript.update"
    transcript: str


class SessionEndedResponse(BaseMessage):
    type: Literal["session.ended"] = "session.ended"
    sessionId: Optional[str] = None
    transcript: str = ""
    grade: Optional[Dict[str, Any]] = None


class SessionErrorResponse(BaseMessage):
    """Abort-class failure reported to the overlay."""

    type: Literal["session.error"] = "session.error"
    reason: str = Field(..., description="Short human-readable reason")
    errorType: str = Field(..., description="Error class name")


class TelephonyEventMessage(BaseMessage):
    """Frame pushed to live event feed subscribers."""

    type: Literal["telephony.event"] = "telephony.event"
    event: Dict[str, Any]


IncomingMessage = Union[
    SessionStartMessage,
    AudioChunkMessage,
    SessionStopMessage,
]

OutgoingMessage = Union[
    SessionStartedResponse,
    TranscriptUpdateMessage,
    SessionEndedResponse,
    SessionErrorResponse,
    TelephonyEventMessage,
]

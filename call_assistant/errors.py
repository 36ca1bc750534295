"""
Error taxonomy for the call assistant.

Abort-class errors (configuration, microphone permission, remote session
creation) are raised to the caller of ``CallSessionController.start``.
Per-chunk ``TranscriptionError`` is absorbed inside the controller and
``SignatureError`` only ever aborts the single webhook request it belongs to.
"""

from typing import List, Optional


class CallAssistantError(Exception):
    """Base class for all call assistant errors."""


class ConfigurationError(CallAssistantError):
    """Missing or malformed credentials/settings, detected before any I/O."""

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        super().__init__(message)
        self.problems = problems or [message]


class MicrophonePermissionError(CallAssistantError, PermissionError):
    """Microphone access was denied or the capture device could not be opened."""


class RemoteSessionError(CallAssistantError):
    """The dialer provider rejected a session request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteTerminationError(RemoteSessionError):
    """The dialer provider failed to terminate a session."""


class TranscriptionError(CallAssistantError):
    """A transcription call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SignatureError(CallAssistantError):
    """An inbound webhook failed HMAC authentication."""


class SessionStateError(CallAssistantError):
    """An operation was requested in a session state that does not allow it."""


class NormalizationWarning(UserWarning):
    """An inbound provider payload did not match any known event shape."""

"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for configuration values and making it easier to
maintain consistent naming throughout the codebase.
"""

# Logger name used throughout the application
LOGGER_NAME = "call_assistant"

# Remote dialer provider
DEFAULT_DIALER_BASE_URL = "https://api.justcall.io/v1"
SIGNATURE_HEADER = "x-justcall-signature"

# Speech-to-text provider
DEFAULT_TRANSCRIPTION_URL = "https://api.openai.com/v1/audio/transcriptions"
DEFAULT_TRANSCRIPTION_MODEL = "whisper-1"

# Session timing and retry defaults
DEFAULT_CHUNK_INTERVAL = 5.0  # seconds
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0  # seconds, doubled per retry
DEFAULT_DRAIN_TIMEOUT = 30.0  # seconds
DEFAULT_HTTP_TIMEOUT = 30.0  # seconds
DEFAULT_MAX_PENDING_CHUNKS = 12  # one minute of audio at the default interval

# Audio container formats
AUDIO_FORMAT_WEBM = "audio/webm"
AUDIO_FORMAT_WAV = "audio/wav"
WEBM_MAGIC = b"\x1a\x45\xdf\xa3"  # EBML header
WAV_MAGIC = b"RIFF"
DEFAULT_SAMPLE_RATE = 16000
DEFAULT_CHANNELS = 1
AUDIO_FILENAMES = {
    AUDIO_FORMAT_WEBM: "audio.webm",
    AUDIO_FORMAT_WAV: "audio.wav",
}

# Overlay client message types (client -> service)
MESSAGE_TYPE_SESSION_START = "session.start"
MESSAGE_TYPE_AUDIO_CHUNK = "audio.chunk"
MESSAGE_TYPE_SESSION_STOP = "session.stop"

# Overlay client message types (service -> client)
MESSAGE_TYPE_SESSION_STARTED = "session.started"
MESSAGE_TYPE_SESSION_ENDED = "session.ended"
MESSAGE_TYPE_SESSION_ERROR = "session.error"
MESSAGE_TYPE_TRANSCRIPT_UPDATE = "transcript.update"

# Live event feed
MESSAGE_TYPE_TELEPHONY_EVENT = "telephony.event"

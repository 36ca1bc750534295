"""Audio capture sources for call sessions."""

from call_assistant.audio.capture import AudioSource, PyAudioMicrophone, StreamedAudioSource

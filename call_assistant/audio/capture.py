"""
Audio sources that a call session captures from.

A source is the microphone handle of one session controller. The controller
opens it during session start, calls ``seal()`` at every chunk boundary to
take the bytes captured so far (capture continues into a new segment right
away) and closes it on every path out of the session.

Every sealed segment must be a complete audio file on its own, since each
one is uploaded to the transcription provider separately. Sources that cut
their own segments (``seals_on_interval = False``) tell their owner when a
segment is complete; the others are sealed by the controller's timer.
"""

import asyncio
import io
import logging
import wave
from typing import List, Optional, Protocol

from call_assistant.config.constants import (
    AUDIO_FORMAT_WAV,
    AUDIO_FORMAT_WEBM,
    DEFAULT_CHANNELS,
    DEFAULT_SAMPLE_RATE,
    LOGGER_NAME,
    WAV_MAGIC,
    WEBM_MAGIC,
)
from call_assistant.errors import MicrophonePermissionError

logger = logging.getLogger(LOGGER_NAME)


def pcm_to_wav(pcm: bytes, sample_rate: int, channels: int) -> bytes:
    """Wrap raw 16-bit PCM in a WAV header."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)  # 2 bytes for 'int16'
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buffer.getvalue()


class AudioSource(Protocol):
    """Interface every capture source implements."""

    media_format: str
    seals_on_interval: bool

    @property
    def is_open(self) -> bool: ...

    async def open(self) -> None:
        """Acquire the device; raises MicrophonePermissionError when denied."""

    async def seal(self) -> bytes:
        """Return the current segment as a complete file and begin a new segment."""

    async def close(self) -> None:
        """Release the device. Safe to call more than once."""


class StreamedAudioSource:
    """
    Audio pushed in by a remote client.

    The browser overlay owns the physical microphone and restarts its
    recorder for every segment, so each recorder segment is a complete file.
    ``feed`` appends the bytes of the segment being received; the client
    marks the last message of a segment and the session manager then seals
    it. Segment boundaries therefore come from the client, never from a
    server-side timer.

    ``audio/webm`` segments must start with the EBML header; anything else
    is a continuation that no decoder accepts and is discarded. ``audio/wav``
    segments may be complete files or raw 16-bit PCM, which is wrapped in a
    WAV header on seal.
    """

    seals_on_interval = False

    def __init__(
        self,
        permission: str = "granted",
        media_format: str = AUDIO_FORMAT_WEBM,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channels: int = DEFAULT_CHANNELS,
    ):
        self.permission = permission
        self.media_format = media_format
        self.sample_rate = sample_rate
        self.channels = channels
        self._buffer = bytearray()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        if self.permission == "denied":
            raise MicrophonePermissionError("Microphone permission is denied")
        self._open = True
        logger.info("Microphone access granted")

    def feed(self, data: bytes) -> None:
        """Append received bytes to the segment being streamed."""
        if not self._open:
            logger.debug(f"Discarding {len(data)} bytes fed to a closed audio source")
            return
        self._buffer.extend(data)

    async def seal(self) -> bytes:
        data = bytes(self._buffer)
        self._buffer.clear()
        if not data:
            return b""

        if self.media_format == AUDIO_FORMAT_WAV:
            if data.startswith(WAV_MAGIC):
                return data
            return pcm_to_wav(data, self.sample_rate, self.channels)

        if not data.startswith(WEBM_MAGIC):
            logger.warning(
                f"Discarding {len(data)} byte segment without a WebM header; "
                "the client must send each recorder segment as a complete file"
            )
            return b""
        return data

    async def close(self) -> None:
        self._open = False
        self._buffer.clear()


class PyAudioMicrophone:
    """
    Local capture device read through PyAudio.

    Frames are read on a worker thread so the event loop keeps running while
    the device blocks. Each sealed segment is returned as a complete WAV file.
    """

    media_format = AUDIO_FORMAT_WAV
    seals_on_interval = True

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channels: int = DEFAULT_CHANNELS,
        frames_per_buffer: int = 1024,
        device_index: Optional[int] = None,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames_per_buffer = frames_per_buffer
        self.device_index = device_index
        self._pyaudio = None
        self._stream = None
        self._frames: List[bytes] = []
        self._reader_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    async def open(self) -> None:
        import pyaudio

        self._pyaudio = pyaudio.PyAudio()
        try:
            self._stream = self._pyaudio.open(
                format=pyaudio.paInt16,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                input_device_index=self.device_index,
                frames_per_buffer=self.frames_per_buffer,
            )
        except OSError as e:
            self._pyaudio.terminate()
            self._pyaudio = None
            raise MicrophonePermissionError(f"Could not open microphone: {e}") from e

        self._running = True
        self._reader_task = asyncio.create_task(self._read_loop())
        logger.info(f"Microphone opened at {self.sample_rate} Hz, {self.channels} channel(s)")

    async def _read_loop(self) -> None:
        while self._running:
            try:
                data = await asyncio.to_thread(self._stream.read, self.frames_per_buffer, False)
            except OSError as e:
                logger.error(f"Microphone read failed: {e}")
                break
            self._frames.append(data)

    async def seal(self) -> bytes:
        frames, self._frames = self._frames, []
        if not frames:
            return b""
        return pcm_to_wav(b"".join(frames), self.sample_rate, self.channels)

    async def close(self) -> None:
        self._running = False
        if self._reader_task is not None:
            # The pending read returns within one buffer period
            await self._reader_task
            self._reader_task = None
        if self._stream is not None:
            self._stream.stop_stream()
            self._stream.close()
            self._stream = None
        if self._pyaudio is not None:
            self._pyaudio.terminate()
            self._pyaudio = None
        self._frames = []

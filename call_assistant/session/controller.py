"""
Call session controller.

Drives one call end to end: validates credentials, creates the remote dialer
session, opens the microphone, seals capture segments into chunks (on a fixed
interval, or when the client ends a segment), transcribes them one at a time in capture order, and tears
everything down on stop.

State machine::

    IDLE -> INITIALIZING -> ACTIVE -> STOPPING -> ENDED
              |  (any failure)
              +-> IDLE

A controller is single use. Create a new one for the next call.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Union

from call_assistant.audio.capture import AudioSource
from call_assistant.config.constants import LOGGER_NAME
from call_assistant.config.settings import AssistantSettings
from call_assistant.errors import SessionStateError, TranscriptionError
from call_assistant.grading import GradingEngine
from call_assistant.models.grading import GradeResult
from call_assistant.models.session import AudioChunk, CallSession, SessionState
from call_assistant.services.dialer_client import DialerClient
from call_assistant.services.transcription_client import TranscriptionClient

logger = logging.getLogger(LOGGER_NAME)

TranscriptCallback = Callable[[str], Union[None, Awaitable[None]]]


class CallSessionController:
    """
    Owns one ``CallSession`` and the resources bound to it.

    Capture and transcription run as two tasks: the capture task seals a
    chunk every ``chunk_interval`` seconds without waiting on transcription,
    while a single worker consumes chunks from a FIFO queue. The single
    worker keeps the transcript in capture order even when one chunk is
    stuck in its retry loop. At most ``max_pending_chunks`` chunks wait in
    the queue; the oldest is dropped when a new one would exceed that.

    Sources with ``seals_on_interval = False`` get no capture task; their
    owner calls ``seal_segment`` at each segment boundary instead.
    """

    def __init__(
        self,
        settings: AssistantSettings,
        dialer: DialerClient,
        transcriber: TranscriptionClient,
        audio_source: AudioSource,
        on_transcript_update: Optional[TranscriptCallback] = None,
    ):
        self.settings = settings
        self.dialer = dialer
        self.transcriber = transcriber
        self.audio_source = audio_source
        self.on_transcript_update = on_transcript_update

        self.session = CallSession()
        self._queue: "asyncio.Queue[Optional[AudioChunk]]" = asyncio.Queue()
        self._capture_task: Optional[asyncio.Task] = None
        self._worker_task: Optional[asyncio.Task] = None
        self._next_sequence = 0
        self._stop_requested = asyncio.Event()
        self._ended = asyncio.Event()

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def session_id(self) -> Optional[str]:
        return self.session.session_id

    @property
    def transcript(self) -> str:
        return self.session.transcript

    def _set_state(self, state: SessionState) -> None:
        logger.debug(f"Session state {self.session.state.value} -> {state.value}")
        self.session.state = state

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------
    async def start(self) -> str:
        """
        Start the call session.

        Returns:
            The dialer session identifier

        Raises:
            SessionStateError: If the controller is not Idle
            ConfigurationError: If credentials are missing or malformed; no
                network call is made and the state stays Idle
            RemoteSessionError: If the dialer rejected the session
            MicrophonePermissionError: If microphone access was denied
        """
        if self.session.state is not SessionState.IDLE:
            raise SessionStateError(f"Cannot start a session that is {self.session.state.value}")

        self.settings.validate_for_session()

        logger.info("Starting call session...")
        self._set_state(SessionState.INITIALIZING)
        session_id = None
        started = False
        try:
            session_id = await self.dialer.create_session(self.settings.webhook_url)
            await self.audio_source.open()
            started = True
        finally:
            if not started:
                await self._rollback(session_id)

        self.session.session_id = session_id
        self._set_state(SessionState.ACTIVE)
        self._worker_task = asyncio.create_task(self._transcription_worker())
        if self.audio_source.seals_on_interval:
            self._capture_task = asyncio.create_task(self._capture_loop())
            logger.info(f"Call session {session_id} active, sealing chunks every {self.settings.chunk_interval}s")
        else:
            logger.info(f"Call session {session_id} active, sealing chunks at client segment boundaries")
        return session_id

    async def _rollback(self, session_id: Optional[str]) -> None:
        logger.warning("Call session failed to start, rolling back")
        await self._release_audio()
        if session_id:
            await self._terminate_remote(session_id)
        self.session.session_id = None
        self._set_state(SessionState.IDLE)

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------
    async def _capture_loop(self) -> None:
        while self.session.state is SessionState.ACTIVE:
            await asyncio.sleep(self.settings.chunk_interval)
            if self.session.state is not SessionState.ACTIVE:
                break
            try:
                await self._seal()
            except Exception as e:
                logger.error(f"Failed to seal audio segment: {e}", exc_info=True)

    async def seal_segment(self) -> Optional[AudioChunk]:
        """
        Force a chunk boundary now.

        Returns:
            The sealed chunk, or None when the segment was empty

        Raises:
            SessionStateError: If the session is not Active
        """
        if self.session.state is not SessionState.ACTIVE:
            raise SessionStateError(f"Cannot seal audio while {self.session.state.value}")
        return await self._seal()

    async def _seal(self) -> Optional[AudioChunk]:
        data = await self.audio_source.seal()
        if not data:
            return None
        chunk = AudioChunk(
            data=data,
            sequence=self._next_sequence,
            media_format=self.audio_source.media_format,
        )
        self._next_sequence += 1
        self.session.chunks_sealed += 1
        self._drop_backlog()
        self._queue.put_nowait(chunk)
        logger.debug(f"Sealed chunk {chunk.sequence} ({len(chunk)} bytes)")
        return chunk

    def _drop_backlog(self) -> None:
        backlog = self._queue.qsize()
        while backlog >= self.settings.max_pending_chunks:
            oldest = self._queue.get_nowait()
            self._queue.task_done()
            backlog -= 1
            self.session.chunks_dropped += 1
            logger.warning(
                f"Transcription backlog at {backlog + 1} chunk(s); dropped oldest chunk {oldest.sequence}"
            )

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------
    async def _transcription_worker(self) -> None:
        while True:
            chunk = await self._queue.get()
            try:
                if chunk is None:
                    return
                await self._process_chunk(chunk)
            except asyncio.CancelledError:
                # Cancelled by the drain timeout mid-transcription
                self.session.chunks_dropped += 1
                raise
            finally:
                self._queue.task_done()

    async def _process_chunk(self, chunk: AudioChunk) -> None:
        text = await self._transcribe_with_retry(chunk)
        if text is None:
            self.session.chunks_dropped += 1
            return
        if not text.strip():
            return
        self.session.transcript_parts.append(text.strip())
        await self._notify_transcript()

    async def _transcribe_with_retry(self, chunk: AudioChunk) -> Optional[str]:
        """
        Transcribe a chunk with bounded exponential backoff.

        Makes one attempt plus up to ``max_retries`` retries. Returns None
        when every attempt failed; the chunk's words are then lost. Once
        stop is requested the remaining retries run without waiting.
        """
        self.session.retry_count = 0
        while True:
            try:
                return await self.transcriber.transcribe(chunk)
            except Exception as e:
                if self.session.retry_count >= self.settings.max_retries:
                    failure = TranscriptionError(
                        f"Chunk {chunk.sequence} dropped after {self.session.retry_count + 1} attempts: {e}"
                    )
                    logger.error(str(failure))
                    return None

                self.session.retry_count += 1
                delay = self.settings.retry_base_delay * 2 ** (self.session.retry_count - 1)
                logger.warning(
                    f"Transcription of chunk {chunk.sequence} failed ({e}), "
                    f"retry {self.session.retry_count}/{self.settings.max_retries} in {delay:.1f}s"
                )
                await self._wait_before_retry(delay)

    async def _wait_before_retry(self, delay: float) -> None:
        if delay <= 0 or self._stop_requested.is_set():
            return
        try:
            await asyncio.wait_for(self._stop_requested.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _notify_transcript(self) -> None:
        if self.on_transcript_update is None:
            return
        try:
            result = self.on_transcript_update(self.transcript)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error in transcript update callback: {e}", exc_info=True)

    async def wait_for_transcription(self) -> None:
        """Wait until every chunk sealed so far has been processed."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------
    async def stop(self) -> str:
        """
        Stop the call session and return the final transcript.

        Capture is halted, the last buffered segment is flushed through
        transcription, the microphone is released and the dialer session is
        terminated. Remote termination is best effort. The session always
        reaches Ended.

        Raises:
            SessionStateError: If the session is still initializing
        """
        state = self.session.state
        if state is SessionState.ENDED:
            return self.transcript
        if state is SessionState.IDLE:
            self._set_state(SessionState.ENDED)
            self._ended.set()
            return self.transcript
        if state is SessionState.INITIALIZING:
            raise SessionStateError("Cannot stop a session that is still initializing")
        if state is SessionState.STOPPING:
            await self._ended.wait()
            return self.transcript

        logger.info(f"Stopping call session {self.session.session_id}...")
        self._set_state(SessionState.STOPPING)
        self._stop_requested.set()
        try:
            await self._cancel_capture()
            try:
                await self._seal()
            except Exception as e:
                logger.error(f"Failed to flush final audio segment: {e}", exc_info=True)
            self._queue.put_nowait(None)
            await self._drain_worker()
        finally:
            await self._release_audio()
            session_id = self.session.session_id
            if session_id:
                await self._terminate_remote(session_id)
            self.session.session_id = None
            self._set_state(SessionState.ENDED)
            self._ended.set()
            logger.info(
                f"Call session stopped: {self.session.chunks_sealed} chunks, "
                f"{self.session.chunks_dropped} dropped"
            )
        return self.transcript

    async def _cancel_capture(self) -> None:
        task, self._capture_task = self._capture_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("Capture task cancelled")

    async def _drain_worker(self) -> None:
        worker, self._worker_task = self._worker_task, None
        if worker is None:
            return
        try:
            await asyncio.wait_for(worker, timeout=self.settings.drain_timeout)
        except asyncio.TimeoutError:
            pending = [chunk for chunk in self._drain_queue() if chunk is not None]
            self.session.chunks_dropped += len(pending)
            logger.error(
                f"Transcription did not drain within {self.settings.drain_timeout}s; "
                f"abandoned in-flight chunk and {len(pending)} queued chunk(s)"
            )
        except Exception as e:
            logger.error(f"Transcription worker failed: {e}", exc_info=True)

    def _drain_queue(self) -> List[Optional[AudioChunk]]:
        items = []
        while not self._queue.empty():
            items.append(self._queue.get_nowait())
            self._queue.task_done()
        return items

    async def _release_audio(self) -> None:
        try:
            await self.audio_source.close()
            logger.info("Microphone released")
        except Exception as e:
            logger.error(f"Error releasing microphone: {e}", exc_info=True)

    async def _terminate_remote(self, session_id: str) -> None:
        try:
            await self.dialer.terminate_session(session_id)
        except Exception as e:
            logger.error(f"Failed to end dialer session {session_id}: {e}")

    # ------------------------------------------------------------------
    # Grading
    # ------------------------------------------------------------------
    def grade(
        self,
        engine: GradingEngine,
        script: str,
        objections: Dict[str, Dict[str, List[str]]],
    ) -> GradeResult:
        """
        Score the finished transcript.

        Raises:
            SessionStateError: If the session has not ended yet
        """
        if self.session.state is not SessionState.ENDED:
            raise SessionStateError("Transcript is only final once the session has ended")
        return engine.grade(self.transcript, script, objections)

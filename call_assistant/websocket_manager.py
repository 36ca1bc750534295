"""
Session socket manager for the browser overlay.

This module implements the server side of ``/ws/session``. Each connected
overlay gets its own ``CallSessionController``; the browser streams its
microphone audio into that controller and receives transcript updates and
the final grade back. Sessions on different sockets share no state.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from call_assistant.audio.capture import StreamedAudioSource
from call_assistant.config.constants import (
    LOGGER_NAME,
    MESSAGE_TYPE_AUDIO_CHUNK,
    MESSAGE_TYPE_SESSION_START,
    MESSAGE_TYPE_SESSION_STOP,
)
from call_assistant.config.settings import AssistantSettings
from call_assistant.errors import CallAssistantError
from call_assistant.grading import GradingEngine, KeywordGradingEngine
from call_assistant.models.message_schemas import (
    AudioChunkMessage,
    OutgoingMessage,
    SessionEndedResponse,
    SessionErrorResponse,
    SessionStartedResponse,
    SessionStartMessage,
    SessionStopMessage,
    TranscriptUpdateMessage,
)
from call_assistant.models.session import SessionState
from call_assistant.services.dialer_client import DialerClient
from call_assistant.services.transcription_client import TranscriptionClient
from call_assistant.session.controller import CallSessionController, TranscriptCallback

logger = logging.getLogger(LOGGER_NAME)

ControllerFactory = Callable[[StreamedAudioSource, TranscriptCallback], CallSessionController]


class SessionConnection:
    """Per-socket state: the socket and the call session it is driving."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.controller: Optional[CallSessionController] = None
        self.audio_source: Optional[StreamedAudioSource] = None
        self.script: Optional[str] = None
        self.objections: Optional[Dict[str, Dict[str, List[str]]]] = None

    @property
    def has_active_session(self) -> bool:
        return self.controller is not None and self.controller.state is SessionState.ACTIVE

    async def send(self, message: OutgoingMessage) -> None:
        await self.websocket.send_text(message.model_dump_json())


HandlerFunc = Callable[[Dict[str, Any], SessionConnection], Awaitable[Optional[OutgoingMessage]]]


def error_response(error: Exception) -> SessionErrorResponse:
    return SessionErrorResponse(reason=str(error), errorType=type(error).__name__)


class SessionWebSocketManager:
    """Routes overlay messages to handlers and owns one controller per socket.

    Args:
        settings: Service settings
        dialer: Shared dialer client (connection pool only, no session state)
        transcriber: Shared transcription client
        grading_engine: Engine used to score finished calls that sent a script
        controller_factory: Builds the controller for a new session; tests
            substitute their own
    """

    def __init__(
        self,
        settings: AssistantSettings,
        dialer: Optional[DialerClient] = None,
        transcriber: Optional[TranscriptionClient] = None,
        grading_engine: Optional[GradingEngine] = None,
        controller_factory: Optional[ControllerFactory] = None,
    ):
        self.settings = settings
        self.dialer = dialer or DialerClient(settings)
        self.transcriber = transcriber or TranscriptionClient(settings)
        self.grading_engine = grading_engine or KeywordGradingEngine()
        self.controller_factory = controller_factory or self._build_controller
        self.connections: Set[SessionConnection] = set()

        self.handlers: Dict[str, HandlerFunc] = {
            MESSAGE_TYPE_SESSION_START: self.handle_session_start,
            MESSAGE_TYPE_AUDIO_CHUNK: self.handle_audio_chunk,
            MESSAGE_TYPE_SESSION_STOP: self.handle_session_stop,
        }

    @property
    def active_sessions(self) -> int:
        return sum(1 for connection in self.connections if connection.has_active_session)

    def _build_controller(
        self, audio_source: StreamedAudioSource, on_transcript_update: TranscriptCallback
    ) -> CallSessionController:
        return CallSessionController(
            self.settings,
            self.dialer,
            self.transcriber,
            audio_source,
            on_transcript_update=on_transcript_update,
        )

    async def handle_session_start(
        self, message: Dict[str, Any], connection: SessionConnection
    ) -> OutgoingMessage:
        """Start a call session for this socket."""
        if connection.controller is not None and connection.controller.state is not SessionState.ENDED:
            return SessionErrorResponse(
                reason="A call session is already running on this connection",
                errorType="SessionStateError",
            )

        try:
            start_message = SessionStartMessage(**message)
        except ValidationError as e:
            logger.error(f"Invalid session.start message: {e}")
            return SessionErrorResponse(reason="Invalid message format", errorType="ValidationError")

        audio_source = StreamedAudioSource(
            permission=start_message.microphonePermission,
            media_format=start_message.mediaFormat,
            sample_rate=start_message.sampleRate,
            channels=start_message.channels,
        )

        async def push_transcript(transcript: str) -> None:
            await connection.send(TranscriptUpdateMessage(transcript=transcript))

        controller = self.controller_factory(audio_source, push_transcript)
        try:
            session_id = await controller.start()
        except CallAssistantError as e:
            logger.error(f"Failed to start call session: {e}")
            return error_response(e)

        connection.controller = controller
        connection.audio_source = audio_source
        connection.script = start_message.script
        connection.objections = start_message.objections
        return SessionStartedResponse(sessionId=session_id)

    async def handle_audio_chunk(
        self, message: Dict[str, Any], connection: SessionConnection
    ) -> Optional[OutgoingMessage]:
        """Append streamed audio to the current segment, sealing it on ``segmentEnd``."""
        if not connection.has_active_session or connection.audio_source is None:
            logger.debug("Ignoring audio chunk without an active call session")
            return None
        try:
            chunk_message = AudioChunkMessage(**message)
        except ValidationError as e:
            logger.warning(f"Invalid audio.chunk message: {e}")
            return None
        connection.audio_source.feed(chunk_message.audio_bytes())
        if chunk_message.segmentEnd:
            await connection.controller.seal_segment()
        return None

    async def handle_session_stop(
        self, message: Dict[str, Any], connection: SessionConnection
    ) -> OutgoingMessage:
        """Stop the call session and report the transcript and grade."""
        try:
            SessionStopMessage(**message)
        except ValidationError as e:
            logger.error(f"Invalid session.stop message: {e}")
            return SessionErrorResponse(reason="Invalid message format", errorType="ValidationError")

        controller = connection.controller
        if controller is None or controller.state is not SessionState.ACTIVE:
            return SessionErrorResponse(reason="No active call session", errorType="SessionStateError")

        session_id = controller.session_id
        transcript = await controller.stop()

        grade = None
        if connection.script:
            result = controller.grade(self.grading_engine, connection.script, connection.objections or {})
            grade = result.model_dump()

        connection.audio_source = None
        return SessionEndedResponse(sessionId=session_id, transcript=transcript, grade=grade)

    async def handle_websocket(self, websocket: WebSocket) -> None:
        """Handle an overlay socket throughout its lifecycle.

        Messages are processed in order. A disconnect stops any session the
        socket was still running so its microphone and dialer session are
        released.
        """
        await websocket.accept()
        connection = SessionConnection(websocket)
        self.connections.add(connection)
        logger.info("Overlay session socket connected")

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    await connection.send(
                        SessionErrorResponse(reason="Invalid JSON", errorType="JSONDecodeError")
                    )
                    continue

                message_type = message.get("type") if isinstance(message, dict) else None
                handler = self.handlers.get(message_type)
                if handler is None:
                    logger.warning(f"Unhandled message type received: {message_type}")
                    continue

                if message_type != MESSAGE_TYPE_AUDIO_CHUNK:
                    logger.info(f"Received message type: {message_type}")

                response = await handler(message, connection)
                if response is not None:
                    await connection.send(response)
        except WebSocketDisconnect:
            logger.info("Overlay session socket disconnected")
        except Exception as e:
            logger.error(f"Error in overlay session socket: {e}", exc_info=True)
        finally:
            self.connections.discard(connection)
            if connection.controller is not None and connection.controller.state is SessionState.ACTIVE:
                logger.info("Stopping call session left running by closed socket")
                await connection.controller.stop()

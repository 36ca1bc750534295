import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from call_assistant.audio.capture import StreamedAudioSource
from call_assistant.config.constants import WEBM_MAGIC

from call_assistant.errors import (
    ConfigurationError,
    MicrophonePermissionError,
    RemoteSessionError,
    SessionStateError,
)
from call_assistant.grading import KeywordGradingEngine
from call_assistant.models.session import SessionState
from call_assistant.session.controller import CallSessionController

from fakes import FakeAudioSource, FakeDialer, ScriptedTranscriber, transcription_failure


def make_controller(settings, dialer=None, transcriber=None, audio_source=None, on_update=None):
    return CallSessionController(
        settings,
        dialer or FakeDialer(),
        transcriber or ScriptedTranscriber(),
        audio_source or FakeAudioSource(),
        on_transcript_update=on_update,
    )


async def seal(controller, audio_source, data):
    audio_source.feed(data)
    return await controller.seal_segment()


async def wait_for_attempt(transcriber, data):
    for _ in range(100):
        if data in transcriber.attempts:
            return
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_start_transitions_to_active(settings, dialer, audio_source):
    """Test that a successful start creates the remote session and opens the microphone"""
    controller = make_controller(settings, dialer=dialer, audio_source=audio_source)

    session_id = await controller.start()

    assert session_id == "session-1"
    assert controller.state is SessionState.ACTIVE
    assert controller.session_id == "session-1"
    assert dialer.created == 1
    assert audio_source.is_open

    await controller.stop()


@pytest.mark.asyncio
async def test_start_with_missing_credential_stays_idle(settings, dialer, audio_source):
    """Test that an empty credential fails before any network call"""
    settings = settings.model_copy(update={"transcription_api_key": ""})
    controller = make_controller(settings, dialer=dialer, audio_source=audio_source)

    with pytest.raises(ConfigurationError) as exc_info:
        await controller.start()

    assert "Speech-to-Text API key is required" in exc_info.value.problems
    assert controller.state is SessionState.IDLE
    assert dialer.created == 0
    assert audio_source.opened == 0


@pytest.mark.asyncio
async def test_start_with_malformed_dialer_key_stays_idle(settings, dialer):
    """Test that a dialer key that is not key:secret is rejected"""
    settings = settings.model_copy(update={"dialer_api_key": "not-a-key"})
    controller = make_controller(settings, dialer=dialer)

    with pytest.raises(ConfigurationError, match="Expected format: key:secret"):
        await controller.start()

    assert controller.state is SessionState.IDLE
    assert dialer.created == 0


@pytest.mark.asyncio
async def test_remote_session_failure_rolls_back(settings, audio_source):
    """Test that a dialer error returns the controller to Idle"""
    dialer = FakeDialer(fail_create=True)
    controller = make_controller(settings, dialer=dialer, audio_source=audio_source)

    with pytest.raises(RemoteSessionError):
        await controller.start()

    assert controller.state is SessionState.IDLE
    assert controller.session_id is None
    assert audio_source.opened == 0
    assert dialer.terminated == []


@pytest.mark.asyncio
async def test_microphone_denied_terminates_remote_session(settings, dialer):
    """Test that a denied microphone tears down the remote session that was already created"""
    audio_source = FakeAudioSource(deny=True)
    controller = make_controller(settings, dialer=dialer, audio_source=audio_source)

    with pytest.raises(MicrophonePermissionError):
        await controller.start()

    assert controller.state is SessionState.IDLE
    assert controller.session_id is None
    assert dialer.terminated == ["session-1"]
    assert not audio_source.is_open


@pytest.mark.asyncio
async def test_start_twice_is_rejected(settings):
    controller = make_controller(settings)
    await controller.start()

    with pytest.raises(SessionStateError):
        await controller.start()

    await controller.stop()


@pytest.mark.asyncio
async def test_transcript_keeps_capture_order(settings, audio_source):
    """Test that a slow first chunk still lands before faster later chunks"""
    transcriber = ScriptedTranscriber(delays={b"first": 0.05, b"second": 0.01})
    controller = make_controller(settings, transcriber=transcriber, audio_source=audio_source)
    await controller.start()

    await seal(controller, audio_source, b"first")
    await seal(controller, audio_source, b"second")
    await seal(controller, audio_source, b"third")
    await controller.wait_for_transcription()

    assert controller.transcript == "first second third"
    await controller.stop()


@pytest.mark.asyncio
async def test_chunk_sequence_numbers_increase(settings, audio_source):
    controller = make_controller(settings, audio_source=audio_source)
    await controller.start()

    first = await seal(controller, audio_source, b"one")
    second = await seal(controller, audio_source, b"two")

    assert (first.sequence, second.sequence) == (0, 1)
    assert first.media_format == audio_source.media_format
    await controller.stop()


@pytest.mark.asyncio
async def test_empty_segment_is_not_sealed(settings, audio_source):
    controller = make_controller(settings, audio_source=audio_source)
    await controller.start()

    assert await controller.seal_segment() is None
    assert controller.session.chunks_sealed == 0
    await controller.stop()


@pytest.mark.asyncio
async def test_retries_then_succeeds(settings, audio_source):
    """Test that a chunk failing twice is retried and its text kept in place"""
    transcriber = ScriptedTranscriber(
        script={b"two": [transcription_failure(), transcription_failure(), "two"]}
    )
    controller = make_controller(settings, transcriber=transcriber, audio_source=audio_source)
    await controller.start()

    await seal(controller, audio_source, b"one")
    await seal(controller, audio_source, b"two")
    await seal(controller, audio_source, b"three")
    await controller.wait_for_transcription()

    assert controller.transcript == "one two three"
    assert transcriber.attempts.count(b"two") == 3
    assert controller.session.chunks_dropped == 0
    await controller.stop()


@pytest.mark.asyncio
async def test_exhausted_retries_drop_chunk_and_keep_session_active(settings, audio_source):
    """Test that a chunk failing every attempt is dropped without ending the session"""
    failures = [transcription_failure() for _ in range(settings.max_retries + 1)]
    transcriber = ScriptedTranscriber(script={b"lost": failures})
    controller = make_controller(settings, transcriber=transcriber, audio_source=audio_source)
    await controller.start()

    await seal(controller, audio_source, b"before")
    await seal(controller, audio_source, b"lost")
    await seal(controller, audio_source, b"after")
    await controller.wait_for_transcription()

    assert controller.state is SessionState.ACTIVE
    assert controller.transcript == "before after"
    assert transcriber.attempts.count(b"lost") == settings.max_retries + 1
    assert controller.session.chunks_dropped == 1
    await controller.stop()


@pytest.mark.asyncio
async def test_zero_retries_makes_single_attempt(settings, audio_source):
    settings = settings.model_copy(update={"max_retries": 0})
    transcriber = ScriptedTranscriber(script={b"x": [transcription_failure()]})
    controller = make_controller(settings, transcriber=transcriber, audio_source=audio_source)
    await controller.start()

    await seal(controller, audio_source, b"x")
    await controller.wait_for_transcription()

    assert transcriber.attempts == [b"x"]
    assert controller.transcript == ""
    await controller.stop()


@pytest.mark.asyncio
async def test_blank_transcription_is_not_appended(settings, audio_source):
    transcriber = ScriptedTranscriber(script={b"silence": ["   "]})
    controller = make_controller(settings, transcriber=transcriber, audio_source=audio_source)
    await controller.start()

    await seal(controller, audio_source, b"silence")
    await seal(controller, audio_source, b"hello")
    await controller.wait_for_transcription()

    assert controller.session.transcript_parts == ["hello"]
    await controller.stop()


@pytest.mark.asyncio
async def test_transcript_updates_are_pushed(settings, audio_source):
    updates = []
    controller = make_controller(settings, audio_source=audio_source, on_update=updates.append)
    await controller.start()

    await seal(controller, audio_source, b"hello")
    await seal(controller, audio_source, b"there")
    await controller.wait_for_transcription()

    assert updates == ["hello", "hello there"]
    await controller.stop()


@pytest.mark.asyncio
async def test_failing_update_callback_does_not_stop_transcription(settings, audio_source):
    async def broken(transcript):
        raise RuntimeError("socket gone")

    controller = make_controller(settings, audio_source=audio_source, on_update=broken)
    await controller.start()

    await seal(controller, audio_source, b"hello")
    await seal(controller, audio_source, b"again")
    await controller.wait_for_transcription()

    assert controller.transcript == "hello again"
    await controller.stop()


@pytest.mark.asyncio
async def test_stop_flushes_final_segment(settings, audio_source, dialer):
    """Test that audio buffered since the last seal is transcribed on stop"""
    controller = make_controller(settings, dialer=dialer, audio_source=audio_source)
    await controller.start()

    await seal(controller, audio_source, b"hello")
    audio_source.feed(b"goodbye")
    transcript = await controller.stop()

    assert transcript == "hello goodbye"
    assert controller.state is SessionState.ENDED
    assert controller.session_id is None
    assert dialer.terminated == ["session-1"]
    assert audio_source.closed == 1


@pytest.mark.asyncio
async def test_stop_reaches_ended_when_remote_termination_fails(settings, audio_source):
    """Test that a failed remote terminate still releases the microphone"""
    dialer = FakeDialer(fail_terminate=True)
    controller = make_controller(settings, dialer=dialer, audio_source=audio_source)
    await controller.start()
    await seal(controller, audio_source, b"hello")

    transcript = await controller.stop()

    assert transcript == "hello"
    assert controller.state is SessionState.ENDED
    assert dialer.terminated == ["session-1"]
    assert not audio_source.is_open


@pytest.mark.asyncio
async def test_stop_abandons_transcription_after_drain_timeout(settings, audio_source):
    settings = settings.model_copy(update={"drain_timeout": 0.05})
    transcriber = ScriptedTranscriber(delays={b"slow": 10})
    controller = make_controller(settings, transcriber=transcriber, audio_source=audio_source)
    await controller.start()
    await seal(controller, audio_source, b"slow")
    audio_source.feed(b"queued")

    transcript = await controller.stop()

    assert transcript == ""
    assert controller.state is SessionState.ENDED
    assert controller.session.chunks_dropped == 2
    assert not audio_source.is_open


@pytest.mark.asyncio
async def test_stop_is_idempotent(settings, dialer, audio_source):
    controller = make_controller(settings, dialer=dialer, audio_source=audio_source)
    await controller.start()
    await seal(controller, audio_source, b"hello")

    first = await controller.stop()
    second = await controller.stop()

    assert first == second == "hello"
    assert dialer.terminated == ["session-1"]
    assert audio_source.closed == 1


@pytest.mark.asyncio
async def test_concurrent_stops_share_teardown(settings, dialer):
    controller = make_controller(settings, dialer=dialer)
    await controller.start()

    results = await asyncio.gather(controller.stop(), controller.stop())

    assert results == ["", ""]
    assert dialer.terminated == ["session-1"]


@pytest.mark.asyncio
async def test_stop_from_idle_ends_session(settings, dialer):
    controller = make_controller(settings, dialer=dialer)

    assert await controller.stop() == ""
    assert controller.state is SessionState.ENDED
    assert dialer.terminated == []


@pytest.mark.asyncio
async def test_seal_requires_active_session(settings):
    controller = make_controller(settings)

    with pytest.raises(SessionStateError):
        await controller.seal_segment()


@pytest.mark.asyncio
async def test_capture_loop_seals_on_interval(settings, audio_source):
    """Test that the capture task seals segments on its own"""
    settings = settings.model_copy(update={"chunk_interval": 0.01})
    controller = make_controller(settings, audio_source=audio_source)
    await controller.start()

    audio_source.feed(b"ticked")
    for _ in range(100):
        if controller.session.chunks_sealed:
            break
        await asyncio.sleep(0.01)
    await controller.wait_for_transcription()

    assert controller.session.chunks_sealed == 1
    assert controller.transcript == "ticked"
    await controller.stop()


@pytest.mark.asyncio
async def test_retry_delays_double(settings, audio_source):
    """Test that retry n waits retry_base_delay * 2 ** (n - 1) seconds"""
    settings = settings.model_copy(update={"retry_base_delay": 1})
    failures = [transcription_failure() for _ in range(4)]
    transcriber = ScriptedTranscriber(script={b"flaky": failures})
    controller = make_controller(settings, transcriber=transcriber, audio_source=audio_source)

    with patch.object(controller, "_wait_before_retry", new=AsyncMock()) as wait:
        await controller.start()
        await seal(controller, audio_source, b"flaky")
        await controller.wait_for_transcription()

    assert [call.args[0] for call in wait.await_args_list] == [1.0, 2.0, 4.0]
    assert controller.session.chunks_dropped == 1
    await controller.stop()


@pytest.mark.asyncio
async def test_stop_cuts_retry_backoff_short(settings, audio_source):
    """Test that a chunk waiting out a long backoff is retried as soon as stop is called"""
    settings = settings.model_copy(update={"retry_base_delay": 100})
    transcriber = ScriptedTranscriber(
        script={b"hello": [transcription_failure(), transcription_failure(), "hello"]}
    )
    controller = make_controller(settings, transcriber=transcriber, audio_source=audio_source)
    await controller.start()
    await seal(controller, audio_source, b"hello")
    await wait_for_attempt(transcriber, b"hello")

    transcript = await asyncio.wait_for(controller.stop(), timeout=2)

    assert transcript == "hello"
    assert transcriber.attempts.count(b"hello") == 3
    assert controller.session.chunks_dropped == 0


@pytest.mark.asyncio
async def test_backlog_drops_oldest_pending_chunk(settings, audio_source):
    """Test that the queue stays bounded while the worker is held up"""
    settings = settings.model_copy(update={"max_pending_chunks": 2})
    transcriber = ScriptedTranscriber(delays={b"a": 0.05})
    controller = make_controller(settings, transcriber=transcriber, audio_source=audio_source)
    await controller.start()

    await seal(controller, audio_source, b"a")
    await wait_for_attempt(transcriber, b"a")
    for data in (b"b", b"c", b"d"):
        await seal(controller, audio_source, data)
    await controller.wait_for_transcription()

    assert controller.transcript == "a c d"
    assert controller.session.chunks_sealed == 4
    assert controller.session.chunks_dropped == 1
    assert b"b" not in transcriber.attempts
    await controller.stop()


@pytest.mark.asyncio
async def test_streamed_source_is_sealed_by_its_owner_only(settings):
    """Test that no timer cuts a client-streamed recording mid-segment"""
    settings = settings.model_copy(update={"chunk_interval": 0.01})
    segment = WEBM_MAGIC + b"segment"
    transcriber = ScriptedTranscriber(script={segment: ["hello"]})
    source = StreamedAudioSource(permission="granted")
    controller = make_controller(settings, transcriber=transcriber, audio_source=source)
    await controller.start()

    source.feed(segment)
    await asyncio.sleep(0.05)
    assert controller.session.chunks_sealed == 0

    chunk = await controller.seal_segment()
    await controller.wait_for_transcription()

    assert chunk.data == segment
    assert controller.transcript == "hello"
    await controller.stop()


@pytest.mark.asyncio
async def test_grade_requires_ended_session(settings):
    controller = make_controller(settings)
    await controller.start()

    with pytest.raises(SessionStateError):
        controller.grade(KeywordGradingEngine(), "hello", {})

    await controller.stop()
    result = controller.grade(KeywordGradingEngine(), "hello", {})
    assert 1 <= result.grades.overall <= 10

import httpx
import pytest

from call_assistant.config.constants import AUDIO_FORMAT_WAV
from call_assistant.errors import TranscriptionError
from call_assistant.models.session import AudioChunk
from call_assistant.services.transcription_client import TranscriptionClient


def make_client(settings, handler):
    return TranscriptionClient(settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.fixture
def chunk():
    return AudioChunk(data=b"\x1aE\xdf\xa3webm-bytes", sequence=3)


@pytest.mark.asyncio
async def test_transcribe_uploads_chunk(settings, chunk):
    """Test that the chunk is sent as a multipart upload with the model selector"""
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"text": "  hello there  "})

    client = make_client(settings, handler)

    text = await client.transcribe(chunk)

    assert text == "hello there"
    request = requests[0]
    assert str(request.url) == settings.transcription_url
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    body = request.content
    assert b'name="model"' in body
    assert b"whisper-1" in body
    assert b'filename="audio.webm"' in body
    assert chunk.data in body


@pytest.mark.asyncio
async def test_transcribe_names_wav_upload(settings):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"text": "hi"})

    client = make_client(settings, handler)

    await client.transcribe(AudioChunk(data=b"RIFF", media_format=AUDIO_FORMAT_WAV))

    assert b'filename="audio.wav"' in requests[0].content


@pytest.mark.asyncio
async def test_empty_text_is_not_an_error(settings, chunk):
    client = make_client(settings, lambda request: httpx.Response(200, json={"text": ""}))

    assert await client.transcribe(chunk) == ""


@pytest.mark.asyncio
async def test_provider_error_message_is_kept(settings, chunk):
    def handler(request):
        return httpx.Response(429, json={"error": {"message": "Rate limit reached"}})

    client = make_client(settings, handler)

    with pytest.raises(TranscriptionError) as exc_info:
        await client.transcribe(chunk)

    assert str(exc_info.value) == "Rate limit reached"
    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_unreadable_error_body(settings, chunk):
    client = make_client(settings, lambda request: httpx.Response(502, text="Bad gateway"))

    with pytest.raises(TranscriptionError, match="Failed to transcribe audio"):
        await client.transcribe(chunk)


@pytest.mark.asyncio
async def test_transport_failure(settings, chunk):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(settings, handler)

    with pytest.raises(TranscriptionError, match="request failed"):
        await client.transcribe(chunk)

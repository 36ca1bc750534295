import json
from unittest.mock import AsyncMock, patch

import pytest

from call_assistant.models.telephony_events import CallCompletedEvent
from call_assistant.services.status_client import CallStatusClient

URL = "ws://localhost:8000/ws/events"


class FakeFeedSocket:
    """Async-iterable stand-in for a connected feed socket"""

    def __init__(self, frames):
        self.frames = frames
        self.close = AsyncMock()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame


def event_frame(event):
    return json.dumps({"type": "telephony.event", "event": event.model_dump(mode="json")})


def test_parse_frame_returns_event():
    event = CallCompletedEvent(call_id="c-1", duration=42, recording_url="https://r.example.com/1.mp3")

    assert CallStatusClient.parse_frame(event_frame(event)) == event


@pytest.mark.parametrize(
    "frame",
    [
        "not json",
        json.dumps({"type": "other", "event": {}}),
        json.dumps({"type": "telephony.event", "event": {"kind": "unknown", "call_id": "c-1"}}),
        json.dumps(["telephony.event"]),
    ],
)
def test_parse_frame_ignores_other_frames(frame):
    assert CallStatusClient.parse_frame(frame) is None


@pytest.mark.asyncio
async def test_connect_failure_returns_false():
    client = CallStatusClient(URL)

    with patch("call_assistant.services.status_client.websockets.connect", AsyncMock(side_effect=OSError("refused"))):
        assert await client.connect() is False

    assert client.websocket is None


@pytest.mark.asyncio
async def test_listen_hands_events_to_handler():
    """Test that each event frame reaches the handler and other frames are skipped"""
    event = CallCompletedEvent(call_id="c-1")
    socket = FakeFeedSocket([event_frame(event), "garbage", event_frame(event)])
    client = CallStatusClient(URL)
    handler = AsyncMock()

    with patch("call_assistant.services.status_client.websockets.connect", AsyncMock(return_value=socket)):
        assert await client.connect() is True
    await client.listen(handler)

    assert handler.await_count == 2
    handler.assert_awaited_with(event)
    assert client.websocket is None


@pytest.mark.asyncio
async def test_listen_without_connection():
    client = CallStatusClient(URL)
    handler = AsyncMock()

    await client.listen(handler)

    handler.assert_not_awaited()


@pytest.mark.asyncio
async def test_close():
    socket = FakeFeedSocket([])
    client = CallStatusClient(URL)
    client.websocket = socket

    await client.close()

    socket.close.assert_awaited_once()
    assert client.websocket is None

"""
Services module for external API integrations.

Key components:
- dialer_client: ``DialerClient`` creates and terminates recorded sessions on
  the remote dialer provider.
- transcription_client: ``TranscriptionClient`` posts sealed audio chunks to a
  Whisper-compatible speech-to-text endpoint.
- status_client: ``CallStatusClient`` subscribes to the service's own live
  telephony event feed over WebSocket.

Usage examples:
```python
from call_assistant.services.status_client import CallStatusClient

async def show_events():
    client = CallStatusClient("ws://localhost:8000/ws/events")
    if await client.connect():
        async def on_event(event):
            print(event.kind.value, event.call_id, event.status)
        await client.listen(on_event)
```
"""

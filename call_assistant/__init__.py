"""
Call Assistant - telephony webhook relay and live call transcription

Backend for a browser overlay that shows an agent the call script, checklist
and objection cues during a live phone call. The service relays dialer
provider events to connected panels and turns the agent's microphone audio
into a running transcript that is graded when the call ends.

Architecture Overview:
- FastAPI server exposing the signed provider webhook and two WebSocket endpoints
- Webhook dispatcher: HMAC verification, payload normalization, listener fan-out
- Call session controller: dialer session lifecycle, chunked capture and
  ordered transcription with bounded retry
- Keyword grading of the finished transcript

Key Components:
- audio: Capture sources (browser-streamed audio, local PyAudio microphone)
- config: Constants, logging setup and environment settings
- models: Pydantic models for events, sessions, grades and socket messages
- services: HTTP clients for the dialer and speech-to-text providers, and a
  client for the live event feed
- session: The call session controller
- webhooks: Signature verification, normalization and dispatch
- websocket_manager: Drives one call session per overlay socket

Getting Started:
1. Set up environment variables (or a .env file):
   - JUSTCALL_API_KEY: Dialer credentials as key:secret
   - OPENAI_API_KEY: Speech-to-text API key
   - JUSTCALL_WEBHOOK_SECRET: Shared secret for webhook signatures
   - WEBHOOK_URL: Public URL of this service's /webhook endpoint

2. Start the server:
   ```bash
   python run.py
   ```
"""

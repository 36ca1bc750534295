"""
FastAPI server for the call assistant.

This module is the composition root of the service. It builds the settings,
the webhook dispatcher with its event broadcaster listener, and the overlay
session manager, and exposes them over HTTP and WebSocket:

- ``POST /webhook``: signed dialer provider events
- ``WS /ws/events``: live canonical event feed for status panels
- ``WS /ws/session``: call session control and audio streaming for the overlay
- ``GET /health`` and ``GET /``: monitoring and service information
"""

import json
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Header, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from call_assistant.broadcaster import EventBroadcaster
from call_assistant.config.constants import SIGNATURE_HEADER
from call_assistant.config.logging_config import configure_logging
from call_assistant.config.settings import AssistantSettings
from call_assistant.errors import SignatureError
from call_assistant.webhooks.dispatcher import WebhookDispatcher
from call_assistant.websocket_manager import SessionWebSocketManager

# Configure logging
logger = configure_logging()

settings = AssistantSettings.from_env()

dispatcher = WebhookDispatcher(settings.webhook_secret)
broadcaster = EventBroadcaster()
dispatcher.add_listener(broadcaster)

session_manager = SessionWebSocketManager(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await session_manager.dialer.aclose()
    await session_manager.transcriber.aclose()
    logger.info("Provider HTTP clients closed")


app = FastAPI(
    title="Call Assistant",
    description="Telephony webhook relay and live call transcription for the call assistant overlay",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/webhook")
async def webhook(request: Request, signature: Optional[str] = Header(None, alias=SIGNATURE_HEADER)):
    """Receive a dialer provider event.

    The signature is checked against the raw body before anything else.
    Once it verifies, the response is a success acknowledgment regardless of
    what listeners do, so the provider does not retry on listener bugs.
    """
    raw_body = await request.body()
    try:
        dispatcher.authenticate(raw_body, signature)
        try:
            payload = json.loads(raw_body)
        except ValueError:
            return JSONResponse(status_code=400, content={"error": "Invalid JSON payload"})

        await dispatcher.process(payload)
        return JSONResponse(status_code=200, content={"status": "success"})
    except SignatureError:
        return JSONResponse(status_code=401, content={"error": "Invalid signature"})
    except Exception as e:
        logger.error(f"Webhook processing error: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": str(e)})


@app.websocket("/ws/events")
async def events_endpoint(websocket: WebSocket):
    """Live feed of canonical telephony events for status panels."""
    await websocket.accept()
    broadcaster.subscribe(websocket)
    try:
        while True:
            # Subscribers do not send anything meaningful; reading detects disconnects
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unsubscribe(websocket)


@app.websocket("/ws/session")
async def session_endpoint(websocket: WebSocket):
    """Call session control and audio streaming for the browser overlay."""
    await session_manager.handle_websocket(websocket)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Status information including which credentials are configured
        and how many listeners, subscribers and sessions are live.
    """
    return {
        "status": "healthy",
        "dialer_api_key_configured": bool(settings.dialer_api_key),
        "transcription_api_key_configured": bool(settings.transcription_api_key),
        "webhook_secret_configured": bool(settings.webhook_secret),
        "listeners": len(dispatcher.listeners),
        "event_subscribers": len(broadcaster.subscribers),
        "active_sessions": session_manager.active_sessions,
    }


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API."""
    return {
        "name": "Call Assistant",
        "description": "Telephony webhook relay and live call transcription for the call assistant overlay",
        "version": "1.0.0",
        "endpoints": {
            "/webhook": "Signed dialer provider webhook",
            "/ws/events": "Live telephony event feed",
            "/ws/session": "Call session control and audio streaming",
            "/health": "Health check endpoint",
        },
    }


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on http://{settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, http="h11")

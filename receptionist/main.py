"""
FastAPI server for the Twilio to OpenAI Realtime receptionist relay.

This module initializes and configures the FastAPI application that the
telephony provider talks to:

- ``POST /voice`` answers inbound calls with TwiML that streams call audio to
  the media WebSocket
- ``/twilio-media`` is the media stream WebSocket handled by the relay
- ``POST /transfer`` and ``POST /goodbye`` serve the TwiML that live calls are
  redirected to by the AI's control lines
- ``POST /stream-status`` receives media stream status callbacks
"""

from contextlib import asynccontextmanager
from pathlib import Path

import dotenv
from fastapi import FastAPI, Request, Response, WebSocket

from receptionist.bot.coordinator import RelayCoordinator
from receptionist.config.constants import MEDIA_STREAM_PATH
from receptionist.config.logging_config import configure_logging
from receptionist.config.settings import load_settings
from receptionist.services.call_control import (
    build_goodbye_twiml,
    build_stream_twiml,
    build_transfer_twiml,
)
from receptionist.websocket_manager import MediaStreamManager

# Load environment variables from .env file if it exists
env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

settings = load_settings()

# Configure logging
logger = configure_logging(settings.log_level)

coordinator = RelayCoordinator(settings)
media_manager = MediaStreamManager(coordinator)

TWIML_MEDIA_TYPE = "text/xml"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the relay on startup and tear live calls down on shutdown."""
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set - calls will hear silence only")
    if not settings.has_twilio_credentials:
        logger.warning("Twilio credentials not set - transfers and SMS alerts are disabled")
    await coordinator.start()
    yield
    await coordinator.stop()


# Create FastAPI application
app = FastAPI(
    title="Realtime Receptionist Relay",
    description="Relays Twilio Media Streams to the OpenAI Realtime API",
    version="1.0.0",
    lifespan=lifespan,
)


@app.websocket(MEDIA_STREAM_PATH)
async def media_stream_endpoint(websocket: WebSocket):
    """Media stream WebSocket for live call audio.

    The telephony provider connects here for every call answered by
    ``/voice`` and streams connected, start, media, mark and stop events.
    """
    await media_manager.handle_websocket(websocket)


@app.post("/voice")
async def voice_webhook():
    """Answer an inbound call by connecting its audio to the media stream."""
    logger.info(f"[HTTP] /voice -> streaming to {settings.media_stream_url}")
    return Response(content=build_stream_twiml(settings), media_type=TWIML_MEDIA_TYPE)


@app.post("/stream-status")
async def stream_status(request: Request):
    """Log media stream status callbacks."""
    form = await request.form()
    logger.info(f"[HTTP] stream status: {dict(form)}")
    return Response(status_code=200)


@app.post("/transfer")
async def transfer_twiml():
    """TwiML a call is redirected to when the caller asks for a person."""
    return Response(content=build_transfer_twiml(settings), media_type=TWIML_MEDIA_TYPE)


@app.post("/goodbye")
async def goodbye_twiml():
    """TwiML a call is redirected to when the conversation is complete."""
    return Response(content=build_goodbye_twiml(), media_type=TWIML_MEDIA_TYPE)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Status information indicating the server is operational.

    This endpoint can be used by load balancers or monitoring tools
    to verify the service is running and responsive.
    """
    return {
        "status": "healthy",
        "openai_api_key_configured": bool(settings.openai_api_key),
        "twilio_configured": settings.has_twilio_credentials,
        "upstream_mode": settings.upstream_mode,
        "upstream_ready": coordinator.upstream_ready,
        "active_calls": coordinator.active_call_count,
    }


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API.

    Returns:
        dict: Basic information about the API and its purpose.
    """
    return {
        "name": "Realtime Receptionist Relay",
        "description": "Relays Twilio Media Streams to the OpenAI Realtime API",
        "version": "1.0.0",
        "endpoints": {
            "/voice": "Inbound call webhook returning TwiML",
            MEDIA_STREAM_PATH: "Media stream WebSocket",
            "/transfer": "TwiML for operator transfer",
            "/goodbye": "TwiML for ending the call",
            "/stream-status": "Media stream status callback",
            "/health": "Health check endpoint",
        },
    }


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on http://{settings.host}:{settings.port}")
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        ws_ping_interval=5,  # More frequent pings to keep connections alive
        ws_max_size=16777216,  # 16MB - large enough for audio chunks
        ws_ping_timeout=20,  # Timeout for pings to detect dead connections
        http="h11",
    )

"""
Launcher for the receptionist relay.

Reads the relay settings from the environment (and ``.env``), lets the command
line override the bind address, log level and upstream mode, then serves
``receptionist.main:app`` with uvicorn tuned for streaming call audio.

Usage:
    python run.py [--port PORT] [--host HOST] [--log-level LEVEL]
                  [--upstream-mode {per_call,shared}] [--reload]
"""

import argparse
import os

import dotenv
import uvicorn

from receptionist.config.constants import UPSTREAM_MODE_PER_CALL, UPSTREAM_MODE_SHARED
from receptionist.config.logging_config import configure_logging
from receptionist.config.settings import load_settings

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# uvicorn WebSocket tuning for the media stream
WS_PING_INTERVAL = 5
WS_PING_TIMEOUT = 20
WS_MAX_SIZE = 16 * 1024 * 1024


def parse_args(settings):
    parser = argparse.ArgumentParser(description="Start the receptionist media relay")
    parser.add_argument("--host", default=settings.host, help=f"Bind address (default: {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port, help=f"Port (default: {settings.port})")
    parser.add_argument(
        "--log-level",
        default=settings.log_level.upper(),
        choices=LOG_LEVELS,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--upstream-mode",
        default=settings.upstream_mode,
        choices=[UPSTREAM_MODE_PER_CALL, UPSTREAM_MODE_SHARED],
        help="One AI connection per call, or one shared warm connection",
    )
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    return parser.parse_args()


def main():
    dotenv.load_dotenv()
    args = parse_args(load_settings())

    # The app module builds its settings from the environment at import time
    os.environ["LOG_LEVEL"] = args.log_level
    os.environ["UPSTREAM_MODE"] = args.upstream_mode
    settings = load_settings()
    logger = configure_logging(settings.log_level)

    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; callers will only hear silence until it is")

    logger.info(f"Starting relay on http://{args.host}:{args.port} (upstream mode: {settings.upstream_mode})")
    logger.info(f"Twilio should stream to {settings.media_stream_url}")

    uvicorn.run(
        "receptionist.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        http="h11",
        # Request logging is done by the relay itself
        access_log=False,
        ws_ping_interval=WS_PING_INTERVAL,
        ws_ping_timeout=WS_PING_TIMEOUT,
        ws_max_size=WS_MAX_SIZE,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()

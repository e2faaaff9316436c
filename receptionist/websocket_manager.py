"""
WebSocket connection manager for the telephony media stream.

This module implements the server side of the media stream WebSocket:
- Accept each media connection and create a call session for it
- Route incoming events to the appropriate handler functions
- Run the session worker alongside the reader
- Tear the session down when the stream stops or the socket closes
"""

import asyncio
import json
import logging
import socket
from typing import Any, Awaitable, Callable, Dict

from fastapi import WebSocket, WebSocketDisconnect

from receptionist.bot.call_session import CallSession, EventKind, SessionEvent
from receptionist.bot.coordinator import RelayCoordinator
from receptionist.bot.telephony_link import TelephonyLink
from receptionist.config.constants import (
    EVENT_CONNECTED,
    EVENT_MARK,
    EVENT_MEDIA,
    EVENT_START,
    EVENT_STOP,
    LOGGER_NAME,
)
from receptionist.handlers.media_handlers import (
    handle_connected,
    handle_mark,
    handle_media,
    handle_start,
    handle_stop,
)

logger = logging.getLogger(LOGGER_NAME)

# Seconds to wait for a session to finish its teardown after the socket ends
SESSION_DRAIN_TIMEOUT = 15

# Type hint for handler functions
HandlerFunc = Callable[[Dict[str, Any], CallSession], Awaitable[None]]


class MediaStreamManager:
    """Manages media stream WebSockets and routes events to handlers.

    Each event is routed to a handler based on its "event" field. Unknown
    events and malformed frames are logged and skipped.
    """

    def __init__(self, coordinator: RelayCoordinator):
        self.coordinator = coordinator

        # Define handlers dictionary
        self.handlers: Dict[str, HandlerFunc] = {
            EVENT_CONNECTED: handle_connected,
            EVENT_START: handle_start,
            EVENT_MEDIA: handle_media,
            EVENT_MARK: handle_mark,
            EVENT_STOP: handle_stop,
        }

    async def _optimize_socket(self, websocket: WebSocket) -> None:
        """
        Optimize the WebSocket's underlying TCP socket for low-latency transmission.

        Args:
            websocket: The FastAPI WebSocket connection
        """
        try:
            client = websocket.client
            if hasattr(client, "sock") and client.sock is not None:
                # Disable Nagle's algorithm to send packets immediately
                client.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                logger.info("Optimized socket: TCP_NODELAY enabled for low latency")
        except Exception as e:
            logger.warning(f"Could not optimize socket: {e}")

    async def handle_websocket(self, websocket: WebSocket):
        """Handle a media stream WebSocket throughout its lifecycle.

        Args:
            websocket (WebSocket): The FastAPI WebSocket connection object

        This method:
        1. Accepts the WebSocket connection and creates the call session
        2. Reads events in a loop and routes each to its handler
        3. On stop or disconnect, terminates the session and waits for its teardown
        """
        await websocket.accept()
        await self._optimize_socket(websocket)
        logger.info("[WS] media stream CONNECTED")

        link = TelephonyLink(websocket)
        link.start()
        session = await self.coordinator.create_session(link)
        worker = asyncio.create_task(session.run())

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message_dict = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning(f"Received invalid JSON on media stream: {data[:100]}...")
                    continue
                if not isinstance(message_dict, dict):
                    logger.warning("Ignoring non-object frame on media stream")
                    continue

                event_type = message_dict.get("event")
                handler = self.handlers.get(event_type)
                if handler is None:
                    logger.warning(f"Unknown event type received: {event_type}")
                    continue

                await handler(message_dict, session)
                if event_type == EVENT_STOP:
                    break

        except WebSocketDisconnect:
            logger.info("[WS] media stream CLOSED by peer")
        except Exception as e:
            logger.error(f"Error in media WebSocket connection: {e}", exc_info=True)
        finally:
            try:
                await asyncio.wait_for(
                    self._drain_session(session, worker), timeout=SESSION_DRAIN_TIMEOUT
                )
            except asyncio.TimeoutError:
                logger.warning("Session teardown timed out, cancelling worker")
            except Exception as e:
                logger.error(f"Session worker failed during teardown: {e}", exc_info=True)
            finally:
                if not worker.done():
                    worker.cancel()
                    await asyncio.gather(worker, return_exceptions=True)
                await session.close("media stream teardown")
                self.coordinator.release(session)
                await link.close()
            try:
                await websocket.close()
            except Exception as e:
                # Already closed by the peer
                logger.debug(f"WebSocket close skipped: {e}")
            logger.info("[WS] media stream closed")

    async def _drain_session(self, session: CallSession, worker: asyncio.Task) -> None:
        """Queue the socket-closed event and wait for the worker to finish termination."""
        await session.submit(SessionEvent(EventKind.TELEPHONY_CLOSED))
        await worker

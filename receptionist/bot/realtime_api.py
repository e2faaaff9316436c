"""
Connection manager for the OpenAI Realtime API.

A ``RealtimeConnection`` owns one long-lived WebSocket to the speech model. It
configures every new connection instance before any audio is sent on it, keeps
an ordered outbound queue so callers never wait on socket sends, fans inbound
frames out to subscribed call sessions, and recovers from failures with a fixed
backoff plus a periodic safety re-check.

The same class serves both deployments: one shared warm connection for all
calls, or one connection per call with a single subscriber.
"""

import asyncio
import json
import logging
import time
from typing import Any, Callable, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from receptionist.config.constants import DEFAULT_REALTIME_URL, LOGGER_NAME
from receptionist.models.openai_schemas import (
    RealtimeBaseMessage,
    SessionConfig,
    SessionUpdateMessage,
)

logger = logging.getLogger(LOGGER_NAME)

# Constants for reconnection
RECONNECT_DELAY = 2  # seconds
RECHECK_INTERVAL = 60  # seconds
CONNECTION_TIMEOUT = 30  # seconds

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_PING_INTERVAL = 5  # 5 seconds between pings
WS_PING_TIMEOUT = 10


def build_session_config(settings) -> SessionConfig:
    """Session configuration for the receptionist persona."""
    return SessionConfig(instructions=settings.instructions, voice=settings.voice)


class RealtimeConnection:
    """
    Client to connect to OpenAI Realtime API over WebSocket and keep it healthy.

    Subscribers are plain objects exposing ``on_upstream_open()``,
    ``on_upstream_message(frame)`` and ``on_upstream_closed()``. These callbacks
    are synchronous and must not block; sessions just enqueue the event.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        session_config: SessionConfig,
        url: str = DEFAULT_REALTIME_URL,
        reconnect_delay: float = RECONNECT_DELAY,
        recheck_interval: float = RECHECK_INTERVAL,
        name: str = "realtime",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api_key = api_key
        self.model = model
        self.session_config = session_config
        self.url = url
        self.reconnect_delay = reconnect_delay
        self.recheck_interval = recheck_interval
        self.name = name
        self._clock = clock

        self.ws = None
        self.ready = False
        self.configured = False
        self.reconnect_attempts = 0
        self.instance_count = 0

        self._connecting = False
        self._is_closing = False
        self._next_attempt_at = 0.0
        self._connect_task: Optional[asyncio.Task] = None
        self._recv_task: Optional[asyncio.Task] = None
        self._send_task: Optional[asyncio.Task] = None
        self._send_queue: Optional[asyncio.Queue] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._watchdog_task: Optional[asyncio.Task] = None

        self._subscribers: List[Any] = []
        self._subscribers_lock = asyncio.Lock()
        logger.info(f"[AI:{name}] RealtimeConnection initialized with model: {model}")

    @property
    def connecting(self) -> bool:
        return self._connecting

    @property
    def closing(self) -> bool:
        return self._is_closing

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def start(self) -> None:
        """Open the connection and start the periodic safety re-check."""
        self.ensure_connected()
        if self._watchdog_task is None or self._watchdog_task.done():
            self._watchdog_task = asyncio.create_task(self._watchdog())

    def ensure_connected(self) -> bool:
        """
        Start a connection attempt unless one is unnecessary or not allowed yet.

        Does nothing while a connection is open, while an attempt is in flight,
        while the manager is closing, or inside the backoff window that follows
        a close.

        Returns:
            bool: True if a new connection attempt was started
        """
        if self._is_closing:
            return False
        if self.ws is not None or self._connecting:
            return False
        if self._clock() < self._next_attempt_at:
            logger.debug(f"[AI:{self.name}] reconnect backoff in effect, not connecting yet")
            return False
        if not self.api_key:
            logger.error("OPENAI_API_KEY environment variable not set")
            return False

        self._connecting = True
        self._connect_task = asyncio.create_task(self._connect())
        return True

    async def _connect(self) -> None:
        url = f"{self.url}?model={self.model}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

        try:
            logger.info(f"[AI:{self.name}] Connecting to OpenAI Realtime API with model: {self.model}")
            connection_start = time.time()
            ws = await asyncio.wait_for(
                websockets.connect(
                    url,
                    max_size=WS_MAX_SIZE,
                    ping_interval=WS_PING_INTERVAL,
                    ping_timeout=WS_PING_TIMEOUT,
                    compression=None,  # Disable compression for lower latency
                    additional_headers=headers,
                ),
                timeout=CONNECTION_TIMEOUT,
            )
            logger.debug(
                f"[AI:{self.name}] WebSocket connection established in {time.time() - connection_start:.2f} seconds"
            )
        except asyncio.CancelledError:
            self._connecting = False
            raise
        except asyncio.TimeoutError:
            logger.error(
                f"[AI:{self.name}] Timeout while connecting to OpenAI Realtime API (after {CONNECTION_TIMEOUT}s)"
            )
            self._connecting = False
            self._handle_close(None, "connect timeout")
            return
        except Exception as e:
            logger.error(f"[AI:{self.name}] Failed to connect to OpenAI Realtime API: {e}")
            self._connecting = False
            self._handle_close(None, str(e))
            return

        self._connecting = False
        if self._is_closing:
            await ws.close()
            return
        await self._handle_open(ws)

    async def _handle_open(self, ws) -> None:
        """Configure the new connection instance, then mark it ready."""
        self.ws = ws
        self.instance_count += 1
        self.configured = False

        update = SessionUpdateMessage(session=self.session_config)
        try:
            await ws.send(update.to_json())
        except Exception as e:
            logger.error(f"[AI:{self.name}] Failed to send session configuration: {e}")
            try:
                await ws.close()
            except Exception as close_error:
                logger.debug(f"[AI:{self.name}] Close after failed configuration: {close_error}")
            self._handle_close(None, f"configuration failed: {e}")
            return

        self.configured = True
        self.ready = True
        self.reconnect_attempts = 0
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        self._send_queue = asyncio.Queue()
        self._send_task = asyncio.create_task(self._send_loop(ws, self._send_queue))
        self._recv_task = asyncio.create_task(self._recv_loop(ws))
        logger.info(f"[AI:{self.name}] OPEN (instance {self.instance_count})")
        self._notify("on_upstream_open")

    def _handle_close(self, code: Optional[int], reason: str) -> None:
        """
        Clear readiness and schedule the next connection attempt after the backoff.

        Runs synchronously so no other task can observe a closed connection
        that still looks ready.
        """
        was_ready = self.ready
        self.ready = False
        self.configured = False
        self.ws = None
        self._send_queue = None
        if self._send_task is not None:
            self._send_task.cancel()
            self._send_task = None

        logger.warning(f"[AI:{self.name}] CLOSED code={code} reason={reason or '-'}")
        if was_ready:
            self._notify("on_upstream_closed")

        if self._is_closing:
            return

        self.reconnect_attempts += 1
        self._next_attempt_at = self._clock() + self.reconnect_delay
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._reconnect)
        logger.info(
            f"[AI:{self.name}] Reconnecting (attempt {self.reconnect_attempts}) in {self.reconnect_delay} seconds"
        )

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        # The timer itself marks the end of the backoff window
        self._next_attempt_at = 0.0
        self.ensure_connected()

    async def _send_loop(self, ws, queue: asyncio.Queue) -> None:
        """Drain the outbound queue in order for one connection instance."""
        try:
            while True:
                payload = await queue.get()
                try:
                    await ws.send(payload)
                except ConnectionClosed as e:
                    logger.warning(f"[AI:{self.name}] Connection closed while sending: {e}")
                    return
                except Exception as e:
                    logger.error(f"[AI:{self.name}] Error sending message: {e}")
        except asyncio.CancelledError:
            pass

    async def _recv_loop(self, ws) -> None:
        """Receive frames until the socket closes, then hand over to the close handler."""
        code, reason = None, ""
        try:
            async for raw in ws:
                self._dispatch(raw)
            code = getattr(ws, "close_code", None)
            reason = getattr(ws, "close_reason", None) or ""
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            if e.rcvd is not None:
                code, reason = e.rcvd.code, e.rcvd.reason
            else:
                reason = str(e)
        except Exception as e:
            logger.error(f"[AI:{self.name}] Error in receive loop: {e}", exc_info=True)
            reason = str(e)

        if self.ws is ws:
            self._handle_close(code, reason)

    def _dispatch(self, raw) -> None:
        if isinstance(raw, bytes):
            logger.debug(f"[AI:{self.name}] Ignoring binary frame of {len(raw)} bytes")
            return
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[AI:{self.name}] Received invalid JSON: {raw[:100]}...")
            return
        if not isinstance(frame, dict):
            logger.warning(f"[AI:{self.name}] Ignoring non-object frame")
            return
        if frame.get("type") == "error":
            logger.error(f"[AI:{self.name}] Received error from OpenAI: {frame}")
        self._notify("on_upstream_message", frame)

    def _notify(self, callback: str, *args) -> None:
        for subscriber in tuple(self._subscribers):
            try:
                getattr(subscriber, callback)(*args)
            except Exception as e:
                logger.error(f"[AI:{self.name}] Error in subscriber {callback}: {e}", exc_info=True)

    async def _watchdog(self) -> None:
        """Re-check connectivity periodically in case a close event was missed."""
        try:
            while not self._is_closing:
                await asyncio.sleep(self.recheck_interval)
                if not self.ready:
                    logger.info(f"[AI:{self.name}] Safety re-check: connection not ready")
                self.ensure_connected()
        except asyncio.CancelledError:
            pass

    def send(self, message) -> bool:
        """
        Queue a message for the current connection instance.

        Args:
            message: A Realtime message model or an already serialized JSON string

        Returns:
            bool: False if the connection is not ready, True once queued
        """
        if not self.ready or self._send_queue is None:
            return False
        payload = message.to_json() if isinstance(message, RealtimeBaseMessage) else message
        self._send_queue.put_nowait(payload)
        return True

    async def subscribe(self, subscriber) -> bool:
        """
        Register a subscriber for connection events and frames.

        Returns:
            bool: Whether the connection is ready at the time of subscription
        """
        async with self._subscribers_lock:
            if subscriber not in self._subscribers:
                self._subscribers.append(subscriber)
            return self.ready

    async def unsubscribe(self, subscriber) -> None:
        async with self._subscribers_lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    async def close(self) -> None:
        """Close the WebSocket connection and cancel all tasks and timers."""
        if self._is_closing:
            return
        logger.info(f"[AI:{self.name}] Closing OpenAI Realtime connection")
        self._is_closing = True
        self.ready = False
        self.configured = False

        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        for task in (self._watchdog_task, self._connect_task, self._send_task, self._recv_task):
            if task is not None and not task.done():
                task.cancel()
        self._send_queue = None

        if self.ws is not None:
            ws, self.ws = self.ws, None
            try:
                await ws.close()
            except Exception as e:
                logger.warning(f"[AI:{self.name}] Error closing WebSocket: {e}")

        logger.info(f"[AI:{self.name}] OpenAI Realtime connection closed")

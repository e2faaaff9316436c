"""
Outbound side of the telephony media WebSocket.

Audio for the caller (keepalive silence and converted AI speech) is queued and
written by a single writer task, so frames leave in the order they were
produced and no producer ever waits on the socket.
"""

import asyncio
import logging
from typing import Optional

from fastapi import WebSocket

from receptionist.config.constants import LOGGER_NAME
from receptionist.models.message_schemas import (
    OutboundMediaMessage,
    OutboundMediaPayload,
)

logger = logging.getLogger(LOGGER_NAME)


class TelephonyLink:
    """Ordered writer for media frames addressed to one telephony stream."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.frames_sent = 0
        self.frames_dropped = 0
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._send_loop())

    def send_media(self, stream_sid: str, payload: str) -> bool:
        """
        Queue a media frame for the caller.

        Args:
            stream_sid: Stream identifier from the start event
            payload: Base64 mu-law audio at 8 kHz

        Returns:
            bool: False if the frame was dropped
        """
        if self._closed:
            return False
        if not stream_sid:
            self.frames_dropped += 1
            logger.warning("[Twilio] dropping outbound media: stream id not known yet")
            return False
        message = OutboundMediaMessage(
            streamSid=stream_sid, media=OutboundMediaPayload(payload=payload)
        )
        self._queue.put_nowait(message.model_dump_json())
        return True

    async def _send_loop(self) -> None:
        try:
            while True:
                text = await self._queue.get()
                try:
                    await self.websocket.send_text(text)
                    self.frames_sent += 1
                except Exception as e:
                    logger.warning(f"[Twilio] media send failed, stopping writer: {e}")
                    self._closed = True
                    return
        except asyncio.CancelledError:
            pass

    async def close(self) -> None:
        """Stop the writer. Frames still queued are discarded."""
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

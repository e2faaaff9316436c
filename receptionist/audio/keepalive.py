"""
Keepalive silence generator for the telephony leg of a call.

The telephony transport tears a media stream down if it hears nothing back for
too long, so until the AI produces its first audio the session emits silent
mu-law frames at a fixed cadence.
"""

import asyncio
import logging
from typing import Callable, Optional

from receptionist.audio.codec import SILENCE_FRAME_B64
from receptionist.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

DEFAULT_INTERVAL = 0.2  # seconds, 5 frames per second


class KeepaliveGenerator:
    """
    Emits one silence frame every ``interval`` seconds through ``send_frame``.

    The generator is single-use: once stopped it never starts again, which is
    what guarantees keepalive frames cannot follow real AI audio on a call.
    """

    def __init__(
        self,
        send_frame: Callable[[str], None],
        interval: float = DEFAULT_INTERVAL,
        frame: str = SILENCE_FRAME_B64,
    ):
        self._send_frame = send_frame
        self.interval = interval
        self.frame = frame
        self.frames_sent = 0
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> bool:
        """
        Start emitting frames.

        Returns:
            bool: True if a timer was started, False if one is already running
            or the generator has been stopped
        """
        if self._stopped or self.running:
            return False
        self._task = asyncio.create_task(self._run())
        logger.info("[KeepAlive] started")
        return True

    def stop(self) -> None:
        """Stop emitting frames for good. Safe to call repeatedly."""
        if self._stopped:
            return
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info(f"[KeepAlive] stopped after {self.frames_sent} frames")

    async def _run(self) -> None:
        try:
            while not self._stopped:
                await asyncio.sleep(self.interval)
                if self._stopped:
                    break
                try:
                    self._send_frame(self.frame)
                    self.frames_sent += 1
                except Exception as e:
                    logger.warning(f"[KeepAlive] failed to send silence frame: {e}")
        except asyncio.CancelledError:
            pass

"""
Per-call session: the state machine that relays audio for one phone call.

Everything that happens to a call (telephony events, upstream connection
events, upstream frames, timers) is turned into a ``SessionEvent`` and handled
one at a time by the session's worker, so the session's state is never touched
concurrently. Outbound writes go through non-blocking queues on both sides.

State transitions::

    CONNECTING --start--> STREAMING --first AI audio--> AI_RESPONDING
         \\                   |                              |
          +------ stop / socket closed / shutdown ----------+--> TERMINATING --> CLOSED
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Set

from receptionist.audio.codec import model_to_telephony, telephony_to_model
from receptionist.audio.keepalive import KeepaliveGenerator
from receptionist.bot.control_channel import ControlChannel, LineAssembler
from receptionist.config.constants import LOGGER_NAME
from receptionist.config.settings import RelaySettings
from receptionist.models.lead import LeadRecord
from receptionist.models.message_schemas import StartEvent
from receptionist.models.openai_schemas import (
    InputAudioAppendMessage,
    InputAudioCommitMessage,
    RealtimeServerEvent,
    ResponseCreateMessage,
    ResponseOptions,
)

logger = logging.getLogger(LOGGER_NAME)

EVENT_QUEUE_SIZE = 512


class SessionState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    AI_RESPONDING = "ai_responding"
    TERMINATING = "terminating"
    CLOSED = "closed"


class EventKind(str, Enum):
    TELEPHONY_START = "telephony.start"
    TELEPHONY_MEDIA = "telephony.media"
    TELEPHONY_STOP = "telephony.stop"
    TELEPHONY_CLOSED = "telephony.closed"
    UPSTREAM_OPEN = "upstream.open"
    UPSTREAM_MESSAGE = "upstream.message"
    UPSTREAM_CLOSED = "upstream.closed"
    GREETING_TIMEOUT = "greeting.timeout"


@dataclass
class SessionEvent:
    kind: EventKind
    data: Any = None


class CallSession:
    """
    Relays audio between one telephony media stream and the speech model.

    The session subscribes to a ``RealtimeConnection``; in per-call mode it
    owns that connection and closes it on termination, in shared mode it only
    unsubscribes.
    """

    def __init__(
        self,
        link,
        upstream,
        settings: RelaySettings,
        redirector=None,
        notifier=None,
        registry=None,
        owns_upstream: bool = True,
        queue_size: int = EVENT_QUEUE_SIZE,
    ):
        self.link = link
        self.upstream = upstream
        self.settings = settings
        self.redirector = redirector
        self.notifier = notifier
        self.registry = registry
        self.owns_upstream = owns_upstream

        self.state = SessionState.CONNECTING
        self.call_sid = ""
        self.stream_sid = ""
        self.pending_audio: List[str] = []
        self.real_audio_sent = False
        self.dropped_audio = 0
        self.dropped_frames = 0
        self.lead = LeadRecord()

        self.keepalive = KeepaliveGenerator(
            self._send_keepalive_frame, interval=settings.keepalive_interval
        )
        self.control = ControlChannel(
            self.lead,
            redirect=self._schedule_redirect,
            call_sid=lambda: self.call_sid,
            is_active=lambda: self.active,
        )
        self._lines = LineAssembler()

        self._upstream_ready = False
        self._upstream_seen_ready = False
        self._greeting_requested = False
        self._greeting_armed = False
        self._greeting_timer: Optional[asyncio.TimerHandle] = None
        self._lead_finalized = False
        self._side_tasks: Set[asyncio.Task] = set()
        self._pending_posts: Set[asyncio.Task] = set()
        self._upstream_released = False
        self._events: asyncio.Queue = asyncio.Queue(maxsize=queue_size)

        self._handlers = {
            EventKind.TELEPHONY_START: self._on_start,
            EventKind.TELEPHONY_MEDIA: self._on_media,
            EventKind.TELEPHONY_STOP: self._on_stop,
            EventKind.TELEPHONY_CLOSED: self._on_telephony_closed,
            EventKind.UPSTREAM_OPEN: self._on_upstream_open,
            EventKind.UPSTREAM_MESSAGE: self._on_upstream_message,
            EventKind.UPSTREAM_CLOSED: self._on_upstream_closed,
            EventKind.GREETING_TIMEOUT: self._on_greeting_timeout,
        }

    @property
    def active(self) -> bool:
        return self.state not in (SessionState.TERMINATING, SessionState.CLOSED)

    @property
    def upstream_ready(self) -> bool:
        return self._upstream_ready

    async def attach(self) -> None:
        """Subscribe to the upstream connection and pick up its current readiness."""
        if await self.upstream.subscribe(self):
            self._upstream_ready = True
            self._upstream_seen_ready = True

    # Event intake

    async def submit(self, event: SessionEvent) -> None:
        """Queue an event, waiting for room. Used by the telephony reader."""
        if self.state == SessionState.CLOSED:
            return
        await self._events.put(event)

    def post(self, event: SessionEvent) -> None:
        """
        Queue an event without waiting. Used by upstream callbacks and timers.

        When the queue is full only upstream frames are dropped; lifecycle
        events wait for room in a background put.
        """
        if self.state == SessionState.CLOSED:
            return
        try:
            self._events.put_nowait(event)
        except asyncio.QueueFull:
            if event.kind == EventKind.UPSTREAM_MESSAGE:
                self.dropped_frames += 1
                logger.warning(f"[Session {self.call_sid or '?'}] event queue full, dropping AI frame")
                return
            task = asyncio.create_task(self._events.put(event))
            self._pending_posts.add(task)
            task.add_done_callback(self._pending_posts.discard)

    def on_upstream_open(self) -> None:
        self.post(SessionEvent(EventKind.UPSTREAM_OPEN))

    def on_upstream_message(self, frame: dict) -> None:
        self.post(SessionEvent(EventKind.UPSTREAM_MESSAGE, frame))

    def on_upstream_closed(self) -> None:
        self.post(SessionEvent(EventKind.UPSTREAM_CLOSED))

    async def run(self) -> None:
        """Process queued events until the session is closed."""
        while self.state != SessionState.CLOSED:
            event = await self._events.get()
            await self.process(event)

    async def process(self, event: SessionEvent) -> None:
        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.warning(f"[Session] no handler for event {event.kind}")
            return
        try:
            await handler(event.data)
        except Exception as e:
            logger.error(
                f"[Session {self.call_sid or '?'}] error handling {event.kind.value}: {e}",
                exc_info=True,
            )

    # Telephony events

    async def _on_start(self, event: StartEvent) -> None:
        if not self.active:
            logger.info("[Twilio] start received after termination, ignoring")
            return
        self.call_sid = event.call_sid
        self.stream_sid = event.stream_sid
        logger.info(f"[Twilio] START callSid={self.call_sid} streamSid={self.stream_sid}")
        if self.state == SessionState.CONNECTING:
            self.state = SessionState.STREAMING

        if self.registry is not None and self.call_sid:
            await self.registry.add(self.call_sid, self)

        if not self.real_audio_sent:
            self.keepalive.start()
        if self._upstream_ready:
            self._request_greeting()
        self._arm_greeting_watchdog()

    async def _on_media(self, payload: str) -> None:
        if not self.active:
            return
        audio = telephony_to_model(payload)
        if self._upstream_ready:
            self._send_caller_audio(audio)
        elif not self._upstream_seen_ready:
            self.pending_audio.append(audio)
        else:
            self.dropped_audio += 1
            logger.debug("[Twilio] AI reconnecting, dropping caller audio")

    async def _on_stop(self, _data=None) -> None:
        logger.info(f"[Twilio] STOP callSid={self.call_sid or '?'}")
        await self._terminate("stop event")

    async def _on_telephony_closed(self, _data=None) -> None:
        await self._terminate("media socket closed")

    # Upstream events

    async def _on_upstream_open(self, _data=None) -> None:
        if not self.active:
            return
        self._upstream_ready = True
        first_open = not self._upstream_seen_ready
        self._upstream_seen_ready = True

        if self.state != SessionState.CONNECTING:
            self._request_greeting()

        if first_open and self.pending_audio:
            logger.info(f"[AI] Flushing queued audio x {len(self.pending_audio)}")
            for audio in self.pending_audio:
                self._send_caller_audio(audio)
            self.pending_audio.clear()

    async def _on_upstream_closed(self, _data=None) -> None:
        self._upstream_ready = False
        if self.active:
            logger.warning(f"[AI] connection lost during call {self.call_sid or '?'}")

    async def _on_upstream_message(self, frame: dict) -> None:
        if not self.active:
            return
        event = RealtimeServerEvent.model_validate(frame)
        if event.is_audio_delta:
            self._relay_ai_audio(event.audio_payload)
        elif event.is_text_delta:
            for line in self._lines.feed(event.delta):
                self.control.handle_line(line)
        elif event.is_text_done or event.is_response_done:
            for line in self._lines.flush():
                self.control.handle_line(line)
        elif event.is_error:
            logger.error(f"[AI] error during call {self.call_sid or '?'}: {event.error}")

    # Audio paths

    def _send_caller_audio(self, audio: str) -> None:
        if not self.upstream.send(InputAudioAppendMessage(audio=audio)):
            self.dropped_audio += 1
            logger.debug("[AI] connection not ready, caller audio dropped")
            return
        self.upstream.send(InputAudioCommitMessage())

    def _relay_ai_audio(self, audio_b64: str) -> None:
        if not self.stream_sid:
            logger.warning("[AI] audio arrived before the stream id is known, dropping")
            return
        payload = model_to_telephony(audio_b64)
        if not payload:
            return
        if not self.real_audio_sent:
            self.keepalive.stop()
            self._cancel_greeting_watchdog()
            self.real_audio_sent = True
            self.state = SessionState.AI_RESPONDING
            logger.info("[AI] first audio, keepalive stopped")
        self.link.send_media(self.stream_sid, payload)

    def _send_keepalive_frame(self, frame: str) -> None:
        if self.real_audio_sent or not self.active or not self.stream_sid:
            return
        self.link.send_media(self.stream_sid, frame)

    # Greeting

    def _request_greeting(self) -> bool:
        """Ask the model to greet the caller; at most once unless re-armed."""
        if self._greeting_requested or not self._upstream_ready:
            return False
        message = ResponseCreateMessage(
            response=ResponseOptions(instructions=self.settings.greeting)
        )
        if not self.upstream.send(message):
            return False
        self._greeting_requested = True
        logger.info(f"[AI] greeting requested for call {self.call_sid or '?'}")
        return True

    def _arm_greeting_watchdog(self) -> None:
        if self._greeting_armed or self.real_audio_sent:
            return
        self._greeting_armed = True
        loop = asyncio.get_running_loop()
        self._greeting_timer = loop.call_later(
            self.settings.greeting_retry_delay,
            self.post,
            SessionEvent(EventKind.GREETING_TIMEOUT),
        )

    def _cancel_greeting_watchdog(self) -> None:
        if self._greeting_timer is not None:
            self._greeting_timer.cancel()
            self._greeting_timer = None

    async def _on_greeting_timeout(self, _data=None) -> None:
        self._greeting_timer = None
        if self.real_audio_sent or not self.active:
            return
        if not self._upstream_ready:
            logger.warning("[AI] no greeting yet and connection not ready; caller hears silence")
            return
        logger.info("[AI] no audio since greeting request, asking again")
        self._greeting_requested = False
        self._request_greeting()

    # Call control

    def _schedule_redirect(self, call_sid: str, destination: str) -> None:
        if self.redirector is None:
            logger.warning(f"[CTRL] no redirector configured, cannot send call to {destination}")
            return
        self._spawn(self._redirect(call_sid, destination))

    async def _redirect(self, call_sid: str, destination: str) -> None:
        try:
            await self.redirector.redirect(call_sid, destination)
        except Exception as e:
            logger.error(f"[CTRL] redirect to {destination} failed: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._side_tasks.add(task)
        task.add_done_callback(self._side_tasks.discard)
        return task

    # Termination

    async def _terminate(self, reason: str) -> None:
        if not self.active:
            logger.debug(f"[Session] already terminating, ignoring {reason}")
            return
        self.state = SessionState.TERMINATING
        logger.info(f"[Session] terminating call {self.call_sid or '?'} ({reason})")

        self.keepalive.stop()
        self._cancel_greeting_watchdog()
        for line in self._lines.flush():
            self.control.handle_line(line)

        try:
            await self._release_upstream()
            await self._finalize_lead()
            if self._side_tasks:
                await asyncio.gather(*list(self._side_tasks), return_exceptions=True)
        finally:
            await self._deregister()
        self._mark_closed()

    async def close(self, reason: str = "forced") -> None:
        """
        Release everything the session holds without going through the worker.

        Used when the worker could not finish termination in time. Steps that
        already ran are not repeated; unfinished redirects are cancelled.
        """
        if self.state == SessionState.CLOSED:
            return
        logger.warning(f"[Session] forcing close of call {self.call_sid or '?'} ({reason})")
        self.state = SessionState.TERMINATING
        self.keepalive.stop()
        self._cancel_greeting_watchdog()
        for task in list(self._side_tasks):
            task.cancel()
        try:
            await self._release_upstream()
            await self._finalize_lead()
        finally:
            await self._deregister()
            self._mark_closed()

    async def _release_upstream(self) -> None:
        if self._upstream_released:
            return
        self._upstream_released = True
        self._upstream_ready = False
        try:
            await self.upstream.unsubscribe(self)
            if self.owns_upstream:
                await self.upstream.close()
        except Exception as e:
            logger.error(f"[Session] error releasing AI connection: {e}")

    async def _deregister(self) -> None:
        if self.registry is not None and self.call_sid:
            await self.registry.remove(self.call_sid, self)

    def _mark_closed(self) -> None:
        for task in list(self._pending_posts):
            task.cancel()
        self.pending_audio.clear()
        self.state = SessionState.CLOSED
        logger.info(f"[Session] call {self.call_sid or '?'} closed")

    async def _finalize_lead(self) -> None:
        if self._lead_finalized:
            return
        self._lead_finalized = True
        if not self.lead.has_data:
            return
        logger.info(f"[LEAD] final for call {self.call_sid or '?'}: {self.lead.summary()}")
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(self.call_sid, self.lead)
        except Exception as e:
            logger.error(f"[LEAD] notification failed: {e}")

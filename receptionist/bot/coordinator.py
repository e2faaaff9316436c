"""
Relay coordinator: creates call sessions and owns the resources they share.

In ``shared`` upstream mode the coordinator keeps one warm Realtime connection
that every session subscribes to; in ``per_call`` mode each session gets a
connection of its own that it closes on termination.
"""

import logging
from typing import Callable, Optional, Set

from receptionist.bot.call_session import CallSession, EventKind, SessionEvent
from receptionist.bot.realtime_api import RealtimeConnection, build_session_config
from receptionist.config.constants import LOGGER_NAME, UPSTREAM_MODE_SHARED
from receptionist.config.settings import RelaySettings
from receptionist.models.call_registry import CallRegistry
from receptionist.services.call_control import CallRedirector
from receptionist.services.lead_notifier import LeadNotifier

logger = logging.getLogger(LOGGER_NAME)


class RelayCoordinator:
    """Factory and owner of call sessions and the shared upstream connection."""

    def __init__(
        self,
        settings: RelaySettings,
        redirector: Optional[CallRedirector] = None,
        notifier: Optional[LeadNotifier] = None,
        connection_factory: Optional[Callable[[str], RealtimeConnection]] = None,
    ):
        self.settings = settings
        self.registry = CallRegistry()
        self.redirector = redirector or CallRedirector(settings)
        self.notifier = notifier or LeadNotifier(settings)
        self._connection_factory = connection_factory or self._new_connection
        self.shared_upstream: Optional[RealtimeConnection] = None
        self.sessions: Set[CallSession] = set()

    @property
    def shared_mode(self) -> bool:
        return self.settings.upstream_mode == UPSTREAM_MODE_SHARED

    def _new_connection(self, name: str) -> RealtimeConnection:
        return RealtimeConnection(
            api_key=self.settings.openai_api_key,
            model=self.settings.realtime_model,
            session_config=build_session_config(self.settings),
            url=self.settings.realtime_url,
            reconnect_delay=self.settings.reconnect_delay,
            recheck_interval=self.settings.recheck_interval,
            name=name,
        )

    def _shared(self) -> RealtimeConnection:
        if self.shared_upstream is None:
            self.shared_upstream = self._connection_factory("shared")
            self.shared_upstream.start()
        return self.shared_upstream

    async def start(self) -> None:
        """Warm up the shared connection when running in shared mode."""
        logger.info(f"Relay starting (upstream mode: {self.settings.upstream_mode})")
        if self.shared_mode:
            self._shared()

    async def stop(self) -> None:
        """Ask every live session to terminate and close the shared connection."""
        for session in list(self.sessions):
            session.post(SessionEvent(EventKind.TELEPHONY_CLOSED))
        if self.shared_upstream is not None:
            await self.shared_upstream.close()
            self.shared_upstream = None
        logger.info("Relay stopped")

    async def create_session(self, link) -> CallSession:
        """
        Create and attach a session for a newly accepted media stream.

        Args:
            link: The ``TelephonyLink`` for the media stream

        Returns:
            CallSession: The session; the caller runs its worker
        """
        if self.shared_mode:
            upstream = self._shared()
            owns_upstream = False
        else:
            upstream = self._connection_factory("call")
            owns_upstream = True

        session = CallSession(
            link,
            upstream,
            self.settings,
            redirector=self.redirector,
            notifier=self.notifier,
            registry=self.registry,
            owns_upstream=owns_upstream,
        )
        await session.attach()
        if owns_upstream:
            upstream.start()
        self.sessions.add(session)
        return session

    def release(self, session: CallSession) -> None:
        self.sessions.discard(session)

    @property
    def active_call_count(self) -> int:
        return len(self.registry)

    @property
    def upstream_ready(self) -> Optional[bool]:
        """Readiness of the shared connection; None in per-call mode."""
        if not self.shared_mode:
            return None
        return self.shared_upstream is not None and self.shared_upstream.ready

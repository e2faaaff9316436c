"""
Call registry for active relay sessions.

This module provides the CallRegistry class which maps telephony call
identifiers to the session handling them. It is owned by the coordinator and is
the only cross-session lookup in the relay, so every access goes through an
asyncio lock.
"""

import asyncio
from typing import Any, Dict


class CallRegistry:
    """
    Registry of active calls keyed by call identifier.

    Sessions register themselves once the telephony start event reveals their
    call identifier and unregister during termination.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._calls: Dict[str, Any] = {}
        self._lock = asyncio.Lock()

    async def add(self, call_sid: str, session: Any) -> None:
        """
        Register a session under its call identifier.

        Args:
            call_sid: Call identifier from the telephony transport
            session: The session handling the call
        """
        async with self._lock:
            self._calls[call_sid] = session

    async def remove(self, call_sid: str, session: Any = None) -> None:
        """
        Remove a call from the registry.

        When ``session`` is given the entry is only removed if it still belongs
        to that session.
        """
        async with self._lock:
            current = self._calls.get(call_sid)
            if current is None:
                return
            if session is None or current is session:
                del self._calls[call_sid]

    def __len__(self) -> int:
        return len(self._calls)

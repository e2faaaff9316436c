"""
Bot module relaying phone calls to the OpenAI Realtime API.

Key components:
- RealtimeConnection: Manager for the Realtime API WebSocket with session
  configuration, ordered sends, reconnection backoff and subscriber fan-out.
- CallSession: Per-call state machine moving audio between the telephony
  stream and the model, with keepalive, greeting and termination handling.
- ControlChannel: Interprets the model's TRANSFER, DONE and LEAD text lines.
- TelephonyLink: Ordered writer for outbound media frames.
- RelayCoordinator: Creates sessions and owns the shared connection and the
  call registry.

Usage examples:
```python
from receptionist.bot import RelayCoordinator
from receptionist.config.settings import load_settings

coordinator = RelayCoordinator(load_settings())
await coordinator.start()

session = await coordinator.create_session(link)
await session.run()
```
"""

from receptionist.bot.call_session import CallSession, EventKind, SessionEvent, SessionState
from receptionist.bot.control_channel import ControlChannel, LineAssembler, parse_control_line
from receptionist.bot.coordinator import RelayCoordinator
from receptionist.bot.realtime_api import RealtimeConnection
from receptionist.bot.telephony_link import TelephonyLink

__all__ = [
    "CallSession",
    "EventKind",
    "SessionEvent",
    "SessionState",
    "ControlChannel",
    "LineAssembler",
    "parse_control_line",
    "RelayCoordinator",
    "RealtimeConnection",
    "TelephonyLink",
]

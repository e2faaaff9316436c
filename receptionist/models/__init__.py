"""
Models module for data structures and state management in the relay.

This module provides structured data models and state holders for the application,
defining the schemas of both wire protocols the relay speaks.

Key components:
- message_schemas: Pydantic models for the telephony media stream events
  (connected, start, mark, stop; media is read on a fast path) and outbound
  media frames.
- openai_schemas: Type-safe models for Realtime API client events
  (session.update, input_audio_buffer.*, response.create) and server events.
- lead: The lead record accumulated from the AI's backchannel.
- call_registry: Lock-guarded mapping from call identifiers to active sessions.

Usage examples:
```python
from receptionist.models.message_schemas import StartEvent

event = StartEvent(**{
    "event": "start",
    "start": {"callSid": "CA123", "streamSid": "MZ456"},
})
print(event.call_sid, event.stream_sid)
```
"""

from receptionist.models.call_registry import CallRegistry
from receptionist.models.lead import LeadRecord
from receptionist.models.message_schemas import (
    BaseEvent,
    ConnectedEvent,
    MarkEvent,
    OutboundMediaMessage,
    OutboundMediaPayload,
    StartEvent,
    StopEvent,
)
from receptionist.models.openai_schemas import (
    InputAudioAppendMessage,
    InputAudioCommitMessage,
    RealtimeServerEvent,
    ResponseCreateMessage,
    SessionConfig,
    SessionUpdateMessage,
)

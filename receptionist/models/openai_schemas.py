"""
Pydantic models for OpenAI Realtime API message structures.

This module provides type-safe models for the client events the relay sends to
the Realtime API (session configuration, caller audio, proactive responses) and
a thin wrapper for classifying the server events it receives.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from receptionist.config.constants import (
    AUDIO_DELTA_TYPES,
    AUDIO_FORMAT_PCM16,
    MESSAGE_TYPE_AUDIO_APPEND,
    MESSAGE_TYPE_AUDIO_COMMIT,
    MESSAGE_TYPE_ERROR,
    MESSAGE_TYPE_RESPONSE_CREATE,
    MESSAGE_TYPE_RESPONSE_DONE,
    MESSAGE_TYPE_SESSION_UPDATE,
    TEXT_DELTA_TYPES,
    TEXT_DONE_TYPES,
)


class RealtimeBaseMessage(BaseModel):
    """Base model for Realtime API messages."""
    type: str

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


class TurnDetection(BaseModel):
    """Server-side voice activity detection policy."""
    type: str = "server_vad"
    threshold: Optional[float] = None
    silence_duration_ms: Optional[int] = None
    prefix_padding_ms: Optional[int] = None


class SessionConfig(BaseModel):
    """Conversational configuration sent once per connection."""
    instructions: str
    voice: str
    modalities: List[str] = Field(default_factory=lambda: ["text", "audio"])
    input_audio_format: str = AUDIO_FORMAT_PCM16
    output_audio_format: str = AUDIO_FORMAT_PCM16
    turn_detection: TurnDetection = Field(default_factory=TurnDetection)


class SessionUpdateMessage(RealtimeBaseMessage):
    type: str = MESSAGE_TYPE_SESSION_UPDATE
    session: SessionConfig


class InputAudioAppendMessage(RealtimeBaseMessage):
    """Caller audio chunk, base64 PCM16 at the model sample rate."""
    type: str = MESSAGE_TYPE_AUDIO_APPEND
    audio: str


class InputAudioCommitMessage(RealtimeBaseMessage):
    type: str = MESSAGE_TYPE_AUDIO_COMMIT


class ResponseOptions(BaseModel):
    modalities: List[str] = Field(default_factory=lambda: ["audio", "text"])
    instructions: Optional[str] = None


class ResponseCreateMessage(RealtimeBaseMessage):
    """Asks the model to speak without waiting for caller input."""
    type: str = MESSAGE_TYPE_RESPONSE_CREATE
    response: ResponseOptions = Field(default_factory=ResponseOptions)


class RealtimeServerEvent(BaseModel):
    """
    Server event received from the Realtime API.

    Only the fields the relay consumes are declared; everything else is kept
    as extra data for logging.
    """
    model_config = ConfigDict(extra="allow")

    type: str = ""
    delta: Optional[str] = None
    audio: Optional[str] = None
    text: Optional[str] = None
    error: Optional[dict] = None

    @property
    def is_audio_delta(self) -> bool:
        return self.type in AUDIO_DELTA_TYPES and bool(self.audio_payload)

    @property
    def audio_payload(self) -> Optional[str]:
        """Base64 audio carried by the event (``delta`` or legacy ``audio``)."""
        return self.delta or self.audio

    @property
    def is_text_delta(self) -> bool:
        return self.type in TEXT_DELTA_TYPES and self.delta is not None

    @property
    def is_text_done(self) -> bool:
        return self.type in TEXT_DONE_TYPES

    @property
    def is_response_done(self) -> bool:
        """End of a response, including one cancelled by the caller talking over it."""
        return self.type == MESSAGE_TYPE_RESPONSE_DONE

    @property
    def is_error(self) -> bool:
        return self.type == MESSAGE_TYPE_ERROR

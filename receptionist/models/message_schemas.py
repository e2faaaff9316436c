"""
Pydantic models for the telephony media stream WebSocket protocol.

This module defines structured data models for the JSON events exchanged with the
telephony transport on the media WebSocket (``connected``, ``start``, ``mark``,
``stop`` inbound and ``media`` outbound), providing type validation and
documentation. Inbound ``media`` events are the hot path and are read without
a model, see ``receptionist.handlers.media_handlers``.
"""

import base64
import binascii
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Base Models
class BaseEvent(BaseModel):
    """Base model for all media stream events."""

    model_config = ConfigDict(extra="allow")

    event: str = Field(..., description="Event type identifier")
    sequenceNumber: Optional[str] = Field(
        None, description="Transport-assigned sequence number"
    )
    streamSid: Optional[str] = Field(None, description="Media stream identifier")


class ConnectedEvent(BaseEvent):
    """Model for the connected event sent when the socket opens."""

    event: Literal["connected"]
    protocol: Optional[str] = None
    version: Optional[str] = None


class MediaFormat(BaseModel):
    """Audio format announced in the start event."""

    encoding: str = Field("audio/x-mulaw", description="Payload encoding")
    sampleRate: int = Field(8000, description="Sample rate in Hz")
    channels: int = Field(1, description="Channel count")


class StartPayload(BaseModel):
    """Body of the start event."""

    model_config = ConfigDict(extra="allow")

    callSid: str = Field("", description="Identifier of the phone call")
    streamSid: str = Field("", description="Identifier of the media stream")
    accountSid: Optional[str] = None
    tracks: List[str] = Field(default_factory=list)
    customParameters: Dict[str, str] = Field(default_factory=dict)
    mediaFormat: Optional[MediaFormat] = None


class StartEvent(BaseEvent):
    """Model for the start event carrying call and stream identifiers."""

    event: Literal["start"]
    start: StartPayload

    @property
    def call_sid(self) -> str:
        return self.start.callSid

    @property
    def stream_sid(self) -> str:
        return self.start.streamSid or self.streamSid or ""


def _validate_base64(v: str) -> str:
    try:
        base64.b64decode(v, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("Invalid base64 encoded audio data")
    return v


class MarkPayload(BaseModel):
    name: str


class MarkEvent(BaseEvent):
    """Model for a mark event acknowledging playback position."""

    event: Literal["mark"]
    mark: MarkPayload


class StopPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    callSid: Optional[str] = None
    accountSid: Optional[str] = None


class StopEvent(BaseEvent):
    """Model for the stop event that ends the media stream."""

    event: Literal["stop"]
    stop: Optional[StopPayload] = None


# Outbound Messages
class OutboundMediaPayload(BaseModel):
    payload: str = Field(..., description="Base64-encoded mu-law audio")

    @field_validator("payload")
    def validate_payload(cls, v):
        """Validate that the payload is valid base64."""
        return _validate_base64(v)


class OutboundMediaMessage(BaseModel):
    """Model for a media event sent back to the telephony transport."""

    event: Literal["media"] = "media"
    streamSid: str = Field(..., description="Stream the audio is addressed to")
    media: OutboundMediaPayload

    @field_validator("streamSid")
    def validate_stream_sid(cls, v):
        """Outbound audio can never be sent without a stream identifier."""
        if not v or not v.strip():
            raise ValueError("Stream identifier is required for outbound media")
        return v

"""
Handlers for the telephony media stream WebSocket events.

Each handler validates one inbound event and turns it into a session event.
Invalid events are logged and dropped; they never end the call.
"""

import logging
from typing import Any, Dict

from pydantic import ValidationError

from receptionist.bot.call_session import CallSession, EventKind, SessionEvent
from receptionist.config.constants import LOGGER_NAME
from receptionist.models.message_schemas import (
    ConnectedEvent,
    MarkEvent,
    StartEvent,
    StopEvent,
)

logger = logging.getLogger(LOGGER_NAME)


async def handle_connected(message: Dict[str, Any], session: CallSession) -> None:
    """
    Handle the connected event sent when the media socket opens.

    Args:
        message: The connected event
        session: Session for this media stream
    """
    try:
        connected = ConnectedEvent(**message)
        logger.info(f"[Twilio] connected (protocol={connected.protocol}, version={connected.version})")
    except ValidationError as e:
        logger.error(f"Invalid connected event: {e}")


async def handle_start(message: Dict[str, Any], session: CallSession) -> None:
    """
    Handle the start event carrying the call and stream identifiers.

    Args:
        message: The start event
        session: Session for this media stream
    """
    try:
        start = StartEvent(**message)
    except ValidationError as e:
        logger.error(f"Invalid start event: {e}")
        return
    await session.submit(SessionEvent(EventKind.TELEPHONY_START, start))


async def handle_media(message: Dict[str, Any], session: CallSession) -> None:
    """
    Handle a media event with caller audio.

    This is the hot path, so only the payload is extracted here; decoding
    errors surface when the session converts the audio.

    Args:
        message: The media event containing base64 mu-law audio
        session: Session for this media stream
    """
    media = message.get("media")
    payload = media.get("payload") if isinstance(media, dict) else None
    if not payload or not isinstance(payload, str):
        logger.warning("Missing audio payload in media event")
        return
    await session.submit(SessionEvent(EventKind.TELEPHONY_MEDIA, payload))


async def handle_mark(message: Dict[str, Any], session: CallSession) -> None:
    try:
        mark = MarkEvent(**message)
        logger.debug(f"[Twilio] mark {mark.mark.name}")
    except ValidationError as e:
        logger.error(f"Invalid mark event: {e}")


async def handle_stop(message: Dict[str, Any], session: CallSession) -> None:
    """
    Handle the stop event that ends the media stream.

    The session is stopped even if the event does not validate.

    Args:
        message: The stop event
        session: Session for this media stream
    """
    try:
        StopEvent(**message)
    except ValidationError as e:
        logger.error(f"Invalid stop event: {e}")
    await session.submit(SessionEvent(EventKind.TELEPHONY_STOP))

"""
Control channel carried on the AI's text output.

The model is instructed to emit machine-readable lines alongside its spoken
reply. Those lines are never played to the caller; they drive call control:

- ``TRANSFER``: the caller asked for a human, redirect the call to an operator
- ``DONE``: the conversation is complete, redirect the call to the goodbye message
- ``LEAD key=value; key=value``: partial lead details to merge into the record

Matching is case-insensitive on the trimmed line. Anything else is ignored.
"""

import logging
import re
from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from receptionist.config.constants import (
    DESTINATION_GOODBYE,
    DESTINATION_TRANSFER,
    LOGGER_NAME,
)
from receptionist.models.lead import LeadRecord

logger = logging.getLogger(LOGGER_NAME)

TRANSFER_PATTERN = re.compile(r"^TRANSFER$", re.IGNORECASE)
DONE_PATTERN = re.compile(r"^DONE$", re.IGNORECASE)
LEAD_PATTERN = re.compile(r"^LEAD\b\s*(?P<body>.*)$", re.IGNORECASE)


class DirectiveKind(str, Enum):
    TRANSFER = "transfer"
    DONE = "done"
    LEAD = "lead"


class ControlDirective(BaseModel):
    kind: DirectiveKind
    lead: Dict[str, str] = Field(default_factory=dict)


def parse_lead_body(body: str) -> Dict[str, str]:
    """
    Parse ``key=value; key=value`` pairs.

    Keys are trimmed and lower-cased, values trimmed. Segments without ``=``
    or with an empty key are skipped without affecting the rest of the line.
    """
    update: Dict[str, str] = {}
    for segment in body.split(";"):
        if "=" not in segment:
            if segment.strip():
                logger.debug(f"[CTRL] skipping malformed LEAD segment: {segment!r}")
            continue
        key, value = segment.split("=", 1)
        key = key.strip().lower()
        if not key:
            continue
        update[key] = value.strip()
    return update


def parse_control_line(line: str) -> Optional[ControlDirective]:
    """
    Recognize a single control line.

    Args:
        line: One complete line of AI text output

    Returns:
        The directive, or None if the line is not a control line
    """
    text = line.strip()
    if not text:
        return None
    if TRANSFER_PATTERN.match(text):
        return ControlDirective(kind=DirectiveKind.TRANSFER)
    if DONE_PATTERN.match(text):
        return ControlDirective(kind=DirectiveKind.DONE)
    match = LEAD_PATTERN.match(text)
    if match:
        return ControlDirective(
            kind=DirectiveKind.LEAD, lead=parse_lead_body(match.group("body"))
        )
    return None


class LineAssembler:
    """Reassembles complete lines from incremental text deltas."""

    def __init__(self):
        self._buffer = ""

    def feed(self, delta: str) -> List[str]:
        """Add a delta and return every line it completed."""
        self._buffer += delta
        *lines, self._buffer = re.split(r"\r?\n", self._buffer)
        return lines

    def flush(self) -> List[str]:
        """Return the unterminated remainder, if any, as a final line."""
        remainder, self._buffer = self._buffer, ""
        return [remainder] if remainder.strip() else []


class ControlChannel:
    """
    Applies control directives to one call.

    TRANSFER and DONE fire at most one redirect per call, and only once the
    call identifier is known and while the call is still active.
    """

    def __init__(
        self,
        lead: LeadRecord,
        redirect: Callable[[str, str], None],
        call_sid: Callable[[], str],
        is_active: Callable[[], bool],
    ):
        """
        Args:
            lead: The session's lead record, mutated in place
            redirect: Schedules a call redirect given (call_sid, destination)
            call_sid: Returns the current call identifier ("" if unknown)
            is_active: Returns False once the call is stopping
        """
        self.lead = lead
        self._redirect = redirect
        self._call_sid = call_sid
        self._is_active = is_active
        self.action_taken: Optional[str] = None

    def handle_line(self, line: str) -> Optional[ControlDirective]:
        directive = parse_control_line(line)
        if directive is None:
            return None

        if directive.kind == DirectiveKind.LEAD:
            self.lead.merge(directive.lead)
            logger.info(f"[LEAD] {self.lead.to_dict()}")
        elif directive.kind == DirectiveKind.TRANSFER:
            self._fire(DESTINATION_TRANSFER)
        elif directive.kind == DirectiveKind.DONE:
            self._fire(DESTINATION_GOODBYE)
        return directive

    def _fire(self, destination: str) -> None:
        call_sid = self._call_sid()
        if self.action_taken is not None:
            logger.info(
                f"[CTRL] ignoring {destination}: call already sent to {self.action_taken}"
            )
            return
        if not call_sid or not self._is_active():
            logger.warning(f"[CTRL] ignoring {destination}: call not active")
            return
        self.action_taken = destination
        logger.info(f"[CTRL] {destination.upper()} for call {call_sid}")
        self._redirect(call_sid, destination)

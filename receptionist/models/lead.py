"""
Lead record accumulated from the AI's ``LEAD`` backchannel lines during a call.
"""

from typing import Dict

from pydantic import BaseModel, Field

# Fields the receptionist prompt asks the model to report
KNOWN_FIELDS = ("name", "phone", "address", "zip", "service", "preferred", "details")
PRIORITY_KEY = "priority"
TRUTHY_VALUES = {"true", "yes", "y", "1"}


def parse_flag(value: str) -> bool:
    return value.strip().lower() in TRUTHY_VALUES


class LeadRecord(BaseModel):
    """
    Structured summary of the caller's request.

    Later values for a field overwrite earlier ones. The priority flag is
    sticky: once any update marks the lead as priority it stays that way.
    """

    entries: Dict[str, str] = Field(default_factory=dict)
    priority: bool = False

    def merge(self, update: Dict[str, str]) -> None:
        """
        Merge a partial update into the record.

        Args:
            update: Lower-cased keys mapped to trimmed values
        """
        for key, value in update.items():
            if key == PRIORITY_KEY:
                self.priority = self.priority or parse_flag(value)
            else:
                self.entries[key] = value

    @property
    def has_data(self) -> bool:
        return bool(self.entries) or self.priority

    def get(self, key: str, default: str = "") -> str:
        return self.entries.get(key, default)

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = dict(self.entries)
        data[PRIORITY_KEY] = self.priority
        return data

    def summary(self) -> str:
        """One-line human readable summary used in alerts and logs."""
        ordered = [k for k in KNOWN_FIELDS if k in self.entries]
        ordered += sorted(k for k in self.entries if k not in KNOWN_FIELDS)
        parts = [f"{k}={self.entries[k]}" for k in ordered]
        if self.priority:
            parts.append("priority=true")
        return "; ".join(parts)

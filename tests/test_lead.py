"""
Unit tests for the lead record and the call registry.
"""

import pytest

from receptionist.models.call_registry import CallRegistry
from receptionist.models.lead import LeadRecord, parse_flag


class TestLeadRecord:
    def test_empty_record(self):
        lead = LeadRecord()
        assert not lead.has_data
        assert lead.to_dict() == {"priority": False}
        assert lead.summary() == ""

    def test_later_values_overwrite(self):
        lead = LeadRecord()
        lead.merge({"name": "Ann", "phone": "1"})
        lead.merge({"phone": "2"})
        assert lead.get("phone") == "2"
        assert lead.get("missing", "-") == "-"

    def test_priority_is_sticky(self):
        lead = LeadRecord()
        lead.merge({"priority": "yes"})
        lead.merge({"priority": "false"})
        assert lead.priority is True
        assert lead.has_data

    def test_priority_never_lands_in_entries(self):
        lead = LeadRecord()
        lead.merge({"priority": "no"})
        assert lead.entries == {}
        assert lead.priority is False

    def test_summary_orders_known_fields_first(self):
        lead = LeadRecord()
        lead.merge({"zeta": "z", "service": "HVAC", "name": "Ann", "alpha": "a"})
        lead.merge({"priority": "1"})
        assert lead.summary() == "name=Ann; service=HVAC; alpha=a; zeta=z; priority=true"

    @pytest.mark.parametrize("value,expected", [
        ("true", True), ("TRUE", True), (" yes ", True), ("y", True), ("1", True),
        ("false", False), ("no", False), ("", False), ("maybe", False),
    ])
    def test_parse_flag(self, value, expected):
        assert parse_flag(value) is expected


@pytest.mark.asyncio
async def test_registry_add_remove():
    registry = CallRegistry()
    session = object()
    await registry.add("CA1", session)

    assert len(registry) == 1

    await registry.remove("CA1")
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_registry_remove_only_own_entry():
    registry = CallRegistry()
    old, new = object(), object()
    await registry.add("CA1", old)
    await registry.add("CA1", new)

    await registry.remove("CA1", old)
    assert len(registry) == 1

    await registry.remove("CA1", new)
    await registry.remove("CA1", new)
    assert len(registry) == 0

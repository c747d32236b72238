"""
Scheduling Policy Store Tests

Tests interview configuration storage including:
- Document IDs and validation
- Lookup by team/system with fallback scan
- Listing and filtering
"""

import pytest

from models.entities import SchedulingPolicy, Team
from models.errors import NotFound
from services.scheduling_policy import (
    INTERVIEW_CONFIGS_COLLECTION,
    SchedulingPolicyStore,
    policy_id,
    validate_policy,
)


def make_policy(**overrides) -> SchedulingPolicy:
    values = dict(
        team=Team.COMBUSTION,
        system="Low Voltage",
        calendar_id="lv@group.calendar.google.com",
    )
    values.update(overrides)
    return SchedulingPolicy(**values)


class TestPolicyId:
    """Test document ID slugs."""

    def test_slug(self):
        assert policy_id(Team.COMBUSTION, "Low Voltage") == "combustion-low-voltage"
        assert policy_id(Team.SOLAR, " Aerodynamics ") == "solar-aerodynamics"


class TestValidation:
    """Test policy validation."""

    def test_default_policy_is_valid(self):
        validate_policy(make_policy())

    @pytest.mark.parametrize("overrides", [
        {"duration_minutes": 0},
        {"buffer_minutes": -5},
        {"available_days": [1, 7]},
        {"available_start_hour": 17, "available_end_hour": 9},
        {"available_end_hour": 24},
        {"timezone": "Mars/Olympus_Mons"},
    ])
    def test_rejects_bad_config(self, overrides):
        with pytest.raises(ValueError):
            validate_policy(make_policy(**overrides))


class TestPolicyStore:
    """Test saving and finding policies."""

    def test_save_and_get(self, store):
        policies = SchedulingPolicyStore(store)
        saved = policies.save_policy(make_policy(buffer_minutes=15, available_days=[3, 1, 1]))

        assert saved.id == "combustion-low-voltage"
        loaded = policies.get_policy(Team.COMBUSTION, "Low Voltage")
        assert loaded.buffer_minutes == 15
        assert loaded.available_days == [1, 3]

    def test_invalid_policy_not_saved(self, store):
        policies = SchedulingPolicyStore(store)

        with pytest.raises(ValueError):
            policies.save_policy(make_policy(duration_minutes=-1))
        assert policies.find_policy(Team.COMBUSTION, "Low Voltage") is None

    def test_missing_policy(self, store):
        with pytest.raises(NotFound) as exc_info:
            SchedulingPolicyStore(store).get_policy(Team.SOLAR, "Battery")

        assert "aren't set up" in exc_info.value.user_message

    def test_falls_back_to_scan(self, store):
        store.set(INTERVIEW_CONFIGS_COLLECTION, "hand-made", {
            "team": "Solar",
            "system": "Battery",
            "calendar_id": "battery@group.calendar.google.com",
        })

        policy = SchedulingPolicyStore(store).get_policy(Team.SOLAR, "Battery")

        assert policy.id == "hand-made"
        assert policy.duration_minutes == 30
        assert policy.timezone == "America/Chicago"

    def test_list_policies(self, store):
        policies = SchedulingPolicyStore(store)
        policies.save_policy(make_policy(system="Powertrain"))
        policies.save_policy(make_policy(system="Chassis"))
        policies.save_policy(make_policy(team=Team.SOLAR, system="Battery"))

        assert [p.system for p in policies.list_policies(Team.COMBUSTION)] == ["Chassis", "Powertrain"]
        assert len(policies.list_policies()) == 3

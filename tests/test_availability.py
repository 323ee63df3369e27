"""Tests for the availability engine and tenant rules."""

from datetime import datetime

import pytest

from tablebot.scheduling.availability import (
    AvailabilityReason,
    Occupancy,
    check_availability,
    covers_in_use,
    list_free_slots,
    suggest_alternatives,
)
from tablebot.scheduling.rules import TenantRules, get_rules, parse_range
from tests.conftest import TEST_TENANT

TUESDAY = "2030-01-01"
MONDAY = "2029-12-31"
SATURDAY = "2030-01-05"


def occupied(date: str, start: str, end: str, people: int) -> Occupancy:
    return Occupancy(
        start_at=datetime.fromisoformat(f"{date}T{start}"),
        end_at=datetime.fromisoformat(f"{date}T{end}"),
        party_size=people,
    )


class TestRules:
    def test_demo_tenant_registered(self):
        assert get_rules("demo").capacity == 40

    def test_unknown_tenant(self):
        assert get_rules("nowhere") is None

    def test_parse_range(self):
        assert parse_range("19:00-23:00") == (1140, 1380)

    def test_rejects_empty_range(self):
        with pytest.raises(ValueError, match="empty"):
            TenantRules(15, 120, 8, {"tue": ("23:00-19:00",)})

    def test_rejects_unknown_weekday(self):
        with pytest.raises(ValueError, match="weekday"):
            TenantRules(15, 120, 8, {"tuesday": ("19:00-23:00",)})

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError, match="capacity"):
            TenantRules(15, 120, 0)


class TestCheckAvailability:
    def test_unaligned_time_is_invalid_slot(self):
        result = check_availability(TEST_TENANT, TUESDAY, "19:07", 4)
        assert result == {"ok": False, "reason": AvailabilityReason.INVALID_SLOT}

    def test_duration_past_closing_is_outside_opening(self):
        result = check_availability(TEST_TENANT, TUESDAY, "21:30", 4)
        assert result["reason"] == AvailabilityReason.OUTSIDE_OPENING

    def test_fits_in_range(self):
        result = check_availability(TEST_TENANT, TUESDAY, "20:30", 4)
        assert result == {"ok": True, "reason": AvailabilityReason.AVAILABLE}

    def test_last_start_that_fits(self):
        assert check_availability(TEST_TENANT, TUESDAY, "21:00", 4)["ok"]

    def test_before_opening(self):
        result = check_availability(TEST_TENANT, TUESDAY, "18:00", 2)
        assert result["reason"] == AvailabilityReason.OUTSIDE_OPENING

    def test_closed_weekday(self):
        result = check_availability(TEST_TENANT, MONDAY, "20:00", 2)
        assert result["reason"] == AvailabilityReason.CLOSED

    def test_unknown_tenant(self):
        result = check_availability("nowhere", TUESDAY, "20:00", 2)
        assert result["reason"] == AvailabilityReason.RULES_NOT_FOUND

    def test_party_larger_than_room(self):
        result = check_availability(TEST_TENANT, TUESDAY, "20:00", 9)
        assert result["reason"] == AvailabilityReason.CAPACITY_EXCEEDED

    def test_closed_checked_before_slot_grid(self):
        result = check_availability(TEST_TENANT, MONDAY, "19:07", 2)
        assert result["reason"] == AvailabilityReason.CLOSED

    def test_lunch_range_on_saturday(self):
        assert check_availability(TEST_TENANT, SATURDAY, "12:30", 2)["ok"]
        result = check_availability(TEST_TENANT, SATURDAY, "14:00", 2)
        assert result["reason"] == AvailabilityReason.OUTSIDE_OPENING


class TestOverlapAwareCapacity:
    def test_overlapping_covers_are_summed(self):
        existing = [occupied(TUESDAY, "19:30", "21:30", 3), occupied(TUESDAY, "20:00", "22:00", 2)]
        assert check_availability(TEST_TENANT, TUESDAY, "20:30", 3, existing)["ok"]
        result = check_availability(TEST_TENANT, TUESDAY, "20:30", 4, existing)
        assert result["reason"] == AvailabilityReason.CAPACITY_EXCEEDED

    def test_touching_interval_does_not_overlap(self):
        existing = [occupied(TUESDAY, "19:00", "21:00", 8)]
        assert check_availability(TEST_TENANT, TUESDAY, "21:00", 8, existing)["ok"]

    def test_covers_in_use(self):
        existing = [occupied(TUESDAY, "19:00", "21:00", 4), occupied(TUESDAY, "21:00", "23:00", 2)]
        start = datetime(2030, 1, 1, 20, 0)
        end = datetime(2030, 1, 1, 22, 0)
        assert covers_in_use(existing, start, end) == 6

    def test_without_existing_view_only_static_checks_run(self):
        assert check_availability(TEST_TENANT, TUESDAY, "20:00", 8)["ok"]


class TestAlternatives:
    def test_candidate_order_is_plus_minus(self):
        alternatives = suggest_alternatives(TEST_TENANT, TUESDAY, "20:00", 2)
        assert alternatives == ["20:15", "19:45", "20:30"]

    def test_skips_rejected_candidates(self):
        # 21:15 and 21:30 run past closing
        alternatives = suggest_alternatives(TEST_TENANT, TUESDAY, "21:00", 2)
        assert alternatives == ["20:45", "20:30"]

    def test_unknown_tenant(self):
        assert suggest_alternatives("nowhere", TUESDAY, "20:00", 2) == []

    def test_list_free_slots_walks_ranges(self):
        slots = list_free_slots(TEST_TENANT, TUESDAY, 2, limit=3)
        assert slots == ["19:00", "19:15", "19:30"]

    def test_list_free_slots_respects_occupancy(self):
        existing = [occupied(TUESDAY, "19:00", "21:00", 8)]
        assert list_free_slots(TEST_TENANT, TUESDAY, 2, limit=10, existing=existing) == ["21:00"]

    def test_list_free_slots_closed_day(self):
        assert list_free_slots(TEST_TENANT, MONDAY, 2) == []

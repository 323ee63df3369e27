"""Tests for date and slot arithmetic."""

from datetime import datetime

import pytest

from tablebot.scheduling.timeslots import (
    align_to_slot,
    format_human,
    is_iso_date,
    is_valid_time,
    minutes_to_hhmm,
    parse_relative_date_token,
    to_datetime,
    to_minutes,
    weekday_key,
)

# Tuesday
NOW = datetime(2030, 1, 1, 12, 0)


class TestMinutes:
    def test_to_minutes(self):
        assert to_minutes("20:30") == 1230

    def test_to_minutes_past_midnight(self):
        assert to_minutes("24:30") == 1470

    def test_to_minutes_rejects_garbage(self):
        with pytest.raises(ValueError):
            to_minutes("venti")

    def test_to_minutes_rejects_bad_minutes(self):
        with pytest.raises(ValueError):
            to_minutes("20:75")

    def test_minutes_to_hhmm_pads(self):
        assert minutes_to_hhmm(545) == "09:05"

    def test_is_valid_time(self):
        assert is_valid_time("23:59")
        assert not is_valid_time("24:00")
        assert not is_valid_time("8pm")


class TestAlignToSlot:
    def test_aligned_time_round_trips(self):
        for hhmm in ("19:00", "19:15", "20:30", "22:45"):
            assert align_to_slot(hhmm, 15) == (True, hhmm)

    def test_unaligned_time_is_floored(self):
        result = align_to_slot("19:07", 15)
        assert not result.ok
        assert result.time == "19:00"

    def test_half_hour_grid(self):
        assert align_to_slot("20:45", 30) == (False, "20:30")


class TestDates:
    def test_to_datetime(self):
        assert to_datetime("2030-01-01", "20:30") == datetime(2030, 1, 1, 20, 30)

    def test_weekday_key(self):
        assert weekday_key("2030-01-01") == "tue"
        assert weekday_key("2030-01-06") == "sun"

    def test_is_iso_date(self):
        assert is_iso_date("2030-01-15")
        assert not is_iso_date("2030-02-30")
        assert not is_iso_date("15/01/2030")

    def test_format_human(self):
        assert format_human("2030-01-21", "20:30") == "21/01/2030 alle 20:30"


class TestRelativeDates:
    @pytest.mark.parametrize("token,expected", [
        ("oggi", "2030-01-01"),
        ("stasera", "2030-01-01"),
        ("domani", "2030-01-02"),
        ("Dopodomani", "2030-01-03"),
    ])
    def test_relative_words(self, token, expected):
        assert parse_relative_date_token(token, now=NOW) == expected

    def test_weekday_resolves_forward(self):
        assert parse_relative_date_token("venerdì", now=NOW) == "2030-01-04"

    def test_same_weekday_means_next_week(self):
        assert parse_relative_date_token("martedì", now=NOW) == "2030-01-08"

    def test_prossimo_adds_a_week(self):
        assert parse_relative_date_token("venerdi prossimo", now=NOW) == "2030-01-11"

    def test_iso_passes_through(self):
        assert parse_relative_date_token("2030-03-15", now=NOW) == "2030-03-15"

    def test_unknown_token(self):
        assert parse_relative_date_token("fra un po'", now=NOW) is None

"""Tests for meeting timezone options."""

from datetime import datetime, timezone

import pytest

from waraqa_meetings.timezones import (
    current_offset_minutes,
    format_offset,
    get_local_timezone,
    get_meeting_timezone_options,
    get_prioritized_meeting_timezones,
    is_valid_timezone,
)

JUNE = datetime(2024, 6, 9, 8, 0, tzinfo=timezone.utc)
JANUARY = datetime(2024, 1, 9, 8, 0, tzinfo=timezone.utc)


def test_is_valid_timezone():
    assert is_valid_timezone("Africa/Cairo")
    assert not is_valid_timezone("Mars/Olympus")
    assert not is_valid_timezone("")
    assert not is_valid_timezone(None)


def test_offset_is_dst_aware():
    assert current_offset_minutes("America/New_York", JUNE) == -240
    assert current_offset_minutes("America/New_York", JANUARY) == -300
    assert current_offset_minutes("Asia/Kolkata", JUNE) == 330


@pytest.mark.parametrize(
    "minutes,expected",
    [(0, "UTC+0"), (180, "UTC+3"), (-240, "UTC-4"), (330, "UTC+5:30")],
)
def test_format_offset(minutes, expected):
    assert format_offset(minutes) == expected


def test_options_sorted_by_offset():
    options = get_meeting_timezone_options(JUNE)
    offsets = [option["offset_minutes"] for option in options]
    assert offsets == sorted(offsets)
    cairo = next(option for option in options if option["value"] == "Africa/Cairo")
    assert cairo["label"] == "Cairo, Egypt (UTC+3)"


def test_primary_timezone_comes_first():
    options = get_prioritized_meeting_timezones("Asia/Dubai", JUNE)
    assert options[0]["value"] == "Asia/Dubai"
    assert len(options) == len(get_meeting_timezone_options(JUNE))


def test_unlisted_primary_is_prepended():
    options = get_prioritized_meeting_timezones("Asia/Tokyo", JUNE)
    assert options[0] == {"value": "Asia/Tokyo", "label": "Asia/Tokyo", "offset_minutes": 540}
    assert len(options) == len(get_meeting_timezone_options(JUNE)) + 1


def test_blank_primary_keeps_order():
    assert get_prioritized_meeting_timezones("  ", JUNE) == get_meeting_timezone_options(JUNE)


def test_local_timezone_from_env(monkeypatch):
    monkeypatch.setenv("TZ", "Europe/Paris")
    assert get_local_timezone() == "Europe/Paris"

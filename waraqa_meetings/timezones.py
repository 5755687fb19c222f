"""Timezone options offered when booking meetings."""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Africa/Cairo"

# (IANA name, city, country)
MEETING_TIMEZONES: list[tuple[str, str, str]] = [
    ("UTC", "UTC", "Coordinated Universal Time"),
    ("Africa/Cairo", "Cairo", "Egypt"),
    ("Africa/Johannesburg", "Johannesburg", "South Africa"),
    ("Africa/Lagos", "Lagos", "Nigeria"),
    ("Africa/Casablanca", "Casablanca", "Morocco"),
    ("Africa/Nairobi", "Nairobi", "Kenya"),
    ("Africa/Algiers", "Algiers", "Algeria"),
    ("Africa/Tunis", "Tunis", "Tunisia"),
    ("Asia/Dubai", "Dubai", "UAE"),
    ("Asia/Riyadh", "Riyadh", "Saudi Arabia"),
    ("Asia/Kuwait", "Kuwait City", "Kuwait"),
    ("Asia/Qatar", "Doha", "Qatar"),
    ("Asia/Amman", "Amman", "Jordan"),
    ("Asia/Istanbul", "Istanbul", "Turkey"),
    ("Asia/Kolkata", "Mumbai/Delhi", "India"),
    ("Asia/Karachi", "Karachi", "Pakistan"),
    ("Asia/Kuala_Lumpur", "Kuala Lumpur", "Malaysia"),
    ("Asia/Jakarta", "Jakarta", "Indonesia"),
    ("Europe/London", "London", "United Kingdom"),
    ("Europe/Paris", "Paris", "France"),
    ("Europe/Berlin", "Berlin", "Germany"),
    ("Europe/Amsterdam", "Amsterdam", "Netherlands"),
    ("Europe/Stockholm", "Stockholm", "Sweden"),
    ("Europe/Moscow", "Moscow", "Russia"),
    ("America/New_York", "New York", "USA"),
    ("America/Chicago", "Chicago", "USA"),
    ("America/Denver", "Denver", "USA"),
    ("America/Los_Angeles", "Los Angeles", "USA"),
    ("America/Toronto", "Toronto", "Canada"),
    ("America/Sao_Paulo", "São Paulo", "Brazil"),
    ("Australia/Sydney", "Sydney", "Australia"),
    ("Pacific/Auckland", "Auckland", "New Zealand"),
]


def is_valid_timezone(name: Optional[str]) -> bool:
    if not name:
        return False
    try:
        ZoneInfo(name)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False


def current_offset_minutes(name: str, now: Optional[datetime] = None) -> int:
    """Current UTC offset of ``name`` in minutes (DST-aware)."""
    moment = now or datetime.now(ZoneInfo("UTC"))
    offset = moment.astimezone(ZoneInfo(name)).utcoffset()
    return int(offset.total_seconds() // 60) if offset else 0


def format_offset(minutes: int) -> str:
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    if mins:
        return f"UTC{sign}{hours}:{mins:02d}"
    return f"UTC{sign}{hours}"


def get_local_timezone(fallback: str = DEFAULT_TIMEZONE) -> str:
    """Best-effort IANA name of the machine timezone."""
    env_tz = os.environ.get("TZ", "").lstrip(":")
    if is_valid_timezone(env_tz):
        return env_tz

    localtime = Path("/etc/localtime")
    try:
        resolved = str(localtime.resolve())
    except OSError:
        return fallback
    if "zoneinfo/" in resolved:
        candidate = resolved.split("zoneinfo/", 1)[1]
        if is_valid_timezone(candidate):
            return candidate
    logger.debug("Unable to detect local timezone, using %s", fallback)
    return fallback


def _option(name: str, city: str, country: str, now: datetime) -> dict[str, Any]:
    offset = current_offset_minutes(name, now)
    return {
        "value": name,
        "label": f"{city}, {country} ({format_offset(offset)})",
        "offset_minutes": offset,
    }


def get_meeting_timezone_options(now: Optional[datetime] = None) -> list[dict[str, Any]]:
    """Timezone options sorted by current offset, then label."""
    moment = now or datetime.now(ZoneInfo("UTC"))
    options = [_option(name, city, country, moment) for name, city, country in MEETING_TIMEZONES]
    return sorted(options, key=lambda opt: (opt["offset_minutes"], opt["label"]))


def get_prioritized_meeting_timezones(
    primary: Optional[str], now: Optional[datetime] = None
) -> list[dict[str, Any]]:
    """Put ``primary`` first; unknown names are prepended as-is."""
    options = get_meeting_timezone_options(now)
    normalized = primary.strip() if isinstance(primary, str) else ""
    if not normalized:
        return options

    for index, option in enumerate(options):
        if option["value"] == normalized:
            return [options.pop(index)] + options

    offset = current_offset_minutes(normalized, now) if is_valid_timezone(normalized) else 0
    return [
        {"value": normalized, "label": normalized, "offset_minutes": offset}
    ] + options

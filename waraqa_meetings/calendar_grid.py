"""Day bucketing and month grids for meeting availability.

Everything here is pure and takes the viewer's IANA timezone explicitly.
Day keys are ``YYYY-MM-DD`` strings for the calendar day *as observed in
that timezone*, so the same instant can land on different days for
different viewers. Unknown timezone names raise ``ZoneInfoNotFoundError``.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from waraqa_meetings.models import AvailabilityWindow, DayBucket

UTC = dt_timezone.utc

# Month grid cells sit at noon UTC so DST shifts never move them across a day.
GRID_CELL_HOUR = 12


def _localize(moment: datetime, timezone: str) -> datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(ZoneInfo(timezone))


def format_day_key(moment: datetime, timezone: str = "UTC") -> str:
    return _localize(moment, timezone).strftime("%Y-%m-%d")


def format_day_title(moment: datetime, timezone: str = "UTC") -> str:
    """Human label such as ``Mon, Jun 10``."""
    local = _localize(moment, timezone)
    return f"{local:%a}, {local:%b} {local.day}"


def format_time_label(moment: datetime, timezone: str = "UTC") -> str:
    """Human label such as ``9:00 AM``."""
    local = _localize(moment, timezone)
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {suffix}"


def group_availability(
    windows: Iterable[AvailabilityWindow], timezone: str
) -> dict[str, DayBucket]:
    """Bucket windows by local day; buckets keep first-seen order."""
    buckets: dict[str, DayBucket] = {}
    for window in windows:
        day_key = format_day_key(window.start, timezone)
        bucket = buckets.get(day_key)
        if bucket is None:
            bucket = DayBucket(
                day_key=day_key, title=format_day_title(window.start, timezone)
            )
            buckets[day_key] = bucket
        bucket.slots.append(window)
    return buckets


def day_entries(
    buckets: dict[str, DayBucket], min_day_key: str, max_day_key: str
) -> list[DayBucket]:
    """Flat, sorted list of the buckets inside ``[min_day_key, max_day_key]``."""
    return [
        buckets[key]
        for key in sorted(buckets)
        if min_day_key <= key <= max_day_key
    ]


def lookahead_bounds(now: datetime, timezone: str, days: int) -> tuple[str, str]:
    """Day keys for today and today + ``days`` in ``timezone``."""
    return (
        format_day_key(now, timezone),
        format_day_key(now + timedelta(days=days), timezone),
    )


def make_month_day(year: int, month_index: int, day: int) -> datetime:
    return datetime(year, month_index + 1, day, GRID_CELL_HOUR, tzinfo=UTC)


def days_in_month(year: int, month_index: int) -> int:
    return calendar.monthrange(year, month_index + 1)[1]


def weekday_index(moment: datetime, timezone: str) -> int:
    """Sunday-based weekday (0=Sunday) of ``moment`` in ``timezone``."""
    return (_localize(moment, timezone).weekday() + 1) % 7


def build_month_grid(
    year: int, month_index: int, timezone: str
) -> list[Optional[datetime]]:
    """Seven-column grid for a month; ``None`` cells are padding.

    ``month_index`` is zero-based (0=January).
    """
    if not 0 <= month_index <= 11:
        raise ValueError(f"month_index must be between 0 and 11, got {month_index}")

    first = make_month_day(year, month_index, 1)
    cells: list[Optional[datetime]] = [None] * weekday_index(first, timezone)
    for day in range(1, days_in_month(year, month_index) + 1):
        cells.append(make_month_day(year, month_index, day))
    while len(cells) % 7 != 0:
        cells.append(None)
    return cells


@dataclass
class CalendarDay:
    """A real (non-padding) grid cell annotated for the picker."""

    date: datetime
    day_key: str
    day_number: int
    has_slots: bool
    selectable: bool


def annotate_grid(
    cells: list[Optional[datetime]],
    buckets: dict[str, DayBucket],
    timezone: str,
    min_day_key: str,
    max_day_key: str,
) -> list[Optional[CalendarDay]]:
    """Mark which grid days have slots and fall inside the look-ahead window."""
    annotated: list[Optional[CalendarDay]] = []
    for cell in cells:
        if cell is None:
            annotated.append(None)
            continue
        day_key = format_day_key(cell, timezone)
        bucket = buckets.get(day_key)
        has_slots = bool(bucket and bucket.slots)
        in_range = min_day_key <= day_key <= max_day_key
        annotated.append(
            CalendarDay(
                date=cell,
                day_key=day_key,
                day_number=_localize(cell, timezone).day,
                has_slots=has_slots,
                selectable=has_slots and in_range,
            )
        )
    return annotated


def month_key(year: int, month_index: int) -> str:
    return f"{year:04d}-{month_index + 1:02d}"


def parse_month_key(key: str) -> tuple[int, int]:
    """``"2024-06"`` -> ``(2024, 5)``."""
    try:
        year_str, month_str = str(key).split("-", 1)
        year, month = int(year_str), int(month_str)
    except ValueError:
        raise ValueError(f"Invalid month key '{key}'. Expected YYYY-MM")
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month key '{key}'. Month must be 01-12")
    return year, month - 1


def shift_month_key(key: str, delta: int) -> str:
    year, month_index = parse_month_key(key)
    total = year * 12 + month_index + delta
    return month_key(total // 12, total % 12)


def clamp_month_key(key: str, min_key: str, max_key: str) -> str:
    # YYYY-MM keys sort lexicographically
    if key < min_key:
        return min_key
    if key > max_key:
        return max_key
    return key

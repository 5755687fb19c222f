"""Value types exchanged with the meetings API."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

UTC = timezone.utc


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp from the API. Naive values are read as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def to_iso_utc(dt: datetime) -> str:
    """Render like JavaScript's ``Date.toISOString``: 2024-06-10T09:00:00.000Z."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    utc = dt.astimezone(UTC)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class AvailabilityWindow:
    """A bookable interval declared by the backend."""

    start: datetime
    start_utc: str
    end: Optional[datetime] = None
    end_utc: Optional[str] = None
    timezone: Optional[str] = None
    meeting_type: Optional[str] = None

    @property
    def slot_id(self) -> str:
        return self.start_utc

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AvailabilityWindow":
        raw_start_utc = data.get("startUtc")
        start = parse_timestamp(raw_start_utc) or parse_timestamp(data.get("start"))
        if start is None:
            raise ValueError(f"Availability window without a start: {data!r}")
        end = parse_timestamp(data.get("endUtc")) or parse_timestamp(data.get("end"))
        start_utc = raw_start_utc if isinstance(raw_start_utc, str) and raw_start_utc else to_iso_utc(start)
        end_utc = data.get("endUtc") or (to_iso_utc(end) if end else None)
        return cls(
            start=start,
            start_utc=start_utc,
            end=end,
            end_utc=end_utc,
            timezone=data.get("timezone"),
            meeting_type=data.get("meetingType"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": to_iso_utc(self.start),
            "startUtc": self.start_utc,
            "end": to_iso_utc(self.end) if self.end else None,
            "endUtc": self.end_utc,
        }


@dataclass
class DayBucket:
    day_key: str
    title: str
    slots: List[AvailabilityWindow] = field(default_factory=list)


@dataclass
class CalendarLinks:
    """Calendar artifacts returned with a booking confirmation."""

    ics_content: Optional[str] = None
    google_calendar_link: Optional[str] = None
    outlook_calendar_link: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CalendarLinks":
        data = data or {}
        return cls(
            ics_content=data.get("icsContent"),
            google_calendar_link=data.get("googleCalendarLink"),
            outlook_calendar_link=data.get("outlookCalendarLink"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "icsContent": self.ics_content,
            "googleCalendarLink": self.google_calendar_link,
            "outlookCalendarLink": self.outlook_calendar_link,
        }


@dataclass
class BookingResult:
    message: str
    meeting: Dict[str, Any] = field(default_factory=dict)
    calendar: CalendarLinks = field(default_factory=CalendarLinks)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookingResult":
        return cls(
            message=data.get("message") or "Meeting booked successfully",
            meeting=data.get("meeting") or {},
            calendar=CalendarLinks.from_dict(data.get("calendar")),
        )


@dataclass
class Branding:
    title: str = "Waraqa"
    slogan: str = "Welcome"
    logo_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Branding":
        data = data or {}
        logo = data.get("logo") or {}
        return cls(
            title=data.get("title") or "Waraqa",
            slogan=data.get("slogan") or "Welcome",
            logo_url=logo.get("url") or logo.get("dataUri") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "slogan": self.slogan, "logo_url": self.logo_url}

"""Pytest fixtures for meetings tests."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx
import pytest

from waraqa_meetings.booking import BookingSession, get_booking_flow
from waraqa_meetings.calendar_preference import CalendarPreferenceStore
from waraqa_meetings.constants import MeetingType
from waraqa_meetings.meetings_client import MeetingsClient
from waraqa_meetings.models import AvailabilityWindow, BookingResult

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

UTC = timezone.utc

# A Sunday morning; the evaluation look-ahead runs to 2024-06-30.
FIXED_NOW = datetime(2024, 6, 9, 8, 0, tzinfo=UTC)


def window(start_utc: str, end_utc: Optional[str] = None) -> AvailabilityWindow:
    data = {"startUtc": start_utc}
    if end_utc:
        data["endUtc"] = end_utc
    return AvailabilityWindow.from_dict(data)


SAMPLE_WINDOWS_JSON = [
    {
        "start": "2024-06-10T09:00:00.000Z",
        "end": "2024-06-10T09:30:00.000Z",
        "startUtc": "2024-06-10T09:00:00.000Z",
        "endUtc": "2024-06-10T09:30:00.000Z",
        "timezone": "UTC",
        "meetingType": "new_student_evaluation",
    },
    {
        "start": "2024-06-10T10:00:00.000Z",
        "end": "2024-06-10T10:30:00.000Z",
        "startUtc": "2024-06-10T10:00:00.000Z",
        "endUtc": "2024-06-10T10:30:00.000Z",
        "timezone": "UTC",
        "meetingType": "new_student_evaluation",
    },
    {
        "start": "2024-06-12T14:00:00.000Z",
        "end": "2024-06-12T14:30:00.000Z",
        "startUtc": "2024-06-12T14:00:00.000Z",
        "endUtc": "2024-06-12T14:30:00.000Z",
        "timezone": "UTC",
        "meetingType": "new_student_evaluation",
    },
]

BOOKING_RESPONSE_JSON = {
    "message": "Meeting booked successfully",
    "meeting": {"_id": "m1", "meetingType": "new_student_evaluation"},
    "calendar": {
        "icsContent": "BEGIN:VCALENDAR\nEND:VCALENDAR",
        "googleCalendarLink": "https://calendar.google.com/render?x=1",
        "outlookCalendarLink": "https://outlook.live.com/calendar?x=1",
    },
}


@pytest.fixture
def sample_windows() -> list[AvailabilityWindow]:
    return [AvailabilityWindow.from_dict(item) for item in SAMPLE_WINDOWS_JSON]


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


class FakeMeetingsClient:
    """Stands in for ``MeetingsClient`` and records every call."""

    def __init__(
        self,
        windows: Optional[list[AvailabilityWindow]] = None,
        booking_result: Optional[BookingResult] = None,
        book_error: Optional[Exception] = None,
        fetch_error: Optional[Exception] = None,
    ):
        self.windows = list(windows or [])
        self.booking_result = booking_result or BookingResult.from_dict(BOOKING_RESPONSE_JSON)
        self.book_error = book_error
        self.fetch_error = fetch_error
        self.fetch_calls: list[dict[str, Any]] = []
        self.book_calls: list[dict[str, Any]] = []
        # Optional per-call gates: (event, windows) consumed in order.
        self.gates: list[tuple[asyncio.Event, list[AvailabilityWindow]]] = []
        # Holds book_meeting until set.
        self.book_gate: Optional[asyncio.Event] = None

    async def fetch_availability(self, meeting_type, range_start=None, range_end=None, timezone=None):
        self.fetch_calls.append(
            {
                "meeting_type": meeting_type,
                "range_start": range_start,
                "range_end": range_end,
                "timezone": timezone,
            }
        )
        if self.gates:
            event, windows = self.gates.pop(0)
            await event.wait()
            return list(windows)
        if self.fetch_error:
            raise self.fetch_error
        return list(self.windows)

    async def book_meeting(self, payload):
        self.book_calls.append(payload)
        if self.book_gate:
            await self.book_gate.wait()
        if self.book_error:
            raise self.book_error
        return self.booking_result

    async def close(self):
        pass


@pytest.fixture
def fake_client(sample_windows) -> FakeMeetingsClient:
    return FakeMeetingsClient(windows=sample_windows)


@pytest.fixture
def preference_store(tmp_path) -> CalendarPreferenceStore:
    return CalendarPreferenceStore(tmp_path / "preferences.yaml")


@pytest.fixture
def make_session(fake_client, fixed_clock, preference_store):
    def _make(
        meeting_type: MeetingType = MeetingType.NEW_STUDENT_EVALUATION,
        timezone: str = "UTC",
        client=None,
        **kwargs,
    ) -> BookingSession:
        return BookingSession(
            client or fake_client,
            get_booking_flow(meeting_type),
            timezone,
            preferences=kwargs.pop("preferences", preference_store),
            clock=fixed_clock,
            **kwargs,
        )

    return _make


def mock_transport_client(
    handler: Callable[[httpx.Request], httpx.Response],
    token: Optional[str] = "test-token",
) -> MeetingsClient:
    return MeetingsClient(
        base_url="http://meetings.test/api",
        token=token,
        transport=httpx.MockTransport(handler),
    )


def json_body(request: httpx.Request) -> dict[str, Any]:
    return json.loads(request.content.decode("utf-8"))

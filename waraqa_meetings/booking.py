"""Slot selection and booking flow for meeting types.

A ``BookingSession`` walks a viewer through picking a day, a time and
submitting a booking:

    NO_DAY_SELECTED -> DAY_SELECTED -> SLOT_SELECTED -> SUBMITTING -> BOOKED
                                                              \\-> FAILED -> SLOT_SELECTED

Every availability refetch (manual refresh or timezone switch) returns the
session to NO_DAY_SELECTED. Each fetch captures a generation token and its
result is applied only while that token is still the latest, so a slow
superseded response can never overwrite a newer one.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone as dt_timezone
from enum import Enum
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

from waraqa_meetings.calendar_grid import (
    CalendarDay,
    annotate_grid,
    build_month_grid,
    clamp_month_key,
    day_entries,
    group_availability,
    lookahead_bounds,
    parse_month_key,
    shift_month_key,
)
from waraqa_meetings.calendar_preference import (
    DEFAULT_CALENDAR_PREFERENCE,
    CalendarAction,
    CalendarArtifactHandler,
    CalendarPreferenceStore,
)
from waraqa_meetings.constants import CALENDAR_PREFERENCES, MeetingType
from waraqa_meetings.meetings_client import (
    BookingConflictError,
    MeetingsAPIError,
    MeetingsClient,
    MeetingsUnavailableError,
)
from waraqa_meetings.models import AvailabilityWindow, BookingResult, DayBucket

logger = logging.getLogger(__name__)

UTC = dt_timezone.utc


class BookingState(Enum):
    NO_DAY_SELECTED = "no_day_selected"
    DAY_SELECTED = "day_selected"
    SLOT_SELECTED = "slot_selected"
    SUBMITTING = "submitting"
    BOOKED = "booked"
    FAILED = "failed"


class BookingValidationError(ValueError):
    """A selection or form field is missing or invalid."""


@dataclass
class BookingError:
    """Inline error shown next to the booking form.

    ``kind`` is one of ``fetch``, ``validation``, ``conflict`` or ``server``.
    """

    kind: str
    message: str


@dataclass(frozen=True)
class BookingFlow:
    meeting_type: MeetingType
    fetch_days: int
    lookahead_days: int
    ics_filename: str


BOOKING_FLOWS = {
    MeetingType.NEW_STUDENT_EVALUATION: BookingFlow(
        meeting_type=MeetingType.NEW_STUDENT_EVALUATION,
        fetch_days=21,
        lookahead_days=21,
        ics_filename="evaluation.ics",
    ),
    MeetingType.CURRENT_STUDENT_FOLLOW_UP: BookingFlow(
        meeting_type=MeetingType.CURRENT_STUDENT_FOLLOW_UP,
        fetch_days=21,
        lookahead_days=10,
        ics_filename="guardian-follow-up.ics",
    ),
    MeetingType.TEACHER_SYNC: BookingFlow(
        meeting_type=MeetingType.TEACHER_SYNC,
        fetch_days=30,
        lookahead_days=10,
        ics_filename="teacher-sync.ics",
    ),
}


def get_booking_flow(
    meeting_type: MeetingType, lookahead_days: Optional[int] = None
) -> BookingFlow:
    flow = BOOKING_FLOWS[meeting_type]
    if lookahead_days is not None:
        flow = replace(flow, lookahead_days=lookahead_days)
    return flow


@dataclass
class UserProfile:
    """The signed-in user making a booking, as known to the dashboard."""

    id: Optional[str] = None
    full_name: str = ""
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None

    def display_name(self, fallback: str = "") -> str:
        if self.full_name.strip():
            return self.full_name.strip()
        joined = f"{self.first_name} {self.last_name}".strip()
        return joined or fallback

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "UserProfile":
        data = data or {}
        return cls(
            id=data.get("id") or data.get("_id"),
            full_name=data.get("full_name") or data.get("fullName") or "",
            first_name=data.get("first_name") or data.get("firstName") or "",
            last_name=data.get("last_name") or data.get("lastName") or "",
            email=data.get("email"),
            phone=data.get("phone"),
        )


@dataclass
class StudentEntry:
    first_name: str = ""
    last_name: str = ""
    age: Optional[str] = None
    gender: str = ""
    notes: str = ""

    def cleaned(self) -> "StudentEntry":
        return StudentEntry(
            first_name=(self.first_name or "").strip(),
            last_name=(self.last_name or "").strip(),
            age=str(self.age).strip() if self.age not in (None, "") else None,
            gender=(self.gender or "").strip(),
            notes=(self.notes or "").strip(),
        )

    @property
    def is_blank(self) -> bool:
        return not (self.first_name or self.last_name or self.age or self.gender or self.notes)

    @property
    def is_complete(self) -> bool:
        return bool(self.first_name and self.last_name)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "studentName": f"{self.first_name} {self.last_name}".strip(),
            "firstName": self.first_name,
            "lastName": self.last_name,
            "isExistingStudent": False,
        }
        if self.age:
            try:
                payload["age"] = int(self.age)
            except ValueError:
                raise BookingValidationError(f"Invalid age for {payload['studentName']}.")
        if self.gender:
            payload["gender"] = self.gender
        if self.notes:
            payload["notes"] = self.notes
        return payload


class BookingRequest:
    """Form fields collected for one meeting type."""

    meeting_type: MeetingType

    def validate(self) -> None:
        raise NotImplementedError

    def build_payload(
        self, slot: AvailabilityWindow, timezone: str, preference: str
    ) -> dict[str, Any]:
        raise NotImplementedError


@dataclass
class EvaluationRequest(BookingRequest):
    """Public evaluation booking made by a (possibly new) guardian."""

    guardian_name: str = ""
    guardian_email: str = ""
    guardian_phone: str = ""
    students: list[StudentEntry] = field(default_factory=list)
    notes: str = ""

    meeting_type = MeetingType.NEW_STUDENT_EVALUATION

    def _valid_students(self) -> list[StudentEntry]:
        return [s for s in (st.cleaned() for st in self.students) if s.is_complete]

    def validate(self) -> None:
        if not self.guardian_name.strip():
            raise BookingValidationError("Please enter your name.")
        if not self.guardian_email.strip():
            raise BookingValidationError("Please enter your email.")
        cleaned = [student.cleaned() for student in self.students]
        if any(not s.is_blank and not s.is_complete for s in cleaned):
            raise BookingValidationError(
                "Please enter both first and last name for each student."
            )
        if not any(s.is_complete for s in cleaned):
            raise BookingValidationError("Please add at least one student.")

    def build_payload(
        self, slot: AvailabilityWindow, timezone: str, preference: str
    ) -> dict[str, Any]:
        return {
            "meetingType": self.meeting_type.value,
            "startTime": slot.start_utc,
            "timezone": "UTC",
            "guardian": {
                "guardianName": self.guardian_name.strip(),
                "guardianEmail": self.guardian_email.strip(),
                "guardianPhone": self.guardian_phone.strip(),
                "timezone": timezone,
                "preferredCalendar": preference,
            },
            "students": [student.to_payload() for student in self._valid_students()],
            "notes": self.notes.strip(),
            "calendarPreference": preference,
        }


@dataclass
class FollowUpRequest(BookingRequest):
    """A guardian's follow-up about one of their existing students."""

    requester: UserProfile = field(default_factory=UserProfile)
    student_id: str = ""
    student_name: str = ""
    notes: str = ""

    meeting_type = MeetingType.CURRENT_STUDENT_FOLLOW_UP

    def validate(self) -> None:
        if not self.student_id:
            raise BookingValidationError("Select a student and a time slot.")

    def build_payload(
        self, slot: AvailabilityWindow, timezone: str, preference: str
    ) -> dict[str, Any]:
        return {
            "meetingType": self.meeting_type.value,
            "startTime": slot.start_utc,
            "timezone": "UTC",
            "guardian": {
                "guardianName": self.requester.display_name("Guardian"),
                "guardianEmail": self.requester.email,
                "guardianPhone": self.requester.phone,
                "timezone": timezone,
                "preferredCalendar": preference,
            },
            "calendarPreference": preference,
            "students": [
                {
                    "studentId": self.student_id,
                    "studentName": self.student_name or "Student",
                    "isExistingStudent": True,
                    "notes": self.notes,
                }
            ],
            "notes": self.notes,
        }


@dataclass
class TeacherSyncRequest(BookingRequest):
    """A teacher's sync with the admin team."""

    requester: UserProfile = field(default_factory=UserProfile)
    students_notes: str = ""
    agenda: str = ""

    meeting_type = MeetingType.TEACHER_SYNC

    def validate(self) -> None:
        pass

    def student_names(self) -> list[str]:
        return [name.strip() for name in re.split(r"[\n,]", self.students_notes) if name.strip()]

    def build_payload(
        self, slot: AvailabilityWindow, timezone: str, preference: str
    ) -> dict[str, Any]:
        return {
            "meetingType": self.meeting_type.value,
            "startTime": slot.start_utc,
            "timezone": "UTC",
            "teacher": {
                "teacherId": self.requester.id,
                "teacherName": self.requester.display_name(),
                "timezone": timezone,
                "calendarPreference": preference,
            },
            "students": [
                {"studentName": name, "isExistingStudent": True}
                for name in self.student_names()
            ],
            "notes": self.agenda,
            "calendarPreference": preference,
        }


def _utc_now() -> datetime:
    return datetime.now(UTC)


class BookingSession:
    """Per-viewer booking state for one meeting type."""

    def __init__(
        self,
        client: MeetingsClient,
        flow: BookingFlow,
        timezone: str,
        preferences: Optional[CalendarPreferenceStore] = None,
        artifacts: Optional[CalendarArtifactHandler] = None,
        clock: Callable[[], datetime] = _utc_now,
        calendar_preference: Optional[str] = None,
    ):
        ZoneInfo(timezone)
        if calendar_preference is not None and calendar_preference not in CALENDAR_PREFERENCES:
            raise ValueError(f"Invalid calendar preference '{calendar_preference}'")
        self.client = client
        self.flow = flow
        self.timezone = timezone
        self.preferences = preferences
        self.artifacts = artifacts
        self._clock = clock

        self.state = BookingState.NO_DAY_SELECTED
        self.availability: list[AvailabilityWindow] = []
        self.selected_day_key: Optional[str] = None
        self.selected_slot_id: Optional[str] = None
        self.error: Optional[BookingError] = None
        self.loading = False
        self.result: Optional[BookingResult] = None
        self.calendar_action: Optional[CalendarAction] = None
        # Per-session choice; unlike the setter it is not written to the store.
        self._calendar_preference: Optional[str] = calendar_preference
        self._generation = 0
        self.visible_month_key = self.min_month_key

    def now(self) -> datetime:
        return self._clock()

    def _set_state(self, state: BookingState) -> None:
        if state is not self.state:
            logger.debug(f"Booking state {self.state.value} -> {state.value}")
        self.state = state

    def _require_not_submitting(self) -> None:
        if self.state is BookingState.SUBMITTING:
            raise BookingValidationError("A booking is already being submitted.")

    def _clear_selection(self) -> None:
        self.selected_day_key = None
        self.selected_slot_id = None
        self._set_state(BookingState.NO_DAY_SELECTED)

    # Availability

    async def load_availability(self) -> bool:
        """Fetch availability; returns False when the result was not applied."""
        self._require_not_submitting()
        self._generation += 1
        token = self._generation
        self.loading = True
        self.error = None
        start = self.now()
        end = start + timedelta(days=self.flow.fetch_days)
        try:
            windows = await self.client.fetch_availability(
                self.flow.meeting_type,
                range_start=start,
                range_end=end,
                timezone=self.timezone,
            )
        except (MeetingsAPIError, MeetingsUnavailableError) as e:
            if token != self._generation:
                logger.debug(f"Ignoring failure of superseded availability fetch {token}")
                return False
            if self.state is BookingState.SUBMITTING:
                logger.info(f"Ignoring availability failure during a submit: {e}")
                self.loading = False
                return False
            logger.warning(f"Failed to load availability for {self.flow.meeting_type.value}: {e}")
            self.loading = False
            self.availability = []
            self._clear_selection()
            self.error = BookingError("fetch", str(e) or "Unable to load availability")
            return False

        if token != self._generation:
            logger.info(
                f"Discarding stale availability response (generation {token}, "
                f"latest {self._generation})"
            )
            return False
        if self.state is BookingState.SUBMITTING:
            logger.info("Discarding availability response that landed during a submit")
            self.loading = False
            return False

        self.loading = False
        self.availability = sorted(windows, key=lambda window: window.start)
        self._clear_selection()
        self.visible_month_key = clamp_month_key(
            self.visible_month_key, self.min_month_key, self.max_month_key
        )
        return True

    async def refresh(self) -> bool:
        self._require_not_submitting()
        self._clear_selection()
        return await self.load_availability()

    async def set_timezone(self, timezone: str) -> bool:
        self._require_not_submitting()
        ZoneInfo(timezone)
        self.timezone = timezone
        self._clear_selection()
        return await self.load_availability()

    @property
    def buckets(self) -> dict[str, DayBucket]:
        return group_availability(self.availability, self.timezone)

    @property
    def bounds(self) -> tuple[str, str]:
        return lookahead_bounds(self.now(), self.timezone, self.flow.lookahead_days)

    @property
    def day_entries(self) -> list[DayBucket]:
        min_key, max_key = self.bounds
        return day_entries(self.buckets, min_key, max_key)

    # Month picker

    @property
    def min_month_key(self) -> str:
        return self.bounds[0][:7]

    @property
    def max_month_key(self) -> str:
        return self.bounds[1][:7]

    def show_month(self, key: str) -> str:
        parse_month_key(key)
        self.visible_month_key = clamp_month_key(key, self.min_month_key, self.max_month_key)
        return self.visible_month_key

    def next_month(self) -> str:
        return self.show_month(shift_month_key(self.visible_month_key, 1))

    def previous_month(self) -> str:
        return self.show_month(shift_month_key(self.visible_month_key, -1))

    def month_grid(self, key: Optional[str] = None) -> list[Optional[CalendarDay]]:
        year, month_index = parse_month_key(key or self.visible_month_key)
        min_key, max_key = self.bounds
        cells = build_month_grid(year, month_index, self.timezone)
        return annotate_grid(cells, self.buckets, self.timezone, min_key, max_key)

    # Selection

    def is_day_selectable(self, day_key: str) -> bool:
        min_key, max_key = self.bounds
        bucket = self.buckets.get(day_key)
        return bool(bucket and bucket.slots) and min_key <= day_key <= max_key

    def select_day(self, day_key: str) -> DayBucket:
        if self.state is BookingState.SUBMITTING:
            raise BookingValidationError("A booking is already being submitted.")
        if not self.is_day_selectable(day_key):
            raise BookingValidationError(f"No bookable times on {day_key}.")
        self.selected_day_key = day_key
        self.selected_slot_id = None
        self._set_state(BookingState.DAY_SELECTED)
        return self.buckets[day_key]

    @property
    def selected_day_slots(self) -> list[AvailabilityWindow]:
        if not self.selected_day_key:
            return []
        bucket = self.buckets.get(self.selected_day_key)
        if not bucket:
            return []
        return sorted(bucket.slots, key=lambda window: window.start)

    def select_slot(self, slot_id: str) -> AvailabilityWindow:
        if self.state is BookingState.SUBMITTING:
            raise BookingValidationError("A booking is already being submitted.")
        if not self.selected_day_key:
            raise BookingValidationError("Choose a day to see available times.")
        for window in self.selected_day_slots:
            if window.slot_id == slot_id:
                self.selected_slot_id = slot_id
                self._set_state(BookingState.SLOT_SELECTED)
                return window
        raise BookingValidationError("That time is not available on the selected day.")

    @property
    def selected_slot(self) -> Optional[AvailabilityWindow]:
        if not self.selected_slot_id:
            return None
        for window in self.availability:
            if window.slot_id == self.selected_slot_id:
                return window
        return None

    # Calendar preference

    @property
    def calendar_preference(self) -> str:
        if self._calendar_preference:
            return self._calendar_preference
        if self.preferences:
            return self.preferences.get()
        return DEFAULT_CALENDAR_PREFERENCE

    @calendar_preference.setter
    def calendar_preference(self, value: str) -> None:
        if value not in CALENDAR_PREFERENCES:
            raise ValueError(f"Invalid calendar preference '{value}'")
        if self.preferences:
            self.preferences.set(value)
        self._calendar_preference = value

    # Submission

    def _require_selected_slot(self) -> AvailabilityWindow:
        if self.state is not BookingState.SLOT_SELECTED or not self.selected_slot_id:
            raise BookingValidationError("Please pick a time slot.")
        slot = self.selected_slot
        if slot is None:
            raise BookingValidationError(
                "That slot is no longer available. Please refresh and try again."
            )
        return slot

    async def submit(self, request: BookingRequest) -> Optional[BookingResult]:
        """Book the selected slot. Errors end up in ``self.error``."""
        if request.meeting_type is not self.flow.meeting_type:
            raise ValueError(
                f"{type(request).__name__} cannot book {self.flow.meeting_type.value}"
            )
        if self.state is BookingState.SUBMITTING:
            self.error = BookingError("validation", "A booking is already being submitted.")
            return None

        try:
            request.validate()
            slot = self._require_selected_slot()
            preference = self.calendar_preference
            payload = request.build_payload(slot, self.timezone, preference)
        except BookingValidationError as e:
            self.error = BookingError("validation", str(e))
            return None

        self.error = None
        self._set_state(BookingState.SUBMITTING)
        try:
            result = await self.client.book_meeting(payload)
        except BookingConflictError as e:
            self._fail("conflict", e.message or "That slot is no longer available. Please refresh.")
            return None
        except MeetingsAPIError as e:
            self._fail("server", e.message or "Unable to book meeting")
            return None
        except MeetingsUnavailableError as e:
            self._fail("fetch", str(e) or "Unable to book meeting")
            return None

        self.result = result
        self._set_state(BookingState.BOOKED)
        logger.info(f"Booked {self.flow.meeting_type.value} at {slot.start_utc}")

        if self.artifacts:
            try:
                self.calendar_action = self.artifacts.deliver(
                    result.calendar, preference, self.flow.ics_filename
                )
            except OSError as e:
                logger.warning(f"Booked, but could not deliver calendar file: {e}")
        return result

    def _fail(self, kind: str, message: str) -> None:
        self._set_state(BookingState.FAILED)
        self.error = BookingError(kind, message)
        logger.warning(f"Booking {self.flow.meeting_type.value} failed ({kind}): {message}")
        # The viewer keeps the slot so they may retry or pick another one.
        if self.selected_slot is not None:
            self._set_state(BookingState.SLOT_SELECTED)
        elif self.selected_day_key:
            self.selected_slot_id = None
            self._set_state(BookingState.DAY_SELECTED)
        else:
            self._clear_selection()

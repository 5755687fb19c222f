"""Meeting types and their display metadata."""

from enum import Enum


class MeetingType(Enum):
    """Meeting types understood by the backend."""

    NEW_STUDENT_EVALUATION = "new_student_evaluation"
    CURRENT_STUDENT_FOLLOW_UP = "current_student_follow_up"
    TEACHER_SYNC = "teacher_sync"

    @classmethod
    def from_string(cls, value: str) -> "MeetingType":
        normalized = (value or "").lower().strip().replace("-", "_")
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(
            f"Invalid meeting type '{value}'. Must be one of: "
            + ", ".join(member.value for member in cls)
        )


MEETING_TYPES = tuple(member.value for member in MeetingType)

MEETING_DEFAULT_DURATIONS = {
    MeetingType.NEW_STUDENT_EVALUATION: 30,
    MeetingType.CURRENT_STUDENT_FOLLOW_UP: 30,
    MeetingType.TEACHER_SYNC: 30,
}

MEETING_TYPE_LABELS = {
    MeetingType.NEW_STUDENT_EVALUATION: "Evaluation Session",
    MeetingType.CURRENT_STUDENT_FOLLOW_UP: "Guardian Follow-up",
    MeetingType.TEACHER_SYNC: "Teacher Sync",
}

MEETING_TYPE_DESCRIPTIONS = {
    MeetingType.NEW_STUDENT_EVALUATION: "Welcome call to learn about your learner and match the right teacher.",
    MeetingType.CURRENT_STUDENT_FOLLOW_UP: "Quick check-in to review progress and adjust class plans for existing students.",
    MeetingType.TEACHER_SYNC: "Monthly teacher sync focused on progress updates and blockers.",
}

PUBLIC_BOOKABLE_MEETING_TYPES = (MeetingType.NEW_STUDENT_EVALUATION,)

# Calendar providers a booking artifact can be delivered to. "apple" means a
# downloadable .ics file.
CALENDAR_PREFERENCES = ("google", "outlook", "apple")

CALENDAR_PREFERENCE_OPTIONS = [
    {"value": "google", "label": "Google Calendar"},
    {"value": "outlook", "label": "Outlook / Office 365"},
    {"value": "apple", "label": "Apple Calendar (.ics)"},
]


def get_meeting_label(meeting_type: MeetingType) -> str:
    return MEETING_TYPE_LABELS.get(meeting_type, "Meeting")

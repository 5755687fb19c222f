"""Booking routes: availability calendar and booking submission."""

import logging
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from waraqa_meetings.booking import (
    BookingRequest,
    BookingSession,
    BookingValidationError,
    EvaluationRequest,
    FollowUpRequest,
    StudentEntry,
    TeacherSyncRequest,
    UserProfile,
    get_booking_flow,
)
from waraqa_meetings.calendar_grid import format_day_key, format_time_label
from waraqa_meetings.calendar_preference import CalendarPreferenceStore, select_artifact
from waraqa_meetings.config import AppConfig
from waraqa_meetings.constants import (
    CALENDAR_PREFERENCES,
    MEETING_DEFAULT_DURATIONS,
    MEETING_TYPE_DESCRIPTIONS,
    PUBLIC_BOOKABLE_MEETING_TYPES,
    MeetingType,
    get_meeting_label,
)
from waraqa_meetings.meetings_client import MeetingsClient
from waraqa_meetings.models import AvailabilityWindow
from waraqa_meetings.web import (
    get_app_config,
    get_meetings_client,
    get_preference_store,
)

router = APIRouter(tags=["booking"])
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "validation": 400,
    "conflict": 409,
    "server": 502,
    "fetch": 503,
}


class StudentModel(BaseModel):
    first_name: str = ""
    last_name: str = ""
    age: Optional[Union[int, str]] = None
    gender: str = ""
    notes: str = ""


class RequesterModel(BaseModel):
    id: Optional[str] = None
    full_name: str = ""
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None


class BookMeetingRequest(BaseModel):
    start_utc: str
    timezone: Optional[str] = None
    calendar_preference: Optional[str] = None
    notes: str = ""
    # evaluation
    guardian_name: str = ""
    guardian_email: str = ""
    guardian_phone: str = ""
    students: list[StudentModel] = []
    # follow-up / teacher sync
    requester: Optional[RequesterModel] = None
    student_id: str = ""
    student_name: str = ""
    students_notes: str = ""
    agenda: str = ""


def _resolve_meeting_type(value: str) -> MeetingType:
    try:
        return MeetingType.from_string(value)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown meeting type: {value}")


def _resolve_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(status_code=400, detail=f"Invalid timezone: {value}")
    return value


def _new_session(
    meeting_type: MeetingType,
    timezone: str,
    client: MeetingsClient,
    config: AppConfig,
    preferences: Optional[CalendarPreferenceStore] = None,
    calendar_preference: Optional[str] = None,
) -> BookingSession:
    flow = get_booking_flow(
        meeting_type, config.booking.lookahead_days.get(meeting_type.value)
    )
    return BookingSession(
        client,
        flow,
        timezone,
        preferences=preferences,
        calendar_preference=calendar_preference,
    )


def _error_response(session: BookingSession) -> JSONResponse:
    error = session.error
    if error is None:
        raise RuntimeError("Booking session has no error to report")
    return JSONResponse(
        {"success": False, "error": error.message, "error_type": error.kind},
        status_code=ERROR_STATUS.get(error.kind, 500),
    )


def _validation_response(error: BookingValidationError) -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": str(error), "error_type": "validation"},
        status_code=400,
    )


def _slot_json(window: AvailabilityWindow, timezone: str) -> dict[str, Any]:
    return {
        "id": window.slot_id,
        "start_utc": window.start_utc,
        "end_utc": window.end_utc,
        "label": format_time_label(window.start, timezone),
    }


@router.get("/api/booking/{meeting_type}/calendar")
async def booking_calendar(
    meeting_type: str,
    timezone: Optional[str] = Query(None),
    month: Optional[str] = Query(None),
    client: MeetingsClient = Depends(get_meetings_client),
    config: AppConfig = Depends(get_app_config),
):
    resolved_type = _resolve_meeting_type(meeting_type)
    tz = _resolve_timezone(timezone or config.timezone)
    session = _new_session(resolved_type, tz, client, config)

    if not await session.load_availability():
        return _error_response(session)

    if month:
        try:
            session.show_month(month)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    min_day_key, max_day_key = session.bounds
    grid = [
        None
        if cell is None
        else {
            "day_key": cell.day_key,
            "day": cell.day_number,
            "has_slots": cell.has_slots,
            "selectable": cell.selectable,
        }
        for cell in session.month_grid()
    ]

    return {
        "success": True,
        "meeting_type": resolved_type.value,
        "label": get_meeting_label(resolved_type),
        "description": MEETING_TYPE_DESCRIPTIONS.get(resolved_type),
        "duration_minutes": MEETING_DEFAULT_DURATIONS.get(resolved_type),
        "timezone": tz,
        "month": session.visible_month_key,
        "min_month": session.min_month_key,
        "max_month": session.max_month_key,
        "min_day_key": min_day_key,
        "max_day_key": max_day_key,
        "days": [
            {
                "day_key": bucket.day_key,
                "title": bucket.title,
                "slots": [_slot_json(slot, tz) for slot in bucket.slots],
            }
            for bucket in session.day_entries
        ],
        "grid": grid,
    }


def _build_request(meeting_type: MeetingType, body: BookMeetingRequest) -> BookingRequest:
    if meeting_type is MeetingType.NEW_STUDENT_EVALUATION:
        return EvaluationRequest(
            guardian_name=body.guardian_name,
            guardian_email=body.guardian_email,
            guardian_phone=body.guardian_phone,
            students=[
                StudentEntry(
                    first_name=student.first_name,
                    last_name=student.last_name,
                    age=str(student.age) if student.age is not None else None,
                    gender=student.gender,
                    notes=student.notes,
                )
                for student in body.students
            ],
            notes=body.notes,
        )

    requester = UserProfile.from_dict(body.requester.model_dump() if body.requester else None)
    if meeting_type is MeetingType.CURRENT_STUDENT_FOLLOW_UP:
        return FollowUpRequest(
            requester=requester,
            student_id=body.student_id,
            student_name=body.student_name,
            notes=body.notes,
        )
    return TeacherSyncRequest(
        requester=requester,
        students_notes=body.students_notes,
        agenda=body.agenda,
    )


@router.post("/api/booking/{meeting_type}/book")
async def book_meeting(
    meeting_type: str,
    body: BookMeetingRequest,
    client: MeetingsClient = Depends(get_meetings_client),
    config: AppConfig = Depends(get_app_config),
    preferences: CalendarPreferenceStore = Depends(get_preference_store),
):
    resolved_type = _resolve_meeting_type(meeting_type)
    if resolved_type not in PUBLIC_BOOKABLE_MEETING_TYPES and body.requester is None:
        raise HTTPException(
            status_code=400,
            detail=f"{get_meeting_label(resolved_type)} bookings require a requester",
        )
    if body.calendar_preference and body.calendar_preference not in CALENDAR_PREFERENCES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid calendar preference: {body.calendar_preference}",
        )

    request = _build_request(resolved_type, body)
    try:
        request.validate()
    except BookingValidationError as e:
        return _validation_response(e)

    tz = _resolve_timezone(body.timezone or config.timezone)
    session = _new_session(
        resolved_type,
        tz,
        client,
        config,
        preferences=preferences,
        calendar_preference=body.calendar_preference,
    )

    if not await session.load_availability():
        return _error_response(session)

    slot = next(
        (window for window in session.availability if window.slot_id == body.start_utc),
        None,
    )
    if slot is None:
        return JSONResponse(
            {
                "success": False,
                "error": "That slot is no longer available. Please refresh and try again.",
                "error_type": "conflict",
            },
            status_code=409,
        )

    try:
        session.select_day(format_day_key(slot.start, tz))
        session.select_slot(slot.slot_id)
    except BookingValidationError as e:
        return _validation_response(e)

    result = await session.submit(request)
    if result is None:
        return _error_response(session)

    logger.info(f"Booked {resolved_type.value} at {slot.start_utc} ({tz})")
    preference = session.calendar_preference
    artifact = select_artifact(result.calendar, preference)
    return JSONResponse(
        {
            "success": True,
            "message": result.message,
            "meeting": result.meeting,
            "calendar": result.calendar.to_dict(),
            "calendar_preference": preference,
            "calendar_action": (
                {
                    "kind": artifact.kind,
                    "target": artifact.target if artifact.kind == "link" else session.flow.ics_filename,
                }
                if artifact
                else None
            ),
            "slot": _slot_json(slot, tz),
        },
        status_code=201,
    )

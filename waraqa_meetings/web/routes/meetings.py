"""Admin pass-throughs for booked meetings."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel

from waraqa_meetings.meetings_client import (
    MeetingsAPIError,
    MeetingsClient,
    MeetingsUnavailableError,
)
from waraqa_meetings.web import get_meetings_client

router = APIRouter(tags=["meetings"])
logger = logging.getLogger(__name__)


class MeetingReportRequest(BaseModel):
    notes: str = ""
    outcome: Optional[str] = None
    students: list[dict[str, Any]] = []


def _raise_for(error: Exception) -> None:
    if isinstance(error, MeetingsUnavailableError):
        raise HTTPException(status_code=503, detail=str(error))
    if isinstance(error, MeetingsAPIError):
        status_code = error.status_code if 400 <= error.status_code < 500 else 502
        raise HTTPException(status_code=status_code, detail=error.message)
    raise error


@router.get("/api/meetings")
async def list_meetings(
    meeting_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    time_range: Optional[str] = Query(None),
    client: MeetingsClient = Depends(get_meetings_client),
):
    try:
        meetings = await client.list_meetings(
            meetingType=meeting_type, status=status, timeRange=time_range
        )
    except (MeetingsAPIError, MeetingsUnavailableError) as e:
        _raise_for(e)
    return {"success": True, "meetings": meetings}


@router.post("/api/meetings/{meeting_id}/report")
async def submit_meeting_report(
    meeting_id: str,
    body: MeetingReportRequest,
    client: MeetingsClient = Depends(get_meetings_client),
):
    payload: dict[str, Any] = {"notes": body.notes, "students": body.students}
    if body.outcome:
        payload["outcome"] = body.outcome
    try:
        meeting = await client.submit_meeting_report(meeting_id, payload)
    except (MeetingsAPIError, MeetingsUnavailableError) as e:
        _raise_for(e)
    logger.info(f"Submitted report for meeting {meeting_id}")
    return {"success": True, "meeting": meeting}


@router.delete("/api/meetings/{meeting_id}")
async def delete_meeting(
    meeting_id: str,
    client: MeetingsClient = Depends(get_meetings_client),
):
    try:
        meeting = await client.delete_meeting(meeting_id)
    except (MeetingsAPIError, MeetingsUnavailableError) as e:
        _raise_for(e)
    logger.info(f"Deleted meeting {meeting_id}")
    return {"success": True, "meeting": meeting}


# Admin availability

@router.get("/api/meetings/availability/slots")
async def list_availability_slots(
    meeting_type: Optional[str] = Query(None),
    include_inactive: bool = Query(True),
    client: MeetingsClient = Depends(get_meetings_client),
):
    params = {"includeInactive": str(include_inactive).lower()}
    if meeting_type:
        params["meetingType"] = meeting_type
    try:
        data = await client.list_availability_slots(**params)
    except (MeetingsAPIError, MeetingsUnavailableError) as e:
        _raise_for(e)
    return {
        "success": True,
        "slots": data.get("slots") or [],
        "timezone": data.get("timezone"),
    }


@router.post("/api/meetings/availability/slots", status_code=201)
async def create_availability_slot(
    payload: dict[str, Any] = Body(...),
    client: MeetingsClient = Depends(get_meetings_client),
):
    try:
        slot = await client.create_availability_slot(payload)
    except (MeetingsAPIError, MeetingsUnavailableError) as e:
        _raise_for(e)
    return {"success": True, "slot": slot}


@router.put("/api/meetings/availability/slots/{slot_id}")
async def update_availability_slot(
    slot_id: str,
    updates: dict[str, Any] = Body(...),
    client: MeetingsClient = Depends(get_meetings_client),
):
    try:
        slot = await client.update_availability_slot(slot_id, updates)
    except (MeetingsAPIError, MeetingsUnavailableError) as e:
        _raise_for(e)
    return {"success": True, "slot": slot}


@router.delete("/api/meetings/availability/slots/{slot_id}")
async def delete_availability_slot(
    slot_id: str,
    client: MeetingsClient = Depends(get_meetings_client),
):
    try:
        await client.delete_availability_slot(slot_id)
    except (MeetingsAPIError, MeetingsUnavailableError) as e:
        _raise_for(e)
    return {"success": True}


@router.get("/api/meetings/availability/timeoff")
async def list_time_off(
    range_start: Optional[str] = Query(None),
    range_end: Optional[str] = Query(None),
    client: MeetingsClient = Depends(get_meetings_client),
):
    params = {"rangeStart": range_start, "rangeEnd": range_end}
    try:
        data = await client.list_time_off(
            **{key: value for key, value in params.items() if value}
        )
    except (MeetingsAPIError, MeetingsUnavailableError) as e:
        _raise_for(e)
    return {"success": True, "periods": data.get("periods") or []}


@router.post("/api/meetings/availability/timeoff", status_code=201)
async def create_time_off(
    payload: dict[str, Any] = Body(...),
    client: MeetingsClient = Depends(get_meetings_client),
):
    try:
        period = await client.create_time_off(payload)
    except (MeetingsAPIError, MeetingsUnavailableError) as e:
        _raise_for(e)
    return {"success": True, "period": period}


@router.delete("/api/meetings/availability/timeoff/{time_off_id}")
async def delete_time_off(
    time_off_id: str,
    client: MeetingsClient = Depends(get_meetings_client),
):
    try:
        await client.delete_time_off(time_off_id)
    except (MeetingsAPIError, MeetingsUnavailableError) as e:
        _raise_for(e)
    return {"success": True}

"""Settings routes for the viewer's calendar preference and branding."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from waraqa_meetings.calendar_preference import CalendarPreferenceStore
from waraqa_meetings.constants import CALENDAR_PREFERENCE_OPTIONS
from waraqa_meetings.meetings_client import (
    MeetingsAPIError,
    MeetingsClient,
    MeetingsUnavailableError,
)
from waraqa_meetings.models import Branding
from waraqa_meetings.web import get_meetings_client, get_preference_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["settings"])


class CalendarPreferenceRequest(BaseModel):
    preference: str


def _preference_response(store: CalendarPreferenceStore) -> dict:
    return {
        "success": True,
        "preference": store.get(),
        "options": CALENDAR_PREFERENCE_OPTIONS,
    }


@router.get("/api/settings/calendar-preference")
async def get_calendar_preference(
    store: CalendarPreferenceStore = Depends(get_preference_store),
):
    return _preference_response(store)


@router.put("/api/settings/calendar-preference")
async def update_calendar_preference(
    body: CalendarPreferenceRequest,
    store: CalendarPreferenceStore = Depends(get_preference_store),
):
    try:
        store.set(body.preference)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"Calendar preference set to {body.preference}")
    return _preference_response(store)


@router.get("/api/settings/branding")
async def get_branding(client: MeetingsClient = Depends(get_meetings_client)):
    try:
        branding = await client.get_branding()
    except (MeetingsAPIError, MeetingsUnavailableError) as e:
        logger.warning(f"Falling back to default branding: {e}")
        return {
            "success": True,
            "branding": Branding().to_dict(),
            "warning": "Branding unavailable; showing defaults",
        }
    return {"success": True, "branding": branding.to_dict()}

"""
Web API for Waraqa meeting booking.

Serves the JSON endpoints behind the dashboard's booking screens:
- Availability calendar (day buckets and month grid) per meeting type
- Booking submission
- Calendar preference and branding settings
- Admin pass-throughs for meeting reports
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from waraqa_meetings.calendar_preference import CalendarPreferenceStore
from waraqa_meetings.config import AppConfig
from waraqa_meetings.meetings_client import MeetingsClient

logger = logging.getLogger(__name__)

_app_config: Optional[AppConfig] = None
_meetings_client: Optional[MeetingsClient] = None
_preference_store: Optional[CalendarPreferenceStore] = None
_routers_included = False


@asynccontextmanager
async def lifespan(app):
    logger.info("Meetings web API started")
    yield
    if _meetings_client:
        await _meetings_client.close()
    logger.info("Meetings web API stopped")


web_app = FastAPI(
    title="Waraqa Meetings",
    description="Meeting booking API for the Waraqa dashboard",
    docs_url="/api/docs",
    redoc_url=None,
    lifespan=lifespan,
)


def init_web_app(
    config: Optional[AppConfig] = None,
    client: Optional[MeetingsClient] = None,
    preferences: Optional[CalendarPreferenceStore] = None,
) -> FastAPI:
    global _app_config, _meetings_client, _preference_store, _routers_included

    _app_config = config or AppConfig()
    _meetings_client = client or MeetingsClient(
        base_url=_app_config.api.base_url,
        token=_app_config.api.token,
        timeout=_app_config.api.timeout,
    )
    _preference_store = preferences or CalendarPreferenceStore(
        _app_config.calendar.preference_path,
        default=_app_config.calendar.default_preference,
    )

    if not _routers_included:
        from waraqa_meetings.web.routes import booking, health, meetings, settings

        web_app.include_router(booking.router)
        web_app.include_router(meetings.router)
        web_app.include_router(settings.router)
        web_app.include_router(health.router)
        _routers_included = True

    logger.info(f"Web app initialized against {_app_config.api.base_url}")
    return web_app


def get_app_config() -> AppConfig:
    if _app_config is None:
        raise RuntimeError("Web app not initialized; call init_web_app() first")
    return _app_config


def get_meetings_client() -> MeetingsClient:
    if _meetings_client is None:
        raise RuntimeError("Web app not initialized; call init_web_app() first")
    return _meetings_client


def get_preference_store() -> CalendarPreferenceStore:
    if _preference_store is None:
        raise RuntimeError("Web app not initialized; call init_web_app() first")
    return _preference_store


@web_app.get("/health")
async def health():
    return {"status": "ok", "service": "waraqa-meetings-web"}

"""
REST client for the Waraqa meetings backend.

The backend owns availability, conflicts, persistence and auth; this client
only shapes requests and interprets responses.
"""

import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from waraqa_meetings.constants import MeetingType
from waraqa_meetings.models import (
    AvailabilityWindow,
    BookingResult,
    Branding,
    to_iso_utc,
)

logger = logging.getLogger(__name__)

BASE = "/meetings"


class MeetingsAPIError(Exception):
    """The backend answered with an error status."""

    def __init__(
        self,
        status_code: int,
        message: str,
        meta: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.meta = meta or {}


class BookingConflictError(MeetingsAPIError):
    """The requested slot is no longer available (HTTP 409)."""


class MeetingsUnavailableError(Exception):
    """The backend could not be reached."""


def _error_message(response: httpx.Response) -> tuple[str, dict[str, Any]]:
    message = response.text or f"HTTP {response.status_code}"
    meta: dict[str, Any] = {}
    try:
        payload = response.json()
    except ValueError:
        return message, meta
    if isinstance(payload, dict):
        raw_detail = payload.get("detail")
        if isinstance(raw_detail, dict):
            message = (
                raw_detail.get("message")
                or raw_detail.get("error")
                or str(raw_detail)
            )
        elif raw_detail:
            message = str(raw_detail)
        if payload.get("message"):
            message = payload["message"]
        if isinstance(payload.get("meta"), dict):
            meta = payload["meta"]
    return message, meta


class MeetingsClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        client = self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message, meta = _error_message(e.response)
            status_code = e.response.status_code
            logger.error(f"Meetings API error: {status_code} {method} {path}: {message}")
            if status_code == 409:
                raise BookingConflictError(status_code, message, meta) from e
            raise MeetingsAPIError(status_code, message, meta) from e
        except httpx.RequestError as e:
            logger.error(f"Meetings API connection error: {e}")
            raise MeetingsUnavailableError(
                f"Cannot reach meetings API at {self.base_url}"
            ) from e

        if not response.content:
            return {}
        return response.json()

    async def fetch_availability(
        self,
        meeting_type: MeetingType,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
        timezone: Optional[str] = None,
    ) -> list[AvailabilityWindow]:
        params: dict[str, str] = {"meetingType": meeting_type.value}
        if range_start:
            params["rangeStart"] = to_iso_utc(range_start)
        if range_end:
            params["rangeEnd"] = to_iso_utc(range_end)
        if timezone:
            params["timezone"] = timezone
        data = await self._request("GET", f"{BASE}/availability", params=params)
        windows = [AvailabilityWindow.from_dict(item) for item in data.get("windows") or []]
        return sorted(windows, key=lambda window: window.start)

    async def book_meeting(self, payload: dict[str, Any]) -> BookingResult:
        data = await self._request("POST", f"{BASE}/book", json=payload)
        return BookingResult.from_dict(data)

    async def list_meetings(self, **filters: Any) -> list[dict[str, Any]]:
        params = {key: value for key, value in filters.items() if value is not None}
        data = await self._request("GET", BASE, params=params)
        return data.get("meetings") or []

    async def submit_meeting_report(
        self, meeting_id: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        if not meeting_id:
            raise ValueError("meeting_id is required to submit a report")
        data = await self._request("POST", f"{BASE}/{meeting_id}/report", json=payload)
        return data.get("meeting") or {}

    async def delete_meeting(self, meeting_id: str) -> dict[str, Any]:
        if not meeting_id:
            raise ValueError("meeting_id is required to delete a meeting")
        data = await self._request("DELETE", f"{BASE}/{meeting_id}")
        return data.get("meeting") or {}

    async def list_availability_slots(self, **params: Any) -> dict[str, Any]:
        return await self._request("GET", f"{BASE}/availability/slots", params=params)

    async def create_availability_slot(self, payload: dict[str, Any]) -> dict[str, Any]:
        data = await self._request("POST", f"{BASE}/availability/slots", json=payload)
        return data.get("slot") or {}

    async def update_availability_slot(
        self, slot_id: str, updates: dict[str, Any]
    ) -> dict[str, Any]:
        data = await self._request(
            "PUT", f"{BASE}/availability/slots/{slot_id}", json=updates
        )
        return data.get("slot") or {}

    async def delete_availability_slot(self, slot_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"{BASE}/availability/slots/{slot_id}")

    async def list_time_off(self, **params: Any) -> dict[str, Any]:
        return await self._request("GET", f"{BASE}/availability/timeoff", params=params)

    async def create_time_off(self, payload: dict[str, Any]) -> dict[str, Any]:
        data = await self._request("POST", f"{BASE}/availability/timeoff", json=payload)
        return data.get("period") or {}

    async def delete_time_off(self, time_off_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"{BASE}/availability/timeoff/{time_off_id}")

    async def get_branding(self) -> Branding:
        data = await self._request("GET", "/settings/branding")
        return Branding.from_dict(data.get("branding"))

    async def get_status(self) -> dict[str, Any]:
        return await self._request("GET", "/health")

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from waraqa_meetings.meetings_client import (
    MeetingsAPIError,
    MeetingsClient,
    MeetingsUnavailableError,
)
from waraqa_meetings.web import get_meetings_client

router = APIRouter()


def _backend_status(payload: dict) -> tuple[str, str | None]:
    status = payload.get("status") or payload.get("health")
    error = payload.get("error")
    if status in {"down", "critical"}:
        return "down", error
    if status in {"degraded", "unknown", "warning"}:
        return "degraded", error or "Meetings API reported unknown status"
    if status in {"healthy", "running", "ok"} and not error:
        return "healthy", None
    return "degraded", error or "Meetings API health endpoint gave no status"


@router.get("/api/health/services")
async def get_services_health(client: MeetingsClient = Depends(get_meetings_client)):
    services: dict[str, dict] = {
        "meetings_api": {"status": "unknown", "error": None},
    }

    try:
        payload = await client.get_status()
        status, error = _backend_status(payload)
        services["meetings_api"] = {"status": status, "error": error}
        if payload:
            services["meetings_api"]["details"] = payload
    except MeetingsUnavailableError as exc:
        services["meetings_api"] = {"status": "down", "error": str(exc)}
    except MeetingsAPIError as exc:
        services["meetings_api"] = {
            "status": "degraded",
            "error": f"HTTP {exc.status_code}: {exc.message}",
        }

    overall_status = "degraded"
    if all(s["status"] == "healthy" for s in services.values()):
        overall_status = "healthy"

    return JSONResponse(
        content={
            "status": overall_status,
            "services": services,
        }
    )

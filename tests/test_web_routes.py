from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import BOOKING_RESPONSE_JSON, FakeMeetingsClient, json_body, mock_transport_client
from waraqa_meetings.booking import BookingSession, get_booking_flow
from waraqa_meetings.calendar_preference import CalendarPreferenceStore
from waraqa_meetings.config import AppConfig
from waraqa_meetings.constants import MeetingType
from waraqa_meetings.models import to_iso_utc
from waraqa_meetings.web import init_web_app
from waraqa_meetings.web.routes.booking import _error_response

UTC = timezone.utc


def _tomorrow_at(hour: int) -> str:
    tomorrow = datetime.now(UTC) + timedelta(days=1)
    return to_iso_utc(tomorrow.replace(hour=hour, minute=0, second=0, microsecond=0))


class FakeBackend:
    """Minimal meetings API keyed by (method, path)."""

    def __init__(self):
        self.slots = [_tomorrow_at(9), _tomorrow_at(10)]
        self.requests: list[httpx.Request] = []
        self.responses = {
            ("GET", "/api/meetings/availability"): lambda: httpx.Response(
                200,
                json={"windows": [{"startUtc": start, "timezone": "UTC"} for start in self.slots]},
            ),
            ("POST", "/api/meetings/book"): lambda: httpx.Response(201, json=BOOKING_RESPONSE_JSON),
            ("GET", "/api/settings/branding"): lambda: httpx.Response(
                200, json={"branding": {"title": "Waraqa", "slogan": "Learn with us"}}
            ),
            ("GET", "/api/health"): lambda: httpx.Response(200, json={"status": "ok"}),
            ("GET", "/api/meetings"): lambda: httpx.Response(200, json={"meetings": [{"_id": "m1"}]}),
            ("DELETE", "/api/meetings/m1"): lambda: httpx.Response(200, json={"meeting": {"_id": "m1"}}),
            ("POST", "/api/meetings/m1/report"): lambda: httpx.Response(
                200, json={"meeting": {"_id": "m1", "report": {"notes": "done"}}}
            ),
            ("GET", "/api/meetings/availability/slots"): lambda: httpx.Response(
                200, json={"slots": [{"_id": "s1"}], "timezone": "Africa/Cairo"}
            ),
            ("POST", "/api/meetings/availability/slots"): lambda: httpx.Response(
                201, json={"message": "Slot created", "slot": {"_id": "s2"}}
            ),
            ("PUT", "/api/meetings/availability/slots/s1"): lambda: httpx.Response(
                200, json={"message": "Slot updated", "slot": {"_id": "s1", "isActive": False}}
            ),
            ("DELETE", "/api/meetings/availability/slots/s1"): lambda: httpx.Response(
                200, json={"message": "Slot deleted"}
            ),
            ("GET", "/api/meetings/availability/timeoff"): lambda: httpx.Response(
                200, json={"periods": [{"_id": "p1"}]}
            ),
            ("POST", "/api/meetings/availability/timeoff"): lambda: httpx.Response(
                201, json={"message": "Time off created", "period": {"_id": "p2"}}
            ),
            ("DELETE", "/api/meetings/availability/timeoff/p1"): lambda: httpx.Response(
                200, json={"message": "Time off deleted"}
            ),
        }
        self.down = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("refused", request=request)
        factory = self.responses.get((request.method, request.url.path))
        if factory is None:
            return httpx.Response(404, json={"message": "Not found"})
        return factory()

    def last(self, method: str, path: str) -> httpx.Request:
        return [r for r in self.requests if r.method == method and r.url.path == path][-1]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def store(tmp_path):
    return CalendarPreferenceStore(tmp_path / "prefs.yaml")


@pytest.fixture
def client(backend, store):
    app = init_web_app(
        AppConfig(timezone="UTC"),
        client=mock_transport_client(backend),
        preferences=store,
    )
    return TestClient(app)


def _evaluation_body(start_utc: str, **overrides) -> dict:
    body = {
        "start_utc": start_utc,
        "timezone": "UTC",
        "guardian_name": "Amina Hassan",
        "guardian_email": "amina@example.com",
        "students": [{"first_name": "Yusuf", "last_name": "Hassan", "age": 9}],
    }
    body.update(overrides)
    return body


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_calendar_groups_slots(client, backend):
    response = client.get("/api/booking/new_student_evaluation/calendar", params={"timezone": "UTC"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["label"] == "Evaluation Session"
    assert len(payload["days"]) == 1
    slots = payload["days"][0]["slots"]
    assert [slot["id"] for slot in slots] == backend.slots
    assert [slot["label"] for slot in slots] == ["9:00 AM", "10:00 AM"]
    assert len(payload["grid"]) % 7 == 0
    assert payload["month"] == payload["min_month"]

    params = dict(backend.last("GET", "/api/meetings/availability").url.params)
    assert params["meetingType"] == "new_student_evaluation"
    assert params["timezone"] == "UTC"


def test_calendar_accepts_dashed_meeting_type(client):
    response = client.get("/api/booking/teacher-sync/calendar")
    assert response.status_code == 200
    assert response.json()["timezone"] == "UTC"


def test_calendar_unknown_meeting_type(client):
    assert client.get("/api/booking/coffee/calendar").status_code == 404


def test_calendar_invalid_timezone(client):
    response = client.get(
        "/api/booking/new_student_evaluation/calendar", params={"timezone": "Mars/Olympus"}
    )
    assert response.status_code == 400


def test_calendar_invalid_month(client):
    response = client.get(
        "/api/booking/new_student_evaluation/calendar", params={"month": "2024-13"}
    )
    assert response.status_code == 400


def test_calendar_backend_down(client, backend):
    backend.down = True
    response = client.get("/api/booking/new_student_evaluation/calendar")
    assert response.status_code == 503
    assert response.json()["error_type"] == "fetch"


def test_book_evaluation(client, backend, store):
    start_utc = backend.slots[0]
    response = client.post(
        "/api/booking/new_student_evaluation/book", json=_evaluation_body(start_utc)
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["success"] is True
    assert payload["meeting"]["_id"] == "m1"
    assert payload["calendar_preference"] == "google"
    assert payload["calendar_action"] == {
        "kind": "link",
        "target": BOOKING_RESPONSE_JSON["calendar"]["googleCalendarLink"],
    }

    sent = json_body(backend.last("POST", "/api/meetings/book"))
    assert sent["startTime"] == start_utc
    assert sent["timezone"] == "UTC"
    assert sent["students"][0]["age"] == 9


def test_book_with_apple_preference_returns_ics(client, backend, store):
    response = client.post(
        "/api/booking/new_student_evaluation/book",
        json=_evaluation_body(backend.slots[1], calendar_preference="apple"),
    )
    assert response.status_code == 201
    assert response.json()["calendar_action"] == {"kind": "ics", "target": "evaluation.ics"}
    # a per-request choice is not saved
    assert store.get() == "google"


def test_book_uses_stored_preference(client, backend, store):
    store.set("outlook")
    response = client.post(
        "/api/booking/new_student_evaluation/book", json=_evaluation_body(backend.slots[0])
    )
    assert response.json()["calendar_action"]["target"] == (
        BOOKING_RESPONSE_JSON["calendar"]["outlookCalendarLink"]
    )


def test_book_unknown_slot(client):
    response = client.post(
        "/api/booking/new_student_evaluation/book",
        json=_evaluation_body("2000-01-01T09:00:00.000Z"),
    )
    assert response.status_code == 409
    assert response.json()["error_type"] == "conflict"


def test_book_validation_error(client, backend):
    response = client.post(
        "/api/booking/new_student_evaluation/book",
        json=_evaluation_body(backend.slots[0], students=[]),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Please add at least one student."
    assert backend.requests == []


def test_book_validation_runs_before_slot_lookup(client, backend):
    response = client.post(
        "/api/booking/new_student_evaluation/book",
        json=_evaluation_body("2000-01-01T09:00:00.000Z", guardian_email=""),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Please enter your email."
    assert backend.requests == []


def test_book_conflict_from_backend(client, backend):
    backend.responses[("POST", "/api/meetings/book")] = lambda: httpx.Response(
        409, json={"message": "Slot already taken"}
    )
    response = client.post(
        "/api/booking/new_student_evaluation/book", json=_evaluation_body(backend.slots[0])
    )
    assert response.status_code == 409
    assert response.json()["error"] == "Slot already taken"


def test_book_server_error(client, backend):
    backend.responses[("POST", "/api/meetings/book")] = lambda: httpx.Response(
        500, json={"message": "Database unavailable"}
    )
    response = client.post(
        "/api/booking/new_student_evaluation/book", json=_evaluation_body(backend.slots[0])
    )
    assert response.status_code == 502
    assert response.json()["error_type"] == "server"


def test_error_response_requires_session_error():
    session = BookingSession(
        FakeMeetingsClient(), get_booking_flow(MeetingType.NEW_STUDENT_EVALUATION), "UTC"
    )
    with pytest.raises(RuntimeError):
        _error_response(session)


def test_teacher_sync_requires_requester(client, backend):
    response = client.post(
        "/api/booking/teacher_sync/book", json={"start_utc": backend.slots[0]}
    )
    assert response.status_code == 400


def test_teacher_sync_booking(client, backend):
    response = client.post(
        "/api/booking/teacher_sync/book",
        json={
            "start_utc": backend.slots[0],
            "timezone": "UTC",
            "requester": {"id": "t1", "full_name": "Ustadh Omar"},
            "students_notes": "Ali, Sara",
            "agenda": "Progress",
        },
    )
    assert response.status_code == 201
    sent = json_body(backend.last("POST", "/api/meetings/book"))
    assert sent["teacher"]["teacherName"] == "Ustadh Omar"
    assert [s["studentName"] for s in sent["students"]] == ["Ali", "Sara"]


def test_book_invalid_preference(client, backend):
    response = client.post(
        "/api/booking/new_student_evaluation/book",
        json=_evaluation_body(backend.slots[0], calendar_preference="yahoo"),
    )
    assert response.status_code == 400


def test_calendar_preference_settings(client, store):
    response = client.get("/api/settings/calendar-preference")
    assert response.json()["preference"] == "google"
    assert [option["value"] for option in response.json()["options"]] == [
        "google",
        "outlook",
        "apple",
    ]

    response = client.put("/api/settings/calendar-preference", json={"preference": "apple"})
    assert response.status_code == 200
    assert response.json()["preference"] == "apple"
    assert store.get() == "apple"

    response = client.put("/api/settings/calendar-preference", json={"preference": "yahoo"})
    assert response.status_code == 400
    assert store.get() == "apple"


def test_branding(client):
    payload = client.get("/api/settings/branding").json()
    assert payload["branding"]["slogan"] == "Learn with us"
    assert "warning" not in payload


def test_branding_falls_back_to_defaults(client, backend):
    backend.down = True
    payload = client.get("/api/settings/branding").json()
    assert payload["branding"] == {"title": "Waraqa", "slogan": "Welcome", "logo_url": None}
    assert payload["warning"]


def test_meetings_pass_through(client, backend):
    assert client.get("/api/meetings", params={"meeting_type": "teacher_sync"}).json()[
        "meetings"
    ] == [{"_id": "m1"}]
    assert dict(backend.last("GET", "/api/meetings").url.params) == {"meetingType": "teacher_sync"}

    response = client.post("/api/meetings/m1/report", json={"notes": "done"})
    assert response.json()["meeting"]["report"] == {"notes": "done"}

    assert client.delete("/api/meetings/m1").json()["meeting"]["_id"] == "m1"
    assert client.delete("/api/meetings/missing").status_code == 404


def test_services_health(client, backend):
    payload = client.get("/api/health/services").json()
    assert payload["status"] == "healthy"
    assert payload["services"]["meetings_api"]["status"] == "healthy"

    backend.down = True
    payload = client.get("/api/health/services").json()
    assert payload["status"] == "degraded"
    assert payload["services"]["meetings_api"]["status"] == "down"


def test_availability_slot_admin(client, backend):
    payload = client.get(
        "/api/meetings/availability/slots", params={"meeting_type": "teacher_sync"}
    ).json()
    assert payload["slots"] == [{"_id": "s1"}]
    assert payload["timezone"] == "Africa/Cairo"
    assert dict(backend.last("GET", "/api/meetings/availability/slots").url.params) == {
        "includeInactive": "true",
        "meetingType": "teacher_sync",
    }

    response = client.post(
        "/api/meetings/availability/slots",
        json={"meetingType": "teacher_sync", "dayOfWeek": 1, "startTime": "09:00", "endTime": "12:00"},
    )
    assert response.status_code == 201
    assert response.json()["slot"] == {"_id": "s2"}
    assert json_body(backend.last("POST", "/api/meetings/availability/slots"))["dayOfWeek"] == 1

    response = client.put("/api/meetings/availability/slots/s1", json={"isActive": False})
    assert response.json()["slot"]["isActive"] is False

    assert client.delete("/api/meetings/availability/slots/s1").json() == {"success": True}
    assert client.delete("/api/meetings/availability/slots/nope").status_code == 404


def test_time_off_admin(client, backend):
    payload = client.get(
        "/api/meetings/availability/timeoff", params={"range_start": "2024-06-01"}
    ).json()
    assert payload["periods"] == [{"_id": "p1"}]
    assert dict(backend.last("GET", "/api/meetings/availability/timeoff").url.params) == {
        "rangeStart": "2024-06-01"
    }

    response = client.post(
        "/api/meetings/availability/timeoff",
        json={"startTime": "2024-06-20T00:00:00.000Z", "endTime": "2024-06-21T00:00:00.000Z"},
    )
    assert response.status_code == 201
    assert response.json()["period"] == {"_id": "p2"}

    assert client.delete("/api/meetings/availability/timeoff/p1").json() == {"success": True}


def test_admin_routes_backend_down(client, backend):
    backend.down = True
    assert client.get("/api/meetings/availability/slots").status_code == 503

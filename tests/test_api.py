import pytest
from httpx import ASGITransport, AsyncClient
from pymongo.errors import PyMongoError

from app.api.deps import create_access_token, get_password_hash
from app.main import app
from app.models.attendance import AttendanceEvent
from app.models.user import User, UserRole
from app.services import store

CAMPUS = {"latitude": 31.634801, "longitude": 74.824416, "accuracy": 10}


@pytest.fixture
async def client():
    # the lifespan is not run; the db fixture has already initialised beanie
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
async def auth_headers():
    user = User(
        email="instructor@gndu.ac.in",
        hashed_password=get_password_hash("secret"),
        role=UserRole.INSTRUCTOR,
        full_name="Instructor",
    )
    await user.insert()
    token = create_access_token(str(user.id), user.role.value)
    return {"Authorization": f"Bearer {token}"}


async def _start(client, headers, **overrides):
    body = {"date": "2025-01-06", "subject_code": "cel1020", "secret_code": "XY12"}
    body.update(overrides)
    return await client.post("/api/sessions/", json=body, headers=headers)


async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


async def test_staff_routes_require_a_token(client):
    r = await client.post("/api/sessions/", json={"date": "2025-01-06", "subject_code": "CSL1020"})
    assert r.status_code == 401


async def test_login_with_password(client, auth_headers):
    r = await client.post("/api/auth/login", json={"email": "instructor@gndu.ac.in", "password": "secret"})
    assert r.status_code == 200
    assert r.json()["access_token"]


async def test_session_start_uses_catalog_name_and_resumes(client, auth_headers, stored_roster):
    r = await _start(client, auth_headers)
    assert r.status_code == 201
    body = r.json()
    assert body["resumed"] is False
    session = body["session"]
    assert session["subject_code"] == "CEL1020"
    assert session["subject_name"] == "Engineering Mechanics"
    assert session["secret_code"] == "XY12"
    assert session["total_students"] == 3
    assert session["checkin_url"].endswith(f"session={session['session_id']}")

    again = (await _start(client, auth_headers, secret_code="ZZZ")).json()
    assert again["resumed"] is True
    assert again["session"]["session_id"] == session["session_id"]


async def test_bad_session_date_is_a_validation_error(client, auth_headers):
    r = await _start(client, auth_headers, date="06/01/2025")
    assert r.status_code == 422


async def test_public_session_view_hides_the_code(client, auth_headers, stored_roster):
    session = (await _start(client, auth_headers)).json()["session"]
    r = await client.get(f"/api/sessions/{session['session_id']}")
    assert r.status_code == 200
    assert r.json()["secret_code"] is None
    assert r.json()["is_expired"] is False

    assert (await client.get("/api/sessions/missing")).status_code == 404


async def test_checkin_flow(client, auth_headers, stored_roster):
    session = (await _start(client, auth_headers)).json()["session"]
    payload = {
        "session_id": session["session_id"],
        "roll_number": 2,
        "student_name": "bob",
        "secret_code": "xy12",
        "location": CAMPUS,
    }

    r = await client.post("/api/attendance/checkin", json=payload)
    assert r.status_code == 200
    assert r.json()["roll_number"] == 2
    assert r.json()["name"] == "Bob"

    r = await client.post("/api/attendance/checkin", json=payload)
    assert r.status_code == 409
    assert r.json()["detail"]["reason"] == "ALREADY_MARKED"

    r = await client.get(f"/api/attendance/{session['session_id']}", headers=auth_headers)
    stats = r.json()["stats"]
    assert (stats["present"], stats["absent"], stats["percentage"]) == (1, 2, 33)
    assert [row["status"] for row in r.json()["attendance"]] == ["Absent", "Present", "Absent"]


@pytest.mark.parametrize(
    "change,status,reason",
    [
        ({"secret_code": "NOPE"}, 400, "INVALID_CODE"),
        ({"roll_number": "9"}, 400, "INVALID_ROLL_NUMBER"),
        ({"student_name": "Amy"}, 400, "NAME_MISMATCH"),
        ({"location": {"latitude": 28.6139, "longitude": 77.209}}, 403, "LOCATION_REJECTED"),
        ({"location": {"error": "permission_denied"}}, 403, "LOCATION_REJECTED"),
        ({"location": None}, 403, "LOCATION_REJECTED"),
        ({"student_name": ""}, 400, "MISSING_FIELDS"),
        ({"session_id": "missing"}, 404, "SESSION_NOT_FOUND"),
    ],
)
async def test_checkin_rejections(client, auth_headers, stored_roster, change, status, reason):
    session = (await _start(client, auth_headers)).json()["session"]
    payload = {
        "session_id": session["session_id"],
        "roll_number": "2",
        "student_name": "Bob",
        "secret_code": "XY12",
        "location": CAMPUS,
    }
    payload.update(change)
    r = await client.post("/api/attendance/checkin", json=payload)
    assert r.status_code == status
    assert r.json()["detail"]["reason"] == reason


async def test_checkin_after_expiry_is_gone(client, auth_headers, stored_roster):
    session = (await _start(client, auth_headers)).json()["session"]
    r = await client.post(f"/api/sessions/{session['session_id']}/expire", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["session"]["active"] is False

    r = await client.post(
        "/api/attendance/checkin",
        json={
            "session_id": session["session_id"],
            "roll_number": "1",
            "student_name": "Amy",
            "secret_code": "XY12",
            "location": CAMPUS,
        },
    )
    assert r.status_code == 410


async def test_roster_listing_and_bulk_load(client, auth_headers, stored_roster):
    r = await client.get("/api/students/", headers=auth_headers)
    assert [(s["roll_number"], s["name"]) for s in r.json()] == [(1, "Amy"), (2, "Bob"), (3, "Cid")]

    r = await client.get("/api/students/", params={"q": "cid"}, headers=auth_headers)
    assert [(s["roll_number"], s["id"]) for s in r.json()] == [(3, "C")]

    r = await client.post(
        "/api/students/bulk",
        json={"students": [{"id": "D", "name": "Abe"}]},
        headers=auth_headers,
    )
    assert r.status_code == 403


async def test_export_csv_and_summary(client, auth_headers, stored_roster):
    session = (await _start(client, auth_headers)).json()["session"]
    await client.post(
        "/api/attendance/checkin",
        json={
            "session_id": session["session_id"],
            "roll_number": "1",
            "student_name": "Amy",
            "secret_code": "XY12",
            "location": CAMPUS,
        },
    )

    r = await client.get(f"/api/export/{session['session_id']}", params={"format": "csv"}, headers=auth_headers)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "attendance_CEL1020_2025-01-06.csv" in r.headers["content-disposition"]
    assert "# Total Students: 3, Present: 1, Absent: 2" in r.text

    r = await client.post(
        "/api/export/summary",
        json={"start_date": "2025-01-01", "end_date": "2025-01-31"},
        headers=auth_headers,
    )
    summary = r.json()["summary"]
    assert summary["total_sessions"] == 1
    assert summary["sessions"][0]["present_count"] == 1

    r = await client.post(
        "/api/export/summary",
        json={"start_date": "2025-02-01", "end_date": "2025-01-01"},
        headers=auth_headers,
    )
    assert r.status_code == 400


async def test_student_history(client, auth_headers, stored_roster):
    session = (await _start(client, auth_headers)).json()["session"]
    await client.post(
        "/api/attendance/checkin",
        json={
            "session_id": session["session_id"],
            "roll_number": "3",
            "student_name": "Cid",
            "secret_code": "XY12",
            "location": CAMPUS,
        },
    )
    r = await client.get("/api/students/C/history", headers=auth_headers)
    body = r.json()
    assert body["overall"] == {"present": 1, "total": 1, "percentage": 100}
    assert body["history"][0]["status"] == "Present"

    assert (await client.get("/api/students/nobody/history", headers=auth_headers)).status_code == 404


@pytest.fixture
async def admin_headers():
    admin = User(
        email="admin@gndu.ac.in",
        hashed_password=get_password_hash("admin-secret"),
        role=UserRole.ADMIN,
        full_name="Admin",
    )
    await admin.insert()
    return {"Authorization": f"Bearer {create_access_token(str(admin.id), admin.role.value)}"}


async def test_bulk_load_renumbers_the_roster(client, admin_headers, stored_roster):
    r = await client.post(
        "/api/students/bulk",
        json={"students": [{"id": "D", "name": "Abe"}, {"id": "C", "name": "Ava"}]},
        headers=admin_headers,
    )
    assert r.status_code == 201
    assert (r.json()["created"], r.json()["updated"], r.json()["count"]) == (1, 1, 4)

    r = await client.get("/api/students/", headers=admin_headers)
    assert [(s["roll_number"], s["id"]) for s in r.json()] == [(1, "D"), (2, "A"), (3, "C"), (4, "B")]


async def test_admin_manages_instructors(client, admin_headers):
    r = await client.post(
        "/api/users/",
        json={
            "email": "lecturer@gndu.ac.in",
            "password": "long-enough",
            "full_name": "Lecturer",
            "subject_codes": ["cel1020", " phl1083 ", "CEL1020"],
        },
        headers=admin_headers,
    )
    assert r.status_code == 201
    created = r.json()
    assert created["role"] == "instructor"
    assert created["subject_codes"] == ["CEL1020", "PHL1083"]

    r = await client.patch(f"/api/users/{created['id']}", json={"is_active": False}, headers=admin_headers)
    assert r.json()["is_active"] is False

    r = await client.post("/api/auth/login", json={"email": "lecturer@gndu.ac.in", "password": "long-enough"})
    assert r.status_code == 401


async def test_refresh_token_issues_new_access_token(client, auth_headers):
    tokens = (
        await client.post("/api/auth/login", json={"email": "instructor@gndu.ac.in", "password": "secret"})
    ).json()
    r = await client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert r.status_code == 200

    # an access token is not accepted where a refresh token is expected
    r = await client.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert r.status_code == 401

    r = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert r.json()["role"] == "instructor"


@pytest.mark.parametrize(
    "override",
    [{"date": "06/01/2025"}, {"date": "2025-02-30"}, {"subject_code": "   "}],
)
async def test_rejected_session_fields_come_back_as_422_with_details(client, auth_headers, override):
    r = await _start(client, auth_headers, **override)
    assert r.status_code == 422
    assert r.json()["detail"][0]["loc"][0] == "body"


async def test_blank_student_fields_in_bulk_load_are_422(client, admin_headers):
    r = await client.post(
        "/api/students/bulk",
        json={"students": [{"id": " ", "name": "Nobody"}]},
        headers=admin_headers,
    )
    assert r.status_code == 422


async def test_store_failure_during_checkin_asks_to_retry(client, auth_headers, stored_roster, monkeypatch):
    session = (await _start(client, auth_headers)).json()["session"]

    async def unavailable(session_id):
        raise PyMongoError("connection reset")

    monkeypatch.setattr(store, "get_session", unavailable)
    r = await client.post(
        "/api/attendance/checkin",
        json={
            "session_id": session["session_id"],
            "roll_number": "1",
            "student_name": "Amy",
            "secret_code": "XY12",
            "location": CAMPUS,
        },
    )
    assert r.status_code == 503
    assert "try again" in r.json()["detail"]
    assert "reason" not in r.json()
    assert await AttendanceEvent.find_all().count() == 0


async def test_subjects_list_puts_the_callers_courses_first(client):
    user = User(
        email="physics@gndu.ac.in",
        hashed_password=get_password_hash("secret"),
        role=UserRole.INSTRUCTOR,
        full_name="Physics Lecturer",
        subject_codes=["PHL1083"],
    )
    await user.insert()
    headers = {"Authorization": f"Bearer {create_access_token(str(user.id), user.role.value)}"}

    items = (await client.get("/api/subjects/", headers=headers)).json()
    assert items[0] == {"code": "PHL1083", "name": "Physics", "assigned": True}
    assert [s["code"] for s in items if s["assigned"]] == ["PHL1083"]
    assert items[1]["code"] == "CEL1020"

import logging

import pytest
from fastapi.testclient import TestClient

from database import get_db
from main import app, seed_admin
from settings import get_settings


def test_admin_creates_and_lists_users(client, auth, admin, db):
    r = client.post("/api/users", json={"full_name": "New Tutor", "email": "nt@school.edu", "password": "teach123",
                                        "role": "tutor"}, headers=auth(admin))
    assert r.status_code == 201
    assert r.json()["role"] == "tutor"
    assert "password_hash" not in r.json()

    tutors = client.get("/api/users", params={"role": "tutor"}, headers=auth(admin)).json()
    assert [u["email"] for u in tutors] == ["nt@school.edu"]


def test_admin_creates_admin(client, auth, admin):
    r = client.post("/api/users", json={"full_name": "Second", "email": "root2@school.edu", "password": "admin123",
                                        "role": "admin"}, headers=auth(admin))
    assert r.status_code == 201


def test_user_management_is_admin_only(client, auth, tutor, student):
    for caller in (tutor, student):
        assert client.get("/api/users", headers=auth(caller)).status_code == 403
        r = client.post("/api/users", json={"full_name": "X", "email": "x@school.edu", "password": "123456"},
                        headers=auth(caller))
        assert r.status_code == 403


def test_staff_list_students(client, auth, tutor, student):
    r = client.get("/api/users/students", headers=auth(tutor))
    assert [s["id"] for s in r.json()] == [str(student["_id"])]
    assert client.get("/api/users/students", headers=auth(student)).status_code == 403


def test_update_user(client, auth, admin, student):
    r = client.put(f"/api/users/{student['_id']}", json={"department": "PHYS"}, headers=auth(admin))
    assert r.status_code == 200
    assert r.json()["department"] == "PHYS"


def test_graduate_student(client, auth, admin, student, tutor):
    r = client.post(f"/api/users/{student['_id']}/graduate", headers=auth(admin))
    assert r.status_code == 200
    assert r.json()["is_graduated"] is True

    assert client.post(f"/api/users/{tutor['_id']}/graduate", headers=auth(admin)).status_code == 400


def test_graduated_students_skip_mandatory_courses(client, auth, admin, tutor, student, db):
    client.post(f"/api/users/{student['_id']}/graduate", headers=auth(admin))
    client.post("/api/courses", json={"title": "Safety", "department": "GEN", "is_mandatory": True},
                headers=auth(tutor))
    assert db["enrollment"].count_documents({}) == 0


def test_dashboard_counts(client, auth, admin, tutor, student, course, enrolled):
    r = client.get("/api/admin/dashboard", headers=auth(admin))
    assert r.status_code == 200
    data = r.json()
    assert data["users"] == 3
    assert data["students"] == 1
    assert data["courses"] == 1
    assert data["enrollments"] == 1
    assert data["pending_grades"] == 0

    assert client.get("/api/admin/dashboard", headers=auth(tutor)).status_code == 403


def test_seed_admin_runs_once(db):
    seed_admin(db)
    seed_admin(db)
    admins = list(db["user"].find({"role": "admin"}))
    assert [a["email"] for a in admins] == [get_settings().ADMIN_EMAIL]


def test_store_unavailable(client):
    app.state.db = None
    r = client.post("/api/auth/login", json={"email": "a@school.edu", "password": "whatever"})
    assert r.status_code == 503
    assert r.json() == {"error": "Database unavailable"}


def test_health_endpoints(client):
    assert client.get("/").status_code == 200
    assert client.get("/test").json()["database"].endswith("Connected & Working")


def test_request_id_is_echoed(client):
    assert client.get("/", headers={"X-Request-ID": "trace-42"}).headers["X-Request-ID"] == "trace-42"
    assert len(client.get("/").headers["X-Request-ID"]) == 12


@pytest.fixture
def failing_store():
    def broken_db():
        raise RuntimeError("secret internal detail")
    app.dependency_overrides[get_db] = broken_db
    yield
    app.dependency_overrides.pop(get_db, None)


def test_unexpected_error_returns_generic_500(db, auth, tutor, failing_store, caplog):
    client = TestClient(app, raise_server_exceptions=False)
    with caplog.at_level(logging.ERROR):
        r = client.get("/api/courses", headers={**auth(tutor), "X-Request-ID": "req-500"})
    assert r.status_code == 500
    assert r.json() == {"error": "Internal server error"}
    assert "secret" not in r.text
    assert r.headers["X-Request-ID"] == "req-500"
    assert any("GET /api/courses -> 500" in message for message in caplog.messages)

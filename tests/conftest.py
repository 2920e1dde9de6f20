import itertools
import os

# settings are read at import time
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("LOG_FILE", None)

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import create_document, init_database
from main import app
from schemas import User
from security import hash_password, issue_token

PASSWORD = "secret123"


@pytest.fixture
def db():
    database = mongomock.MongoClient()["course_portal_test"]
    init_database(database)
    app.state.db = database
    yield database
    app.state.db = None


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(role="student", email=None, **fields):
        n = next(counter)
        return create_document(db, "user", User(
            username=f"{role}{n}",
            email=email or f"{role}{n}@school.edu",
            password_hash=hash_password(PASSWORD),
            full_name=f"{role.title()} {n}",
            role=role,
            **fields,
        ))
    return _make


@pytest.fixture
def auth():
    def _headers(user):
        return {"Authorization": f"Bearer {issue_token(user)}"}
    return _headers


@pytest.fixture
def tutor(make_user):
    return make_user("tutor")


@pytest.fixture
def student(make_user):
    return make_user("student")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def course(client, auth, tutor):
    """CS101 taught by ``tutor`` with enrollment key ABC123."""
    r = client.post("/api/courses", json={"title": "CS101", "department": "CS", "enrollment_key": "ABC123"},
                    headers=auth(tutor))
    assert r.status_code == 201, r.text
    return r.json()["course"]


@pytest.fixture
def enrolled(client, auth, student, course):
    r = client.post(f"/api/courses/{course['id']}/enroll", json={"enrollment_key": "ABC123"},
                    headers=auth(student))
    assert r.status_code == 201, r.text
    return student

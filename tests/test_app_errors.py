"""
HTTP-level error contract: requests go through the FastAPI app so request
validation and domain errors come back with the same status and body shape.
"""

from datetime import datetime, timedelta, UTC

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.database import Base, _create_engine, get_db
from app.main import app
from app.models.user import User
from app.utils.security import get_current_user


@pytest.fixture
def api(tmp_path):
    """TestClient bound to a file-backed database; callers pick the acting user."""
    engine = _create_engine(f"sqlite:///{tmp_path / 'api.db'}")
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = TestingSession()
    requester = User(name="Riley Requester", email="riley@test.edu", role="requester")
    provider = User(name="Pat Provider", email="pat@test.edu", role="provider")
    setup.add_all([requester, provider])
    setup.commit()
    users = {"requester": requester.id, "provider": provider.id}
    setup.close()

    acting = {"user_id": users["requester"]}

    def _get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    def _current_user(db=Depends(get_db)):
        return db.get(User, acting["user_id"])

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_user] = _current_user

    client = TestClient(app)
    client.users = users
    client.acting = acting
    yield client

    app.dependency_overrides.clear()
    engine.dispose()


def _booking(provider_id, **overrides):
    body = {
        "provider_id": provider_id,
        "title": "System design review",
        "description": "Review a URL shortener design end to end",
        "topic": "Architecture",
        "scheduled_start": (datetime.now(UTC) + timedelta(days=2)).isoformat(),
        "duration_minutes": 60,
    }
    body.update(overrides)
    return body


def test_health_check(api):
    response = api.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_booking_through_http_creates_pending_session(api):
    response = api.post("/sessions/", json=_booking(api.users["provider"]))

    assert response.status_code == 201
    assert response.json()["status"] == "pending"


def test_duration_over_limit_is_a_400_validation_error(api):
    response = api.post("/sessions/", json=_booking(api.users["provider"], duration_minutes=300))

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "VALIDATION_ERROR"
    assert "body.duration_minutes" in [e["field"] for e in detail["details"]["errors"]]


def test_missing_field_is_a_400_validation_error(api):
    body = _booking(api.users["provider"])
    del body["title"]

    response = api.post("/sessions/", json=body)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_rating_out_of_range_is_a_400_validation_error(api):
    response = api.post("/sessions/1/rate", json={"rating": 9})

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "VALIDATION_ERROR"
    assert [e["field"] for e in detail["details"]["errors"]] == ["body.rating"]


def test_unknown_respond_action_is_a_400_validation_error(api):
    api.acting["user_id"] = api.users["provider"]

    response = api.put("/sessions/1/respond", json={"action": "Approve"})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_domain_errors_keep_the_same_body_shape(api):
    response = api.post("/sessions/", json=_booking(9999))

    assert response.status_code == 404
    detail = response.json()["detail"]
    assert set(detail) == {"message", "code", "details"}


def test_overlapping_booking_over_http_is_a_409(api):
    body = _booking(api.users["provider"])
    assert api.post("/sessions/", json=body).status_code == 201

    response = api.post("/sessions/", json=body)

    assert response.status_code == 409
    assert response.json()["detail"]["details"]["conflicting_session_id"]

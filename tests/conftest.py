"""Pytest bootstrap for project imports and shared booking fixtures."""

from datetime import datetime, timedelta, UTC
import os
from pathlib import Path
import sys

# Settings are read at import time, so these must be set before `import app`.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("APP_ENV", "test")

# Ensure project root is on sys.path so `import app` works
PROJECT_ROOT = Path(__file__).resolve().parents[1]
project_root_str = str(PROJECT_ROOT)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base
from app.models.user import User


# Fixed "current time" for every booking test
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db_session():
    """Create test database session"""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    engine.dispose()


def _make_user(db, name, email, role, is_active=True):
    user = User(name=name, email=email, role=role, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def requester(db_session):
    return _make_user(db_session, "Riley Requester", "riley@test.edu", "requester")


@pytest.fixture
def other_requester(db_session):
    return _make_user(db_session, "Sam Requester", "sam@test.edu", "requester")


@pytest.fixture
def provider(db_session):
    return _make_user(db_session, "Pat Provider", "pat@test.edu", "provider")


@pytest.fixture
def other_provider(db_session):
    return _make_user(db_session, "Quinn Provider", "quinn@test.edu", "provider")


@pytest.fixture
def operator(db_session):
    return _make_user(db_session, "Olive Operator", "olive@test.edu", "operator")


@pytest.fixture
def make_user(db_session):
    def _factory(name, email, role, is_active=True):
        return _make_user(db_session, name, email, role, is_active=is_active)
    return _factory


@pytest.fixture
def book(db_session, requester, provider):
    """Create a pending session through the service; keyword overrides allowed."""
    from app.services import session_service

    def _book(**overrides):
        params = dict(
            requester_id=requester.id,
            provider_id=provider.id,
            title="Intro to recursion",
            description="Walk through recursive problem solving",
            topic="Algorithms",
            scheduled_start=NOW + timedelta(days=2),
            duration_minutes=60,
            now=NOW,
        )
        params.update(overrides)
        return session_service.create_session(db_session, **params)

    return _book

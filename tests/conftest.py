"""
Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite engine; the periodic scheduler is
disabled so nothing hits the network.
"""

import os
import threading

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REGIONAL_SYNC_ENABLED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from artists_api.core.deps import get_session, get_sync_service
from artists_api.core.security import hash_password
from artists_api.db.models import User, UserRole
from artists_api.db.session import build_engine
from artists_api.main import app
from artists_api.services.regional_sync import RegionalSyncService
from tests.helpers import FakeUpstream


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def sync_service(engine, upstream):
    return RegionalSyncService(upstream.source(), engine, lock=threading.Lock())


@pytest.fixture
def users(engine):
    with Session(engine) as s:
        s.add(
            User(
                login="admin",
                password_hash=hash_password("admin123"),
                role=UserRole.admin,
            )
        )
        s.add(
            User(
                login="viewer",
                password_hash=hash_password("viewer123"),
                role=UserRole.viewer,
            )
        )
        s.commit()
    return {"admin": "admin123", "viewer": "viewer123"}


@pytest.fixture
def client(engine, sync_service, users):
    def _session_override():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_sync_service] = lambda: sync_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

# tests/api/conftest.py
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from quickattend.backend.main import app
from quickattend.backend.api.auth import get_current_instructor
from quickattend.backend.models.redis_models import InstructorSessionRedis, Location, Session


@pytest.fixture
def client():
    # Not used as a context manager: the lifespan (Redis pool, scheduler) stays off.
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def as_instructor():
    now = datetime.now(timezone.utc)
    instructor = InstructorSessionRedis(session_id="inst-1", display_name="Dr. Rivera", session_start_time=now, session_end_time=now + timedelta(hours=8))
    app.dependency_overrides[get_current_instructor] = lambda: instructor
    return instructor


@pytest.fixture
def override():
    """Replaces a dependency with a fresh AsyncMock and returns the mock."""
    def _override(dependency):
        mock = AsyncMock()
        app.dependency_overrides[dependency] = lambda: mock
        return mock
    return _override


@pytest.fixture
def live_session() -> Session:
    return Session(
        id="sess-1",
        class_name="CS101-A",
        code="ABC234",
        created_at=datetime(2026, 1, 21, 10, 0, tzinfo=timezone.utc),
        radius_meters=300,
        late_threshold_minutes=10,
        location=Location(lat=3.1201, lng=101.6544),
    )

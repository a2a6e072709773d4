import pytest
import pytest_asyncio
from datetime import datetime, timezone, timedelta
from unittest.mock import AsyncMock

from quickattend.backend.services.analytics_service import AnalyticsService
from quickattend.backend.services.exceptions import ServiceError
from quickattend.backend.models.redis_models import AttendanceRecord, Location, Session


def make_session(session_id: str, name: str, created_at: datetime) -> Session:
    return Session(
        id=session_id,
        class_name=name,
        code="ABC234",
        created_at=created_at,
        active=False,
        radius_meters=300,
        late_threshold_minutes=10,
        location=Location(lat=3.12, lng=101.65),
    )


@pytest_asyncio.fixture
async def service_instance():
    mock_redis_client = AsyncMock()
    return AnalyticsService(redis_client=mock_redis_client), mock_redis_client


@pytest.mark.asyncio
class TestAnalyticsService:

    async def test_previous_classes(self, service_instance):
        service, mock_redis_client = service_instance
        mock_redis_client.get_all_sessions.return_value = [
            make_session("1", "CS101", datetime(2026, 1, 14, 10, 5, tzinfo=timezone.utc)),
            make_session("2", "CS202", datetime(2026, 1, 20, 14, 0, tzinfo=timezone.utc)),
        ]
        entries = await service.get_previous_classes()
        assert [e.class_name for e in entries] == ["CS202", "CS101"]

    async def test_smart_default(self, service_instance):
        service, mock_redis_client = service_instance
        mock_redis_client.get_all_sessions.return_value = [
            make_session("1", "CS101", datetime(2026, 1, 14, 10, 5, tzinfo=timezone.utc)),
            make_session("2", "CS202", datetime(2026, 1, 20, 14, 0, tzinfo=timezone.utc)),
        ]
        now = datetime(2026, 1, 21, 10, 15, tzinfo=timezone.utc)
        assert await service.get_smart_default(now) == "CS101"

    async def test_smart_default_without_history(self, service_instance):
        service, mock_redis_client = service_instance
        mock_redis_client.get_all_sessions.return_value = []
        assert await service.get_smart_default() is None

    async def test_class_analytics(self, service_instance):
        service, mock_redis_client = service_instance
        session = make_session("1", "CS101", datetime.now(timezone.utc) - timedelta(days=1))
        mock_redis_client.get_all_sessions.return_value = [session]
        mock_redis_client.get_attendance_for_sessions.return_value = {
            "1": [AttendanceRecord(session_id="1", student_id="S1", student_name="A", timestamp=session.created_at)]
        }

        report = await service.get_class_analytics("CS101")

        assert report.summary.total_sessions == 1
        assert report.summary.unique_students == 1

    async def test_export(self, service_instance):
        service, mock_redis_client = service_instance
        mock_redis_client.get_all_sessions.return_value = []
        mock_redis_client.get_attendance_for_sessions.return_value = {}

        filename, content = await service.export_class_analytics("CS101")

        assert filename.startswith("analytics_report_CS101_")
        assert content.startswith("Student ID")

    async def test_store_error(self, service_instance):
        service, mock_redis_client = service_instance
        mock_redis_client.get_all_sessions.side_effect = ConnectionError("down")
        with pytest.raises(ServiceError):
            await service.get_previous_classes()

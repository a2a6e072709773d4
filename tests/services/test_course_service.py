import pytest
import pytest_asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from quickattend.backend.services.course_service import CourseService
from quickattend.backend.services.exceptions import NotFoundError, ServiceError
from quickattend.backend.models.redis_models import CourseSchedule, Location, ScheduledSession


@pytest.fixture
def location() -> Location:
    return Location(lat=3.12, lng=101.65)


@pytest.fixture
def schedule() -> CourseSchedule:
    return CourseSchedule(days=["Tuesday", "Thursday"], start_time="14:00", end_time="15:30", weeks=3, start_date="2026-02-02")


@pytest_asyncio.fixture
async def service_instance():
    mock_redis_client = AsyncMock()
    mock_instructor_service = AsyncMock()
    service = CourseService(redis_client=mock_redis_client, instructor_service=mock_instructor_service)
    return service, mock_redis_client, mock_instructor_service


def make_draft(location, radius=None, late_threshold=None) -> ScheduledSession:
    return ScheduledSession(
        id="draft-1",
        course_id="course-1",
        class_name="CS101-A",
        location=location,
        radius=radius,
        late_threshold=late_threshold,
        scheduled_for=datetime(2026, 2, 3, 14, 0, tzinfo=timezone.utc),
        created_at=datetime(2026, 1, 30, tzinfo=timezone.utc),
    )


@pytest.mark.asyncio
class TestCourseService:

    async def test_create_course_persists_course_and_drafts(self, service_instance, schedule, location):
        service, mock_redis_client, _ = service_instance

        course, drafts = await service.create_course(" CS101 ", "A", schedule, location, radius=150)

        assert course.class_name == "CS101-A"
        assert course.code == "CS101"
        assert course.radius == 150
        assert len(drafts) == 6
        assert all(d.course_id == course.id and d.radius == 150 for d in drafts)
        mock_redis_client.save_course.assert_awaited_once_with(course, drafts)

    async def test_create_course_reports_every_problem(self, service_instance, location):
        service, mock_redis_client, _ = service_instance
        bad_schedule = CourseSchedule(days=[], start_time="10:00", end_time="09:00", weeks=1, start_date="2026-02-02")

        with pytest.raises(ServiceError) as exc_info:
            await service.create_course("", "A", bad_schedule, location)

        message = str(exc_info.value)
        assert "Course code is required" in message
        assert "At least one day must be selected" in message
        assert "Start time must be before end time" in message
        mock_redis_client.save_course.assert_not_awaited()

    @pytest.mark.parametrize("changes", [{"start_date": "next monday"}, {"start_date": "2026-02-30"}, {"start_time": "ab:cd", "end_time": "zz:zz"}])
    async def test_create_course_with_malformed_schedule_is_a_service_error(self, service_instance, schedule, location, changes):
        service, mock_redis_client, _ = service_instance

        with pytest.raises(ServiceError, match="must be"):
            await service.create_course("CS101", "A", schedule.model_copy(update=changes), location)

        mock_redis_client.save_course.assert_not_awaited()

    async def test_activate_uses_course_defaults(self, service_instance, location):
        service, mock_redis_client, mock_instructor_service = service_instance
        mock_redis_client.get_scheduled_session.return_value = make_draft(location, radius=120, late_threshold=5)

        await service.activate_scheduled_session("draft-1")

        kwargs = mock_instructor_service.start_session.call_args.kwargs
        assert kwargs["radius_meters"] == 120
        assert kwargs["late_threshold_minutes"] == 5
        assert kwargs["session_id"] == "draft-1"
        assert kwargs["course_id"] == "course-1"
        mock_redis_client.delete_scheduled_session.assert_awaited_once_with("draft-1")

    async def test_activate_overrides_win(self, service_instance, location):
        service, mock_redis_client, mock_instructor_service = service_instance
        mock_redis_client.get_scheduled_session.return_value = make_draft(location, radius=120, late_threshold=5)

        await service.activate_scheduled_session("draft-1", radius=40, late_threshold=0)

        kwargs = mock_instructor_service.start_session.call_args.kwargs
        assert kwargs["radius_meters"] == 40
        assert kwargs["late_threshold_minutes"] == 0

    async def test_activate_without_any_defaults_leaves_global_defaults(self, service_instance, location):
        service, mock_redis_client, mock_instructor_service = service_instance
        mock_redis_client.get_scheduled_session.return_value = make_draft(location)

        await service.activate_scheduled_session("draft-1")

        kwargs = mock_instructor_service.start_session.call_args.kwargs
        assert kwargs["radius_meters"] is None
        assert kwargs["late_threshold_minutes"] is None

    async def test_activate_missing_draft(self, service_instance):
        service, mock_redis_client, _ = service_instance
        mock_redis_client.get_scheduled_session.return_value = None
        with pytest.raises(NotFoundError):
            await service.activate_scheduled_session("nope")

    async def test_scheduled_for_day_covers_the_local_day(self, service_instance):
        service, mock_redis_client, _ = service_instance
        mock_redis_client.get_scheduled_between.return_value = []

        await service.get_scheduled_for_day(datetime(2026, 2, 3, 15, 30, tzinfo=timezone.utc))

        start, end = mock_redis_client.get_scheduled_between.call_args[0]
        assert start == datetime(2026, 2, 3, tzinfo=timezone.utc)
        assert end == datetime(2026, 2, 4, tzinfo=timezone.utc)

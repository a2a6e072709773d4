import logging
from typing import List, Optional, Tuple
from uuid import uuid4
from datetime import datetime, time, timedelta, timezone

from ..config.config import settings
from ..db.redis_client import RedisClient
from ..models.redis_models import Course, CourseSchedule, Location, ScheduledSession, Session
from ..modules.course_schedule import (
    combine_course_class_name,
    generate_scheduled_sessions,
    validate_course_info,
    validate_schedule,
)
from .exceptions import NotFoundError, ServiceError
from .instructor_service import InstructorService

logger = logging.getLogger(__name__)


class CourseService:
    """
    Service layer for the course setup wizard: a course is created once with
    its weekly schedule, and the generated drafts are turned into live
    sessions one at a time when the class actually meets.
    """
    def __init__(self, redis_client: RedisClient, instructor_service: InstructorService):
        self.redis_client = redis_client
        self.instructor_service = instructor_service

    async def create_course(
        self,
        code: str,
        section: str,
        schedule: CourseSchedule,
        location: Location,
        radius: Optional[int] = None,
        late_threshold: Optional[int] = None,
    ) -> Tuple[Course, List[ScheduledSession]]:
        errors = validate_course_info(code, section).errors + validate_schedule(schedule).errors
        if errors:
            raise ServiceError("; ".join(errors))

        course = Course(
            id=uuid4().hex,
            code=code.strip(),
            section=section.strip(),
            class_name=combine_course_class_name(code, section),
            schedule=schedule,
            location=location,
            radius=radius,
            late_threshold=late_threshold,
            created_at=datetime.now(timezone.utc),
        )
        drafts = generate_scheduled_sessions(course, schedule, tz=settings.local_timezone())

        try:
            await self.redis_client.save_course(course, drafts)
        except Exception as e:
            logger.error(f"Error saving course {course.class_name}.", exc_info=True)
            raise ServiceError("A server error occurred while saving the course.") from e

        logger.info(f"Course {course.class_name} created with {len(drafts)} scheduled sessions.")
        return course, drafts

    async def list_courses(self) -> List[Course]:
        try:
            return await self.redis_client.get_courses()
        except Exception as e:
            logger.error("Error loading courses.", exc_info=True)
            raise ServiceError("A server error occurred while loading courses.") from e

    async def get_scheduled_for_day(self, now: Optional[datetime] = None) -> List[ScheduledSession]:
        """Drafts scheduled on the local calendar day of `now`."""
        tz = settings.local_timezone()
        local_now = (now or datetime.now(timezone.utc)).astimezone(tz)
        day_start = datetime.combine(local_now.date(), time(0, 0), tzinfo=tz)
        day_end = datetime.combine(local_now.date() + timedelta(days=1), time(0, 0), tzinfo=tz)
        try:
            return await self.redis_client.get_scheduled_between(day_start, day_end)
        except Exception as e:
            logger.error("Error loading today's scheduled sessions.", exc_info=True)
            raise ServiceError("A server error occurred while loading scheduled sessions.") from e

    async def activate_scheduled_session(
        self,
        scheduled_id: str,
        radius: Optional[int] = None,
        late_threshold: Optional[int] = None,
    ) -> Session:
        """
        Turns a draft into a live session under the same id. Explicit
        overrides win over the course defaults, which win over the global
        defaults.
        """
        draft = await self.redis_client.get_scheduled_session(scheduled_id)
        if not draft:
            raise NotFoundError("Scheduled session not found.")

        session = await self.instructor_service.start_session(
            class_name=draft.class_name,
            location=draft.location,
            radius_meters=next((v for v in (radius, draft.radius) if v is not None), None),
            late_threshold_minutes=next((v for v in (late_threshold, draft.late_threshold) if v is not None), None),
            course_id=draft.course_id,
            scheduled_for=draft.scheduled_for,
            session_id=draft.id,
        )

        try:
            await self.redis_client.delete_scheduled_session(scheduled_id)
        except Exception:
            logger.warning(f"Session {session.id} is live but its draft could not be removed.", exc_info=True)

        logger.info(f"Scheduled session {scheduled_id} of {draft.class_name} activated.")
        return session

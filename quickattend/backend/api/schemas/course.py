from pydantic import BaseModel, Field
from typing import List, Optional

from ...models.redis_models import Course, CourseSchedule, Location, ScheduledSession


class CourseCreateRequest(BaseModel):
    """
    Everything collected by the course setup wizard. Course info and schedule
    rules are checked by the service so that all problems come back together.
    """
    code: str = Field(..., description="Course code, e.g. 'CS101'.")
    section: str = Field(..., description="Section, e.g. 'A'.")
    schedule: CourseSchedule
    location: Location
    radius: Optional[int] = Field(None, ge=10, le=5000)
    late_threshold: Optional[int] = Field(None, ge=0, le=240)


class CourseCreateResponse(BaseModel):
    course: Course
    scheduled_sessions: List[ScheduledSession]


class ActivateScheduledRequest(BaseModel):
    """Optional overrides of the course defaults."""
    radius: Optional[int] = Field(None, ge=10, le=5000)
    late_threshold: Optional[int] = Field(None, ge=0, le=240)

# quickattend/backend/api/dependencies.py
from typing import Optional

from fastapi import Request, Depends
import redis.asyncio as redis

from ..db.redis_client import RedisClient
from ..services.analytics_service import AnalyticsService
from ..services.course_service import CourseService
from ..services.instructor_service import InstructorService
from ..services.student_service import StudentService
from ..tasks.rotation import CodeRotator


def get_redis_pool(request: Request) -> redis.ConnectionPool:
    """Shared Redis connection pool created in the app lifespan."""
    return request.app.state.redis_pool


def get_code_rotator(request: Request) -> Optional[CodeRotator]:
    return getattr(request.app.state, "code_rotator", None)


def get_redis_client(redis_pool: redis.ConnectionPool = Depends(get_redis_pool)) -> RedisClient:
    return RedisClient(pool=redis_pool)


def get_instructor_service(
    redis_client: RedisClient = Depends(get_redis_client),
    rotator: Optional[CodeRotator] = Depends(get_code_rotator),
) -> InstructorService:
    """
    Builds a fresh InstructorService per request on top of the shared pool,
    wired to the scheduler-owned code rotator.
    """
    return InstructorService(redis_client=redis_client, rotator=rotator)


def get_course_service(
    redis_client: RedisClient = Depends(get_redis_client),
    instructor_service: InstructorService = Depends(get_instructor_service),
) -> CourseService:
    return CourseService(redis_client=redis_client, instructor_service=instructor_service)


def get_analytics_service(redis_client: RedisClient = Depends(get_redis_client)) -> AnalyticsService:
    return AnalyticsService(redis_client=redis_client)


def get_student_service(redis_client: RedisClient = Depends(get_redis_client)) -> StudentService:
    return StudentService(redis_client=redis_client)

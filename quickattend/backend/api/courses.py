from fastapi import APIRouter, Depends, HTTPException, status, Request
from typing import List

from ..services.exceptions import NotFoundError, ServiceError
from ..services.course_service import CourseService
from ..models.redis_models import Course, InstructorSessionRedis, ScheduledSession
from .schemas.course import ActivateScheduledRequest, CourseCreateRequest, CourseCreateResponse
from .schemas.session import SessionResponse
from .auth import get_current_instructor
from .dependencies import get_course_service
from .utilities.limiter import limiter

router = APIRouter(prefix="/instructor", tags=["Course Endpoints"])


@router.post("/courses", response_model=CourseCreateResponse, status_code=status.HTTP_201_CREATED, summary="Create a course and generate its scheduled sessions")
@limiter.limit("10/minute")
async def create_course(request: Request, create_request: CourseCreateRequest, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: CourseService = Depends(get_course_service)):
    try:
        course, drafts = await service.create_course(
            code=create_request.code,
            section=create_request.section,
            schedule=create_request.schedule,
            location=create_request.location,
            radius=create_request.radius,
            late_threshold=create_request.late_threshold,
        )
    except ServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return CourseCreateResponse(course=course, scheduled_sessions=drafts)


@router.get("/courses", response_model=List[Course], summary="List courses")
@limiter.limit("60/minute")
async def list_courses(request: Request, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: CourseService = Depends(get_course_service)):
    try:
        return await service.list_courses()
    except ServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/scheduled/today", response_model=List[ScheduledSession], summary="Scheduled sessions waiting for activation today")
@limiter.limit("60/minute")
async def get_scheduled_today(request: Request, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: CourseService = Depends(get_course_service)):
    try:
        return await service.get_scheduled_for_day()
    except ServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/scheduled/{scheduled_id}/activate", response_model=SessionResponse, status_code=status.HTTP_201_CREATED, summary="Start a scheduled session")
@limiter.limit("10/minute")
async def activate_scheduled_session(request: Request, scheduled_id: str, activate_request: ActivateScheduledRequest, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: CourseService = Depends(get_course_service)):
    try:
        session = await service.activate_scheduled_session(
            scheduled_id,
            radius=activate_request.radius,
            late_threshold=activate_request.late_threshold,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return SessionResponse.from_session(session)

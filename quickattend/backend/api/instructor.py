from fastapi import APIRouter, Depends, HTTPException, status, Response, Request, Query
from typing import List, Optional
from datetime import date, datetime, timezone

from ..services.exceptions import NotFoundError, ServiceError
from ..services.instructor_service import InstructorService
from ..services.analytics_service import AnalyticsService
from ..models.redis_models import AttendanceRecord, AuditEntry, FailedAttempt, InstructorSessionRedis, PreviousClassEntry
from ..modules.analytics import ClassAnalytics
from .schemas.session import (
    AttendanceUpdateRequest,
    DismissFailedRequest,
    DismissFailedResponse,
    ManualAttendanceRequest,
    SessionResponse,
    SessionStartRequest,
    SmartDefaultResponse,
)
from .auth import get_current_instructor
from .dependencies import get_analytics_service, get_instructor_service
from .utilities.limiter import limiter

router = APIRouter(prefix="/instructor", tags=["Instructor Endpoints"])

# --- Helpers ---

def _http_error(e: ServiceError) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _csv_response(filename: str, content: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

# === Session lifecycle ===

@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED, summary="Start a new attendance session")
@limiter.limit("10/minute")
async def start_session(request: Request, start_request: SessionStartRequest, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        session = await service.start_session(
            class_name=start_request.class_name,
            location=start_request.location,
            radius_meters=start_request.radius_meters,
            late_threshold_minutes=start_request.late_threshold_minutes,
        )
        return SessionResponse.from_session(session)
    except ServiceError as e:
        raise _http_error(e)

@router.get("/sessions/active", response_model=List[SessionResponse], summary="List the currently active sessions")
@limiter.limit("120/minute")
async def get_active_sessions(request: Request, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        sessions = await service.get_active_sessions()
    except ServiceError as e:
        raise _http_error(e)
    return [SessionResponse.from_session(s) for s in sessions]

@router.get("/sessions", response_model=List[SessionResponse], summary="Session history, last 14 days unless filtered")
@limiter.limit("60/minute")
async def get_session_history(
    request: Request,
    show_all: bool = False,
    search: Optional[str] = Query(None, max_length=100),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    instructor: InstructorSessionRedis = Depends(get_current_instructor),
    service: InstructorService = Depends(get_instructor_service),
):
    try:
        sessions = await service.get_history(show_all=show_all, search=search, start_date=start_date, end_date=end_date)
    except ServiceError as e:
        raise _http_error(e)
    return [SessionResponse.from_session(s) for s in sessions]

@router.get("/sessions/{session_id}", response_model=SessionResponse, summary="Get one session")
@limiter.limit("120/minute")
async def get_session(request: Request, session_id: str, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        return SessionResponse.from_session(await service.get_session(session_id))
    except ServiceError as e:
        raise _http_error(e)

@router.post("/sessions/{session_id}/end", response_model=SessionResponse, summary="End an active session")
@limiter.limit("10/minute")
async def end_session(request: Request, session_id: str, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        return SessionResponse.from_session(await service.end_session(session_id))
    except ServiceError as e:
        raise _http_error(e)

@router.post("/sessions/{session_id}/reopen", response_model=SessionResponse, summary="Reopen an ended session under a new code")
@limiter.limit("10/minute")
async def reopen_session(request: Request, session_id: str, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        return SessionResponse.from_session(await service.reopen_session(session_id))
    except ServiceError as e:
        raise _http_error(e)

@router.post("/sessions/{session_id}/rotate-code", response_model=SessionResponse, summary="Replace the session code now")
@limiter.limit("30/minute")
async def rotate_code(request: Request, session_id: str, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        return SessionResponse.from_session(await service.rotate_code(session_id))
    except ServiceError as e:
        raise _http_error(e)

# === Attendance records ===

@router.get("/sessions/{session_id}/attendance", response_model=List[AttendanceRecord], summary="Attendance of a session in check-in order")
@limiter.limit("120/minute")
async def get_attendance(request: Request, session_id: str, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        return await service.get_attendance(session_id)
    except ServiceError as e:
        raise _http_error(e)

@router.post("/sessions/{session_id}/attendance", response_model=AttendanceRecord, status_code=status.HTTP_201_CREATED, summary="Manually add a student")
@limiter.limit("60/minute")
async def add_manual_attendance(request: Request, session_id: str, add_request: ManualAttendanceRequest, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        return await service.add_manual_attendance(
            session_id,
            student_id=add_request.student_id,
            student_name=add_request.student_name,
            email=add_request.email,
            is_late=add_request.is_late,
            note=add_request.note,
        )
    except ServiceError as e:
        raise _http_error(e)

@router.patch("/sessions/{session_id}/attendance/{student_id}", response_model=AttendanceRecord, summary="Edit an attendance record")
@limiter.limit("60/minute")
async def update_attendance(request: Request, session_id: str, student_id: str, update_request: AttendanceUpdateRequest, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        return await service.update_attendance(session_id, student_id, **update_request.model_dump())
    except ServiceError as e:
        raise _http_error(e)

@router.delete("/sessions/{session_id}/attendance/{student_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Remove a student from a session")
@limiter.limit("60/minute")
async def delete_attendance(request: Request, session_id: str, student_id: str, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        await service.delete_attendance(session_id, student_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except ServiceError as e:
        raise _http_error(e)

@router.post("/sessions/{session_id}/attendance/{student_id}/participation/increment", response_model=AttendanceRecord, summary="Add one participation point")
@limiter.limit("200/minute")
async def increment_participation(request: Request, session_id: str, student_id: str, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        return await service.change_participation(session_id, student_id, 1)
    except ServiceError as e:
        raise _http_error(e)

@router.post("/sessions/{session_id}/attendance/{student_id}/participation/decrement", response_model=AttendanceRecord, summary="Remove one participation point (never below zero)")
@limiter.limit("200/minute")
async def decrement_participation(request: Request, session_id: str, student_id: str, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        return await service.change_participation(session_id, student_id, -1)
    except ServiceError as e:
        raise _http_error(e)

# === Failed attempts and audit trail ===

@router.get("/sessions/{session_id}/failed", response_model=List[FailedAttempt], summary="Rejected check-ins of a session")
@limiter.limit("120/minute")
async def get_failed_attempts(request: Request, session_id: str, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        return await service.get_failed_attempts(session_id)
    except ServiceError as e:
        raise _http_error(e)

@router.delete("/sessions/{session_id}/failed/{attempt_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Dismiss one failed attempt")
@limiter.limit("120/minute")
async def dismiss_failed_attempt(request: Request, session_id: str, attempt_id: str, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        removed = await service.dismiss_failed_attempts(session_id, [attempt_id])
    except ServiceError as e:
        raise _http_error(e)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Failed attempt not found.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.post("/sessions/{session_id}/failed/dismiss", response_model=DismissFailedResponse, summary="Dismiss several failed attempts")
@limiter.limit("60/minute")
async def dismiss_failed_attempts(request: Request, session_id: str, dismiss_request: DismissFailedRequest, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        removed = await service.dismiss_failed_attempts(session_id, dismiss_request.attempt_ids)
    except ServiceError as e:
        raise _http_error(e)
    return DismissFailedResponse(dismissed=removed)

@router.get("/sessions/{session_id}/audit", response_model=List[AuditEntry], summary="Instructor actions on a session")
@limiter.limit("60/minute")
async def get_audit_trail(request: Request, session_id: str, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        return await service.get_audit_trail(session_id)
    except ServiceError as e:
        raise _http_error(e)

@router.get("/sessions/{session_id}/export", summary="Download the attendance of a session as CSV")
@limiter.limit("20/minute")
async def export_session(request: Request, session_id: str, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: InstructorService = Depends(get_instructor_service)):
    try:
        filename, content = await service.export_csv(session_id)
    except ServiceError as e:
        raise _http_error(e)
    return _csv_response(filename, content)

# === Classes and analytics ===

@router.get("/classes", response_model=List[PreviousClassEntry], summary="Previously used classes, most recent first")
@limiter.limit("60/minute")
async def get_previous_classes(request: Request, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: AnalyticsService = Depends(get_analytics_service)):
    try:
        return await service.get_previous_classes()
    except ServiceError as e:
        raise _http_error(e)

@router.get("/classes/smart-default", response_model=SmartDefaultResponse, summary="Class to pre-select for a new session")
@limiter.limit("60/minute")
async def get_smart_default(request: Request, instructor: InstructorSessionRedis = Depends(get_current_instructor), service: AnalyticsService = Depends(get_analytics_service)):
    now = datetime.now(timezone.utc)
    try:
        class_name = await service.get_smart_default(now)
    except ServiceError as e:
        raise _http_error(e)
    return SmartDefaultResponse(class_name=class_name, generated_at=now)

@router.get("/analytics", response_model=ClassAnalytics, summary="Attendance analytics for one class or all classes")
@limiter.limit("30/minute")
async def get_analytics(
    request: Request,
    class_name: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    instructor: InstructorSessionRedis = Depends(get_current_instructor),
    service: AnalyticsService = Depends(get_analytics_service),
):
    try:
        return await service.get_class_analytics(class_name, start_date=start_date, end_date=end_date)
    except ServiceError as e:
        raise _http_error(e)

@router.get("/analytics/export", summary="Download the analytics report as CSV")
@limiter.limit("10/minute")
async def export_analytics(
    request: Request,
    class_name: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    instructor: InstructorSessionRedis = Depends(get_current_instructor),
    service: AnalyticsService = Depends(get_analytics_service),
):
    try:
        filename, content = await service.export_class_analytics(class_name, start_date=start_date, end_date=end_date)
    except ServiceError as e:
        raise _http_error(e)
    return _csv_response(filename, content)

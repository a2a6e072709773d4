from fastapi import APIRouter, Depends, HTTPException, status, Request, Response

from ..services.exceptions import ServiceError
from ..services.student_service import StudentService
from ..models.redis_models import StudentInfo
from ..modules.analytics import StudentLookupResult
from ..tools.device_fingerprint import DeviceSignals
from .schemas.student import CheckInRequest, CheckInResponse, DeviceIdResponse
from .dependencies import get_student_service
from .utilities.limiter import limiter

router = APIRouter(prefix="/student", tags=["Student Endpoints"])


@router.post("/device-id", response_model=DeviceIdResponse, summary="Derive the device id from browser signals")
@limiter.limit("30/minute")
async def get_device_id(request: Request, signals: DeviceSignals):
    return DeviceIdResponse(device_id=StudentService.device_id_for(signals))


@router.post("/check-in", response_model=CheckInResponse, summary="Check in to the session shown by the instructor")
@limiter.limit("10/minute")
async def check_in(request: Request, check_in_request: CheckInRequest, service: StudentService = Depends(get_student_service)):
    """
    Validates the code, duplicate and device checks, and the geofence.
    A rejected check-in is recorded for the instructor and returned as 400.
    """
    try:
        record = await service.check_in(
            code=check_in_request.code,
            student_id=check_in_request.student_id,
            student_name=check_in_request.student_name,
            latitude=check_in_request.latitude,
            longitude=check_in_request.longitude,
            email=check_in_request.email,
            device_id=check_in_request.device_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    message = "Checked in (late)." if record.is_late else "Checked in on time."
    return CheckInResponse(
        session_id=record.session_id,
        student_id=record.student_id,
        status=record.status,
        is_late=record.is_late,
        distance_meters=record.distance_meters,
        timestamp=record.timestamp,
        message=message,
    )


@router.get("/lookup/{student_id}", response_model=StudentLookupResult, summary="Attendance history of a student")
@limiter.limit("20/minute")
async def lookup_student(request: Request, student_id: str, service: StudentService = Depends(get_student_service)):
    try:
        return await service.lookup(student_id)
    except ServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/info/{device_id}", response_model=StudentInfo, summary="Saved check-in details for this device")
@limiter.limit("30/minute")
async def get_student_info(request: Request, device_id: str, service: StudentService = Depends(get_student_service)):
    info = await service.get_student_info(device_id)
    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No saved details for this device.")
    return info


@router.put("/info/{device_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Save check-in details for this device")
@limiter.limit("30/minute")
async def save_student_info(request: Request, device_id: str, info: StudentInfo, service: StudentService = Depends(get_student_service)):
    if not await service.save_student_info(device_id, info):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Details could not be saved.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/info/{device_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Forget the saved check-in details")
@limiter.limit("30/minute")
async def clear_student_info(request: Request, device_id: str, service: StudentService = Depends(get_student_service)):
    if not await service.clear_student_info(device_id):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Details could not be cleared.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

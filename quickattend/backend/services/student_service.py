import logging
from typing import Optional
from uuid import uuid4
from datetime import datetime, timezone

from ..config.config import settings
from ..db.redis_client import RedisClient
from ..models.redis_models import AttendanceRecord, FailedAttempt, Location, Session, StudentInfo
from ..modules.analytics import StudentLookupResult, student_lookup
from ..modules.student_info import StudentInfoStore
from ..tools.device_fingerprint import DeviceSignals, generate_device_id
from ..tools.geo_verifier import verify_location
from ..tools.validators import is_late_check_in
from .exceptions import CheckInRejected, ServiceError

logger = logging.getLogger(__name__)

REASON_INVALID_CODE = "Invalid code"
REASON_ALREADY_CHECKED_IN = "Already checked in"
REASON_DEVICE_IN_USE = "Device already used by another student"


class StudentService:
    """
    Service layer for the student side: check-in against the current session
    code, attendance lookup, and the returning-student prefill.
    """
    def __init__(self, redis_client: RedisClient):
        self.redis_client = redis_client

    @staticmethod
    def device_id_for(signals: DeviceSignals) -> str:
        return generate_device_id(signals)

    def _info_store(self, device_id: str) -> StudentInfoStore:
        return StudentInfoStore(self.redis_client, device_id, ttl=settings.STUDENT_INFO_TTL_SECONDS)

    async def _reject(
        self,
        session: Session,
        reason: str,
        student_id: str,
        student_name: str,
        email: Optional[str],
        device_id: Optional[str],
        now: datetime,
        distance: Optional[float] = None,
    ):
        attempt = FailedAttempt(
            id=uuid4().hex,
            session_id=session.id,
            student_id=student_id,
            student_name=student_name,
            email=email,
            device_id=device_id,
            reason=reason,
            timestamp=now,
            distance_meters=distance,
        )
        try:
            await self.redis_client.save_failed_attempt(attempt)
        except Exception as e:
            logger.error(f"Could not store failed attempt for '{student_id}' in session {session.id}.", exc_info=True)
            raise ServiceError("A server error occurred while processing the check-in.") from e
        logger.info(f"Check-in of '{student_id}' to session {session.id} rejected: {reason}")
        raise CheckInRejected(reason, attempt)

    async def _resolve_session(self, code: str) -> Optional[Session]:
        session_id = await self.redis_client.get_session_id_by_code(code)
        if not session_id:
            return None
        session = await self.redis_client.get_session(session_id)
        if session and session.active and session.code == code:
            return session
        return None

    async def check_in(
        self,
        code: str,
        student_id: str,
        student_name: str,
        latitude: float,
        longitude: float,
        email: Optional[str] = None,
        device_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AttendanceRecord:
        """
        Records a student's attendance for the active session using `code`.

        Checks run in order: the code must belong to an active session, the
        student must not be checked in yet, the device must not have been
        used by a different student, and the position must lie inside the
        geofence. A failed check is stored as a FailedAttempt and raised as
        CheckInRejected. The prefill info for the device is saved either way.

        Raises:
            CheckInRejected: A check failed and was recorded.
            ServiceError: The code matches no active session and there is no
                single active session to record the attempt against.
        """
        now = now or datetime.now(timezone.utc)
        code = code.strip().upper()
        student_id = student_id.strip()
        student_name = student_name.strip()

        try:
            return await self._check_in(code, student_id, student_name, latitude, longitude, email, device_id, now)
        finally:
            if device_id:
                await self._info_store(device_id).save(
                    StudentInfo(student_id=student_id, student_name=student_name, student_email=email or "")
                )

    async def _check_in(self, code, student_id, student_name, latitude, longitude, email, device_id, now) -> AttendanceRecord:
        logger.info(f"Student '{student_id}' is attempting to check in with code {code}.")
        try:
            session = await self._resolve_session(code)
            active_sessions = [] if session else await self.redis_client.get_active_sessions()
        except Exception as e:
            logger.error("Redis error while resolving the session code.", exc_info=True)
            raise ServiceError("A server error occurred while processing the check-in.") from e

        if not session:
            # With exactly one active session the wrong code can only have been meant for it.
            if len(active_sessions) == 1:
                await self._reject(active_sessions[0], REASON_INVALID_CODE, student_id, student_name, email, device_id, now)
            logger.warning(f"Student '{student_id}' used unknown code {code}.")
            raise ServiceError("Invalid or expired session code.")

        existing = await self.redis_client.get_attendance_record(session.id, student_id)
        if existing:
            await self._reject(session, REASON_ALREADY_CHECKED_IN, student_id, student_name, email, device_id, now)

        if device_id:
            records = await self.redis_client.get_attendance_records(session.id)
            if any(r.device_id == device_id and r.student_id != student_id for r in records):
                await self._reject(session, REASON_DEVICE_IN_USE, student_id, student_name, email, device_id, now)

        is_within, distance = verify_location(session, latitude, longitude)
        if not is_within:
            reason = f"Outside allowed radius ({distance:.0f}m > {session.radius_meters}m)"
            await self._reject(session, reason, student_id, student_name, email, device_id, now, distance=distance)

        is_late = is_late_check_in(now, session.created_at, session.late_threshold_minutes)
        record = AttendanceRecord(
            session_id=session.id,
            student_id=student_id,
            student_name=student_name,
            email=email,
            device_id=device_id,
            location=Location(lat=latitude, lng=longitude),
            distance_meters=distance,
            allowed_radius=session.radius_meters,
            timestamp=now,
            status="late" if is_late else "on_time",
            is_late=is_late,
        )

        try:
            created = await self.redis_client.add_attendance_record_if_absent(record)
        except Exception as e:
            logger.error(f"Error saving attendance of '{student_id}' in session {session.id}.", exc_info=True)
            raise ServiceError("A server error occurred while saving your attendance.") from e
        if not created:
            # Lost a race against a concurrent check-in for the same student.
            await self._reject(session, REASON_ALREADY_CHECKED_IN, student_id, student_name, email, device_id, now)

        logger.info(f"Student '{student_id}' checked in to session {session.id} ({record.status}, {distance:.0f}m).")
        return record

    async def lookup(self, student_id: str) -> StudentLookupResult:
        """Attendance history of one student across every session."""
        try:
            sessions = await self.redis_client.get_all_sessions()
            attendance = await self.redis_client.get_attendance_for_sessions([s.id for s in sessions])
        except Exception as e:
            logger.error(f"Error looking up student '{student_id}'.", exc_info=True)
            raise ServiceError("A server error occurred while looking up the student.") from e
        return student_lookup(student_id, sessions, attendance)

    # --- Returning-student prefill ---

    async def get_student_info(self, device_id: str) -> Optional[StudentInfo]:
        return await self._info_store(device_id).load()

    async def save_student_info(self, device_id: str, info: StudentInfo) -> bool:
        return await self._info_store(device_id).save(info)

    async def clear_student_info(self, device_id: str) -> bool:
        return await self._info_store(device_id).clear()

import logging
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import uuid4
from datetime import date, datetime, timezone

from ..config.config import settings
from ..db.redis_client import RedisClient
from ..models.redis_models import AttendanceRecord, AuditEntry, FailedAttempt, Location, Session
from ..modules.analytics import export_attendance_csv, export_filename, filter_sessions
from ..tools.codes import generate_code
from .exceptions import NotFoundError, ServiceError

logger = logging.getLogger(__name__)

# Attempts at drawing a code that no active session is using.
MAX_CODE_ATTEMPTS = 10
MAX_SAVE_ATTEMPTS = 3


class InstructorService:
    """
    Service layer for everything an instructor does with a session: starting,
    ending and reopening it, rotating its code, and editing its attendance.
    """
    def __init__(self, redis_client: RedisClient, rotator=None):
        self.redis_client = redis_client
        self.rotator = rotator

    # --- Helpers ---

    async def _audit(self, session_id: str, action: str, student_id: Optional[str] = None, **details):
        entry = AuditEntry(
            session_id=session_id,
            action=action,
            student_id=student_id,
            details=details,
            timestamp=datetime.now(timezone.utc),
        )
        try:
            await self.redis_client.append_audit_entry(entry)
        except Exception:
            logger.warning(f"Could not write audit entry '{action}' for session {session_id}.", exc_info=True)

    async def _unused_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_code()
            if not await self.redis_client.get_session_id_by_code(code):
                return code
        raise ServiceError("Could not allocate a unique session code. Please try again.")

    async def get_session(self, session_id: str) -> Session:
        try:
            session = await self.redis_client.get_session(session_id)
        except Exception as e:
            logger.error(f"Error loading session {session_id}.", exc_info=True)
            raise ServiceError("A server error occurred while loading the session.") from e
        if not session:
            raise NotFoundError("Session not found.")
        return session

    # --- Session lifecycle ---

    async def start_session(
        self,
        class_name: str,
        location: Location,
        radius_meters: Optional[int] = None,
        late_threshold_minutes: Optional[int] = None,
        course_id: Optional[str] = None,
        scheduled_for: Optional[datetime] = None,
        session_id: Optional[str] = None,
    ) -> Session:
        """Creates an active session with a fresh code and starts its code rotation."""
        class_name = (class_name or "").strip()
        if not class_name:
            raise ServiceError("Class name is required.")

        new_session = Session(
            id=session_id or uuid4().hex,
            class_name=class_name,
            code=await self._unused_code(),
            created_at=datetime.now(timezone.utc),
            active=True,
            radius_meters=settings.DEFAULT_RADIUS_METERS if radius_meters is None else radius_meters,
            late_threshold_minutes=settings.DEFAULT_LATE_THRESHOLD_MINUTES if late_threshold_minutes is None else late_threshold_minutes,
            location=location,
            course_id=course_id,
            scheduled_for=scheduled_for,
        )

        try:
            await self.redis_client.save_session(new_session)
        except Exception as e:
            logger.error(f"Error saving new session {new_session.id} to Redis.", exc_info=True)
            raise ServiceError("A server error occurred while starting the session.") from e

        logger.info(f"Session {new_session.id} ('{class_name}') started with code {new_session.code}.")
        if self.rotator:
            self.rotator.start(new_session.id)
        return new_session

    async def get_active_sessions(self) -> List[Session]:
        try:
            return await self.redis_client.get_active_sessions()
        except Exception as e:
            logger.error(f"Error getting active sessions: {e}", exc_info=True)
            raise ServiceError("A server error occurred while loading active sessions.") from e

    async def get_history(
        self,
        show_all: bool = False,
        search: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> List[Session]:
        try:
            sessions = await self.redis_client.get_all_sessions()
        except Exception as e:
            logger.error("Error loading session history.", exc_info=True)
            raise ServiceError("A server error occurred while loading the session history.") from e
        return filter_sessions(
            sessions,
            now=now or datetime.now(timezone.utc),
            show_all=show_all,
            search=search,
            start_date=start_date,
            end_date=end_date,
            tz=settings.local_timezone(),
        )

    async def _replace_session(self, updated: Session, expected: Session, action: str) -> bool:
        try:
            return await self.redis_client.replace_session(updated, expected=expected)
        except Exception as e:
            logger.error(f"Error while {action} session {updated.id}.", exc_info=True)
            raise ServiceError(f"A server error occurred while {action} the session.") from e

    async def end_session(self, session_id: str) -> Session:
        """Deactivates a session. Its code is frozen and no longer accepted."""
        for _ in range(MAX_SAVE_ATTEMPTS):
            session = await self.get_session(session_id)
            if not session.active:
                raise ServiceError("This session has already ended.")
            ended = session.model_copy(update={"active": False, "ended_at": datetime.now(timezone.utc)})
            if await self._replace_session(ended, session, "ending"):
                break
        else:
            raise ServiceError("The session kept changing while it was being ended. Please try again.")

        if self.rotator:
            self.rotator.stop(session_id)
        await self._audit(session_id, "end_session")
        logger.info(f"Session {session_id} ended.")
        return ended

    async def reopen_session(self, session_id: str) -> Session:
        """Makes an ended session active again under a new code."""
        new_code = await self._unused_code()
        session = await self.get_session(session_id)
        if session.active:
            raise ServiceError("This session is already active.")

        reopened = session.model_copy(update={
            "code": new_code,
            "active": True,
            "reopened_at": datetime.now(timezone.utc),
        })
        if not await self._replace_session(reopened, session, "reopening"):
            raise ServiceError("The session changed while it was being reopened. Please try again.")

        if self.rotator:
            self.rotator.start(session_id)
        await self._audit(session_id, "reopen_session", code=reopened.code)
        logger.info(f"Session {session_id} reopened with code {reopened.code}.")
        return reopened

    async def rotate_code(self, session_id: str) -> Session:
        """
        Replaces the code of an active session. The old code stops working
        immediately. The new code is drawn before the session is read, and the
        save is skipped if the session ended or was rotated in the meantime.
        """
        new_code = await self._unused_code()
        session = await self.get_session(session_id)
        if not session.active:
            raise ServiceError("Only active sessions have their code rotated.")

        rotated = session.model_copy(update={"code": new_code})
        if not await self._replace_session(rotated, session, "rotating the code of"):
            raise ServiceError("The session changed while its code was being rotated.")

        logger.debug(f"Session {session_id} code rotated.")
        return rotated

    # --- Attendance records ---

    async def get_attendance(self, session_id: str) -> List[AttendanceRecord]:
        await self.get_session(session_id)
        records = await self.redis_client.get_attendance_records(session_id)
        records.sort(key=lambda r: r.timestamp)
        return records

    async def _get_record(self, session_id: str, student_id: str) -> AttendanceRecord:
        record = await self.redis_client.get_attendance_record(session_id, student_id)
        if not record:
            raise NotFoundError("Attendance record for the specified student not found.")
        return record

    async def add_manual_attendance(
        self,
        session_id: str,
        student_id: str,
        student_name: str,
        email: Optional[str] = None,
        is_late: bool = False,
        note: Optional[str] = None,
    ) -> AttendanceRecord:
        """Adds a student the instructor vouches for, bypassing code and location checks."""
        session = await self.get_session(session_id)
        record = AttendanceRecord(
            session_id=session.id,
            student_id=student_id.strip(),
            student_name=student_name.strip(),
            email=email,
            timestamp=datetime.now(timezone.utc),
            status="late" if is_late else "on_time",
            is_late=is_late,
            allowed_radius=session.radius_meters,
            manual=True,
            note=note,
        )
        try:
            created = await self.redis_client.add_attendance_record_if_absent(record)
        except Exception as e:
            logger.error(f"Error adding manual record for {student_id} to session {session_id}.", exc_info=True)
            raise ServiceError("A server error occurred while adding the student.") from e
        if not created:
            raise ServiceError("This student is already checked in.")

        await self._audit(session_id, "manual_add", student_id=record.student_id, student_name=record.student_name)
        logger.info(f"Student '{record.student_id}' manually added to session {session_id}.")
        return record

    async def update_attendance(
        self,
        session_id: str,
        student_id: str,
        student_name: Optional[str] = None,
        email: Optional[str] = None,
        is_late: Optional[bool] = None,
        note: Optional[str] = None,
    ) -> AttendanceRecord:
        """Edits the name, email, late status or note of a record. None leaves a field unchanged."""
        record = await self._get_record(session_id, student_id)
        changes: Dict[str, object] = {}
        if student_name is not None and student_name.strip() != record.student_name:
            record.student_name = changes["student_name"] = student_name.strip()
        if email is not None and email != record.email:
            record.email = changes["email"] = email
        if is_late is not None and is_late != record.is_late:
            record.is_late = changes["is_late"] = is_late
            record.status = "late" if is_late else "on_time"
        if note is not None and note != record.note:
            record.note = changes["note"] = note

        if changes:
            try:
                await self.redis_client.save_attendance_record(record)
            except Exception as e:
                logger.error(f"Error updating record of {student_id} in session {session_id}.", exc_info=True)
                raise ServiceError("A server error occurred while updating the record.") from e
            await self._audit(session_id, "edit", student_id=student_id, **changes)
        return record

    async def delete_attendance(self, session_id: str, student_id: str) -> None:
        try:
            deleted = await self.redis_client.delete_attendance_record(session_id, student_id)
        except Exception as e:
            logger.error(f"Error deleting record of {student_id} in session {session_id}.", exc_info=True)
            raise ServiceError("A server error occurred while deleting the record.") from e
        if not deleted:
            raise NotFoundError("Attendance record for the specified student not found.")
        await self._audit(session_id, "remove", student_id=student_id)
        logger.info(f"Student '{student_id}' removed from session {session_id}.")

    async def change_participation(self, session_id: str, student_id: str, delta: int) -> AttendanceRecord:
        """Adds `delta` to a student's participation count, never going below zero."""
        record = await self._get_record(session_id, student_id)
        previous = record.participation or 0
        record.participation = max(0, previous + delta)
        if record.participation == previous:
            return record

        try:
            await self.redis_client.save_attendance_record(record)
        except Exception as e:
            logger.error(f"Error updating participation of {student_id} in session {session_id}.", exc_info=True)
            raise ServiceError("A server error occurred while updating participation.") from e
        await self._audit(session_id, "participation", student_id=student_id, previous=previous, current=record.participation)
        return record

    # --- Failed attempts ---

    async def get_failed_attempts(self, session_id: str) -> List[FailedAttempt]:
        await self.get_session(session_id)
        return await self.redis_client.get_failed_attempts(session_id)

    async def dismiss_failed_attempts(self, session_id: str, attempt_ids: Sequence[str]) -> int:
        """Removes reviewed failed attempts. Returns how many were removed."""
        attempt_ids = [attempt_id for attempt_id in dict.fromkeys(attempt_ids) if attempt_id]
        if not attempt_ids:
            return 0
        try:
            removed = await self.redis_client.delete_failed_attempts(session_id, attempt_ids)
        except Exception as e:
            logger.error(f"Error dismissing failed attempts in session {session_id}.", exc_info=True)
            raise ServiceError("A server error occurred while dismissing failed attempts.") from e
        if removed:
            await self._audit(session_id, "dismiss_failed", attempt_ids=attempt_ids, removed=removed)
        return removed

    async def get_audit_trail(self, session_id: str) -> List[AuditEntry]:
        await self.get_session(session_id)
        return await self.redis_client.get_audit_entries(session_id)

    # --- Export ---

    async def export_csv(self, session_id: str) -> Tuple[str, str]:
        """Returns (filename, csv_text) for one session."""
        session = await self.get_session(session_id)
        records = await self.redis_client.get_attendance_records(session_id)
        local_start = session.created_at.astimezone(settings.local_timezone())
        return export_filename(session.class_name, local_start), export_attendance_csv(session, records)

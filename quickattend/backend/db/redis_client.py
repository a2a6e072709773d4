import json
import logging
from typing import Any, Dict, List, Optional, Sequence
from datetime import datetime

import redis.asyncio as redis
from redis.exceptions import WatchError

from ..models.redis_models import (
    AttendanceRecord,
    AuditEntry,
    Course,
    FailedAttempt,
    InstructorSessionRedis,
    ScheduledSession,
    Session,
)

logger = logging.getLogger(__name__)

SESSIONS_BY_CREATED = "sessions_by_created"
ACTIVE_SESSIONS = "active_sessions"
COURSES_INDEX = "courses_index"
SCHEDULED_BY_TIME = "scheduled_by_time"


def _session_key(session_id: str) -> str:
    return f"sessions:{session_id}"


def _code_key(code: str) -> str:
    return f"session_code:{code.upper()}"


def _attendance_key(session_id: str) -> str:
    return f"attendance:{session_id}"


def _failed_key(session_id: str) -> str:
    return f"failed:{session_id}"


def _audit_key(session_id: str) -> str:
    return f"audit:{session_id}"


class RedisClient:
    """
    Document store for sessions, attendance, failed attempts, audit trail,
    courses and their scheduled drafts. Every document is a pydantic model
    serialized to JSON; sorted sets and sets act as indexes.
    """

    def __init__(self, pool: redis.ConnectionPool):
        self._redis = redis.Redis(connection_pool=pool, decode_responses=True)

    # ===== Sessions =====

    @staticmethod
    def _queue_session_writes(pipe, session: Session, previous_code: Optional[str] = None):
        # The code lookup key exists only while the session is active; a replaced code is released.
        pipe.set(_session_key(session.id), session.model_dump_json())
        pipe.zadd(SESSIONS_BY_CREATED, {session.id: session.created_at.timestamp()})
        if previous_code and previous_code.upper() != session.code:
            pipe.delete(_code_key(previous_code))
        if session.active:
            pipe.sadd(ACTIVE_SESSIONS, session.id)
            pipe.set(_code_key(session.code), session.id)
        else:
            pipe.srem(ACTIVE_SESSIONS, session.id)
            pipe.delete(_code_key(session.code))

    async def save_session(self, session: Session, previous_code: Optional[str] = None):
        """Saves a session and keeps its code and active indexes in step."""
        async with self._redis.pipeline(transaction=True) as pipe:
            self._queue_session_writes(pipe, session, previous_code)
            await pipe.execute()

    async def replace_session(self, session: Session, expected: Session) -> bool:
        """
        Saves `session` only if the stored copy still has the `active` flag
        and code of `expected`, the copy it was derived from. Returns False
        without writing when the session was changed (or deleted) meanwhile.
        """
        key = _session_key(session.id)
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                stored_json = await pipe.get(key)
                if not stored_json:
                    return False
                stored = Session.model_validate_json(stored_json)
                if stored.active != expected.active or stored.code != expected.code:
                    return False
                pipe.multi()
                self._queue_session_writes(pipe, session, previous_code=expected.code)
                await pipe.execute()
                return True
            except WatchError:
                logger.info(f"Session {session.id} changed during a conditional save.")
                return False

    async def get_session(self, session_id: str) -> Optional[Session]:
        session_json = await self._redis.get(_session_key(session_id))
        return Session.model_validate_json(session_json) if session_json else None

    async def get_sessions(self, session_ids: Sequence[str]) -> List[Session]:
        """Loads several sessions at once, skipping ids that no longer exist."""
        if not session_ids:
            return []
        values = await self._redis.mget([_session_key(sid) for sid in session_ids])
        return [Session.model_validate_json(value) for value in values if value]

    async def get_all_sessions(self) -> List[Session]:
        """All sessions, oldest first."""
        session_ids = await self._redis.zrange(SESSIONS_BY_CREATED, 0, -1)
        return await self.get_sessions(session_ids)

    async def get_active_sessions(self) -> List[Session]:
        session_ids = await self._redis.smembers(ACTIVE_SESSIONS)
        sessions = await self.get_sessions(sorted(session_ids))
        return [s for s in sessions if s.active]

    async def get_session_id_by_code(self, code: str) -> Optional[str]:
        return await self._redis.get(_code_key(code))

    async def delete_session(self, session: Session):
        """Removes a session together with its attendance, failed attempts and audit trail."""
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(
                _session_key(session.id),
                _attendance_key(session.id),
                _failed_key(session.id),
                _audit_key(session.id),
            )
            pipe.zrem(SESSIONS_BY_CREATED, session.id)
            pipe.srem(ACTIVE_SESSIONS, session.id)
            await pipe.execute()
        # Only release the code if no other session has taken it since.
        if await self._redis.get(_code_key(session.code)) == session.id:
            await self._redis.delete(_code_key(session.code))

    # ===== Attendance records =====

    async def add_attendance_record_if_absent(self, record: AttendanceRecord) -> bool:
        """Stores a record unless the student already has one. Returns True if stored."""
        created = await self._redis.hsetnx(_attendance_key(record.session_id), record.student_id, record.model_dump_json())
        return bool(created)

    async def save_attendance_record(self, record: AttendanceRecord):
        await self._redis.hset(_attendance_key(record.session_id), record.student_id, record.model_dump_json())

    async def get_attendance_record(self, session_id: str, student_id: str) -> Optional[AttendanceRecord]:
        record_json = await self._redis.hget(_attendance_key(session_id), student_id)
        return AttendanceRecord.model_validate_json(record_json) if record_json else None

    async def get_attendance_records(self, session_id: str) -> List[AttendanceRecord]:
        values = await self._redis.hvals(_attendance_key(session_id))
        return [AttendanceRecord.model_validate_json(value) for value in values]

    async def get_attendance_for_sessions(self, session_ids: Sequence[str]) -> Dict[str, List[AttendanceRecord]]:
        if not session_ids:
            return {}
        async with self._redis.pipeline(transaction=False) as pipe:
            for session_id in session_ids:
                pipe.hvals(_attendance_key(session_id))
            results = await pipe.execute()
        return {
            session_id: [AttendanceRecord.model_validate_json(value) for value in values]
            for session_id, values in zip(session_ids, results)
        }

    async def delete_attendance_record(self, session_id: str, student_id: str) -> int:
        return await self._redis.hdel(_attendance_key(session_id), student_id)

    async def count_attendance(self, session_id: str) -> int:
        return await self._redis.hlen(_attendance_key(session_id))

    # ===== Failed attempts =====

    async def save_failed_attempt(self, attempt: FailedAttempt):
        await self._redis.hset(_failed_key(attempt.session_id), attempt.id, attempt.model_dump_json())

    async def get_failed_attempts(self, session_id: str) -> List[FailedAttempt]:
        values = await self._redis.hvals(_failed_key(session_id))
        attempts = [FailedAttempt.model_validate_json(value) for value in values]
        attempts.sort(key=lambda a: a.timestamp)
        return attempts

    async def delete_failed_attempts(self, session_id: str, attempt_ids: Sequence[str]) -> int:
        if not attempt_ids:
            return 0
        return await self._redis.hdel(_failed_key(session_id), *attempt_ids)

    # ===== Audit trail =====

    async def append_audit_entry(self, entry: AuditEntry):
        await self._redis.rpush(_audit_key(entry.session_id), entry.model_dump_json())

    async def get_audit_entries(self, session_id: str) -> List[AuditEntry]:
        values = await self._redis.lrange(_audit_key(session_id), 0, -1)
        return [AuditEntry.model_validate_json(value) for value in values]

    # ===== Courses and scheduled sessions =====

    async def save_course(self, course: Course, scheduled: Sequence[ScheduledSession] = ()):
        """Saves a course and its generated drafts in one transaction."""
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(f"courses:{course.id}", course.model_dump_json())
            pipe.sadd(COURSES_INDEX, course.id)
            for draft in scheduled:
                pipe.set(f"scheduled:{draft.id}", draft.model_dump_json())
                pipe.zadd(SCHEDULED_BY_TIME, {draft.id: draft.scheduled_for.timestamp()})
            await pipe.execute()

    async def get_course(self, course_id: str) -> Optional[Course]:
        course_json = await self._redis.get(f"courses:{course_id}")
        return Course.model_validate_json(course_json) if course_json else None

    async def get_courses(self) -> List[Course]:
        course_ids = await self._redis.smembers(COURSES_INDEX)
        if not course_ids:
            return []
        values = await self._redis.mget([f"courses:{cid}" for cid in course_ids])
        courses = [Course.model_validate_json(value) for value in values if value]
        courses.sort(key=lambda c: c.created_at)
        return courses

    async def get_scheduled_session(self, scheduled_id: str) -> Optional[ScheduledSession]:
        draft_json = await self._redis.get(f"scheduled:{scheduled_id}")
        return ScheduledSession.model_validate_json(draft_json) if draft_json else None

    async def get_scheduled_between(self, start: datetime, end: datetime) -> List[ScheduledSession]:
        """Drafts scheduled in [start, end), in chronological order."""
        draft_ids = await self._redis.zrangebyscore(SCHEDULED_BY_TIME, start.timestamp(), f"({end.timestamp()}")
        if not draft_ids:
            return []
        values = await self._redis.mget([f"scheduled:{did}" for did in draft_ids])
        return [ScheduledSession.model_validate_json(value) for value in values if value]

    async def delete_scheduled_session(self, scheduled_id: str):
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(f"scheduled:{scheduled_id}")
            pipe.zrem(SCHEDULED_BY_TIME, scheduled_id)
            await pipe.execute()

    # ===== Returning-student prefill =====

    async def save_student_info(self, device_id: str, fields: Dict[str, str], ttl: Optional[int] = None):
        key = f"student_info:{device_id}"
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hset(key, mapping=fields)
            if ttl:
                pipe.expire(key, ttl)
            await pipe.execute()

    async def get_student_info(self, device_id: str) -> Dict[str, str]:
        return await self._redis.hgetall(f"student_info:{device_id}")

    async def delete_student_info(self, device_id: str) -> int:
        return await self._redis.delete(f"student_info:{device_id}")

    # ===== Instructor login sessions =====

    async def save_instructor_session(self, session: InstructorSessionRedis, ttl: int):
        key = f"instructor_sessions:{session.session_id}"
        await self._redis.set(key, session.model_dump_json(), ex=ttl)

    async def get_instructor_session(self, session_id: str) -> Optional[InstructorSessionRedis]:
        session_json = await self._redis.get(f"instructor_sessions:{session_id}")
        return InstructorSessionRedis.model_validate_json(session_json) if session_json else None

    async def delete_instructor_session(self, session_id: str) -> int:
        return await self._redis.delete(f"instructor_sessions:{session_id}")

    # ===== Snapshot =====

    async def dump_paths(self) -> Dict[str, Any]:
        """
        Collects every backed-up document as plain JSON data, grouped like the
        key prefixes: sessions and courses by id; attendance and failed
        attempts by session then entry id; audit entries as lists per session.
        """
        session_ids = await self._redis.zrange(SESSIONS_BY_CREATED, 0, -1)
        course_ids = sorted(await self._redis.smembers(COURSES_INDEX))

        async with self._redis.pipeline(transaction=False) as pipe:
            for session_id in session_ids:
                pipe.get(_session_key(session_id))
                pipe.hgetall(_attendance_key(session_id))
                pipe.hgetall(_failed_key(session_id))
                pipe.lrange(_audit_key(session_id), 0, -1)
            for course_id in course_ids:
                pipe.get(f"courses:{course_id}")
            results = await pipe.execute()

        data: Dict[str, Any] = {"sessions": {}, "attendance": {}, "failed": {}, "audit": {}, "courses": {}}
        for index, session_id in enumerate(session_ids):
            session_json, attendance, failed, audit = results[index * 4:index * 4 + 4]
            if session_json:
                data["sessions"][session_id] = json.loads(session_json)
            if attendance:
                data["attendance"][session_id] = {k: json.loads(v) for k, v in attendance.items()}
            if failed:
                data["failed"][session_id] = {k: json.loads(v) for k, v in failed.items()}
            if audit:
                data["audit"][session_id] = [json.loads(v) for v in audit]

        for course_id, course_json in zip(course_ids, results[len(session_ids) * 4:]):
            if course_json:
                data["courses"][course_id] = json.loads(course_json)

        return data

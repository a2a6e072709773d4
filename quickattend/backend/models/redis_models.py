from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import List, Optional

from ..tools.validators import is_valid_code

# --- Shared value types ---

class Location(BaseModel):
    """A WGS84 point, optionally with a human readable address."""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    address: Optional[str] = None


class ValidationResult(BaseModel):
    """Outcome of a validator that reports every violated rule in one pass."""
    valid: bool
    errors: List[str] = Field(default_factory=list)

# --- Documents stored in Redis ---

class Session(BaseModel):
    """
    One instructor-run attendance window, stored under `sessions:<id>`.
    The code rotates while the session is active and is frozen afterwards.
    """
    id: str = Field(..., description="Unique identifier of the session")
    class_name: str
    code: str = Field(..., description="Current 6-character check-in code")
    created_at: datetime = Field(..., description="Session start, reference point for late check-ins")
    active: bool = True
    radius_meters: int = Field(..., ge=0)
    late_threshold_minutes: int = Field(..., ge=0)
    location: Location
    ended_at: Optional[datetime] = None
    reopened_at: Optional[datetime] = None
    course_id: Optional[str] = None
    scheduled_for: Optional[datetime] = None

    @field_validator("code")
    def code_must_be_valid(cls, v):
        if not is_valid_code(v):
            raise ValueError("Session code must be 6 alphanumeric characters.")
        return v.upper()


class AttendanceRecord(BaseModel):
    """
    A student's successful check-in (or manual entry), stored in the
    `attendance:<session_id>` hash under the student id.
    """
    session_id: str
    student_id: str
    student_name: str
    email: Optional[str] = None
    device_id: Optional[str] = None
    location: Optional[Location] = None
    distance_meters: Optional[float] = None
    allowed_radius: Optional[int] = None
    timestamp: datetime
    status: str = Field("on_time", pattern="^(on_time|late)$")
    is_late: bool = False
    participation: int = Field(0, ge=0)
    manual: bool = False
    note: Optional[str] = None


class FailedAttempt(BaseModel):
    """A rejected check-in, kept in the `failed:<session_id>` hash until dismissed."""
    id: str
    session_id: str
    student_id: str
    student_name: str
    email: Optional[str] = None
    device_id: Optional[str] = None
    reason: str
    timestamp: datetime
    distance_meters: Optional[float] = None


class AuditEntry(BaseModel):
    """Instructor action on a session, appended to `audit:<session_id>`."""
    session_id: str
    action: str
    student_id: Optional[str] = None
    details: dict = Field(default_factory=dict)
    timestamp: datetime


class CourseSchedule(BaseModel):
    """
    Weekly recurrence entered in the course setup wizard.
    Deliberately permissive: `validate_schedule` reports the problems.
    """
    days: List[str] = Field(default_factory=list, description="Weekday names, e.g. ['Monday', 'Wednesday']")
    start_time: Optional[str] = Field(None, description="HH:MM")
    end_time: Optional[str] = Field(None, description="HH:MM")
    weeks: Optional[int] = None
    start_date: Optional[str] = Field(None, description="YYYY-MM-DD")


class Course(BaseModel):
    """A course created by the setup wizard; source of scheduled sessions."""
    id: str
    code: str
    section: str
    class_name: str
    schedule: CourseSchedule
    location: Location
    radius: Optional[int] = None
    late_threshold: Optional[int] = None
    created_at: datetime


class ScheduledSession(BaseModel):
    """A session draft generated from a course schedule, waiting for activation."""
    id: str
    course_id: str
    class_name: str
    location: Location
    radius: Optional[int] = None
    late_threshold: Optional[int] = None
    scheduled_for: datetime
    status: str = "scheduled"
    active: bool = False
    created_at: datetime


class PreviousClassEntry(BaseModel):
    """One distinct class name with the settings of its most recent session."""
    class_name: str
    last_used: datetime
    radius: int
    late_threshold: int


class StudentInfo(BaseModel):
    """Returning-student prefill for the check-in form."""
    student_id: str
    student_name: str
    student_email: str


class InstructorSessionRedis(BaseModel):
    """Login session of an instructor, stored with a TTL."""
    session_id: str
    display_name: Optional[str] = None
    session_start_time: datetime
    session_end_time: datetime

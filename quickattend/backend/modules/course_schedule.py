# quickattend/backend/modules/course_schedule.py

import re
import uuid
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import List, Optional

from ..models.redis_models import Course, CourseSchedule, ScheduledSession, ValidationResult

# Sunday = 0, matching the weekday numbering of the check-in page.
DAY_INDEX = {
    "Sunday": 0,
    "Monday": 1,
    "Tuesday": 2,
    "Wednesday": 3,
    "Thursday": 4,
    "Friday": 5,
    "Saturday": 6,
}

MAX_COURSE_CODE_LENGTH = 20
MAX_SECTION_LENGTH = 10
MIN_WEEKS = 1
MAX_WEEKS = 20

_TIME_PATTERN = re.compile(r"\d{2}:\d{2}")
_DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")


def combine_course_class_name(code: Optional[str], section: Optional[str]) -> str:
    """'CS101' + 'A' -> 'CS101-A'."""
    return f"{(code or '').strip()}-{(section or '').strip()}"


def validate_course_info(code: Optional[str], section: Optional[str]) -> ValidationResult:
    """Validates the course code and section entered in the first wizard step."""
    errors = []
    trimmed_code = (code or "").strip()
    trimmed_section = (section or "").strip()

    if not trimmed_code:
        errors.append("Course code is required")
    elif len(trimmed_code) > MAX_COURSE_CODE_LENGTH:
        errors.append(f"Course code must be {MAX_COURSE_CODE_LENGTH} characters or less")

    if not trimmed_section:
        errors.append("Section is required")
    elif len(trimmed_section) > MAX_SECTION_LENGTH:
        errors.append(f"Section must be {MAX_SECTION_LENGTH} characters or less")

    return ValidationResult(valid=not errors, errors=errors)


def parse_schedule_time(value: Optional[str]) -> Optional[time]:
    """'14:05' -> time(14, 5). None for anything that is not a valid HH:MM."""
    if not isinstance(value, str) or not _TIME_PATTERN.fullmatch(value.strip()):
        return None
    try:
        return time.fromisoformat(value.strip())
    except ValueError:
        return None


def parse_schedule_date(value: Optional[str]) -> Optional[date]:
    """'2026-02-02' -> date(2026, 2, 2). None for anything that is not a real YYYY-MM-DD date."""
    if not isinstance(value, str) or not _DATE_PATTERN.fullmatch(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def validate_schedule(schedule: CourseSchedule) -> ValidationResult:
    """
    Checks a weekly schedule and reports every problem at once, so the
    wizard can show all of them together.
    """
    errors = []

    if not schedule.days:
        errors.append("At least one day must be selected")
    else:
        unknown = [day for day in schedule.days if day not in DAY_INDEX]
        if unknown:
            errors.append(f"Unknown day name: {', '.join(unknown)}")

    start_time = parse_schedule_time(schedule.start_time)
    end_time = parse_schedule_time(schedule.end_time)

    if not schedule.start_time:
        errors.append("Start time is required")
    elif start_time is None:
        errors.append("Start time must be HH:MM")

    if not schedule.end_time:
        errors.append("End time is required")
    elif end_time is None:
        errors.append("End time must be HH:MM")

    if start_time is not None and end_time is not None and start_time >= end_time:
        errors.append("Start time must be before end time")

    if not schedule.weeks or schedule.weeks < MIN_WEEKS or schedule.weeks > MAX_WEEKS:
        errors.append(f"Weeks must be between {MIN_WEEKS} and {MAX_WEEKS}")

    if not schedule.start_date:
        errors.append("Start date is required")
    elif parse_schedule_date(schedule.start_date) is None:
        errors.append("Start date must be YYYY-MM-DD")

    return ValidationResult(valid=not errors, errors=errors)


def day_index_of(value: date) -> int:
    """Sunday-based weekday index of a date."""
    return (value.weekday() + 1) % 7


def get_next_occurrence(start_date: date, target_day: str) -> date:
    """
    First date on or after `start_date` that falls on `target_day`.

    Raises:
        ValueError: If `target_day` is not an English weekday name.
    """
    if target_day not in DAY_INDEX:
        raise ValueError(f"Invalid day name: {target_day}")

    days_until_target = (DAY_INDEX[target_day] - day_index_of(start_date)) % 7
    return start_date + timedelta(days=days_until_target)


def generate_scheduled_sessions(
    course: Course,
    schedule: CourseSchedule,
    tz: Optional[tzinfo] = None,
) -> List[ScheduledSession]:
    """
    Expands a weekly schedule into concrete session drafts.

    Each selected weekday starts at its first occurrence on or after the start
    date and repeats every 7 days for `weeks` weeks, at `start_time` in `tz`
    (naive datetimes when `tz` is None). The drafts come back in
    chronological order. An invalid schedule produces no drafts.
    """
    if not validate_schedule(schedule).valid:
        return []

    start_date = parse_schedule_date(schedule.start_date)
    start_time = parse_schedule_time(schedule.start_time)
    created_at = datetime.now(timezone.utc)

    sessions = []
    for day in sorted(schedule.days, key=DAY_INDEX.__getitem__):
        first_occurrence = get_next_occurrence(start_date, day)
        for week in range(schedule.weeks):
            session_date = first_occurrence + timedelta(weeks=week)
            sessions.append(ScheduledSession(
                id=uuid.uuid4().hex,
                course_id=course.id,
                class_name=course.class_name,
                location=course.location,
                radius=course.radius,
                late_threshold=course.late_threshold,
                scheduled_for=datetime.combine(session_date, start_time, tzinfo=tz),
                created_at=created_at,
            ))

    sessions.sort(key=lambda session: session.scheduled_for)
    return sessions

# quickattend/backend/modules/analytics.py

import csv
import io
import re
from datetime import date, datetime, timedelta, tzinfo
from typing import Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from ..models.redis_models import AttendanceRecord, Session

HISTORY_DEFAULT_DAYS = 14
AT_RISK_THRESHOLD = 70.0

CSV_HEADER = [
    "Student ID",
    "Name",
    "Email",
    "Status",
    "Check-in Time",
    "Distance (m)",
    "Participation",
    "Manual",
    "Note",
]

# --- Result models ---

class ClassSummary(BaseModel):
    total_sessions: int = 0
    unique_students: int = 0
    total_check_ins: int = 0
    on_time: int = 0
    late: int = 0
    average_attendance_rate: float = 0.0


class StudentStanding(BaseModel):
    student_id: str
    student_name: str
    attended: int
    late: int
    participation: int
    attendance_rate: float


class SessionTrendPoint(BaseModel):
    session_id: str
    class_name: str
    created_at: datetime
    check_ins: int
    late: int


class ClassAnalytics(BaseModel):
    class_name: Optional[str] = None
    summary: ClassSummary
    students: List[StudentStanding] = Field(default_factory=list)
    at_risk: List[StudentStanding] = Field(default_factory=list)
    trend: List[SessionTrendPoint] = Field(default_factory=list)


class StudentLookupTotals(BaseModel):
    attended: int = 0
    on_time: int = 0
    late: int = 0
    participation: int = 0


class StudentLookupEntry(BaseModel):
    session_id: str
    class_name: str
    session_date: datetime
    record: AttendanceRecord


class StudentLookupResult(BaseModel):
    student_id: str
    student_name: Optional[str] = None
    entries: List[StudentLookupEntry] = Field(default_factory=list)
    totals: StudentLookupTotals

# --- History ---

def _local_date(moment: datetime, tz: Optional[tzinfo]) -> date:
    if tz is not None and moment.tzinfo is not None:
        return moment.astimezone(tz).date()
    return moment.date()


def filter_sessions(
    sessions: Sequence[Session],
    now: datetime,
    days: int = HISTORY_DEFAULT_DAYS,
    show_all: bool = False,
    search: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> List[Session]:
    """
    Session history as shown to the instructor, newest first.

    Without explicit dates only the last `days` days are listed unless
    `show_all` is set. Either date bound replaces the default window; both
    are inclusive calendar days. `search` is a case-insensitive substring of
    the class name.
    """
    needle = (search or "").strip().lower()
    use_window = not show_all and start_date is None and end_date is None
    window_start = now - timedelta(days=days)

    result = []
    for session in sessions:
        if needle and needle not in session.class_name.lower():
            continue
        if use_window and session.created_at < window_start:
            continue
        session_day = _local_date(session.created_at, tz)
        if start_date is not None and session_day < start_date:
            continue
        if end_date is not None and session_day > end_date:
            continue
        result.append(session)

    result.sort(key=lambda s: s.created_at, reverse=True)
    return result

# --- Analytics ---

def _rate(part: int, whole: int) -> float:
    return round(part * 100.0 / whole, 1) if whole else 0.0


def class_analytics(
    sessions: Sequence[Session],
    attendance_by_session: Mapping[str, Sequence[AttendanceRecord]],
    class_name: Optional[str] = None,
) -> ClassAnalytics:
    """
    Attendance statistics for one class, or for every class when
    `class_name` is None. A student's rate is the share of the selected
    sessions they attended; students under 70 % are reported as at risk.
    """
    selected = sorted(
        (s for s in sessions if class_name is None or s.class_name == class_name),
        key=lambda s: s.created_at,
    )

    standings: Dict[str, dict] = {}
    trend = []
    on_time = late = 0
    rate_sum = 0.0

    for session in selected:
        records = list(attendance_by_session.get(session.id, []))
        session_late = sum(1 for r in records if r.is_late)
        late += session_late
        on_time += len(records) - session_late
        trend.append(SessionTrendPoint(
            session_id=session.id,
            class_name=session.class_name,
            created_at=session.created_at,
            check_ins=len(records),
            late=session_late,
        ))
        for record in records:
            entry = standings.setdefault(record.student_id, {
                "student_name": record.student_name,
                "attended": 0,
                "late": 0,
                "participation": 0,
            })
            entry["attended"] += 1
            entry["late"] += int(record.is_late)
            entry["participation"] += record.participation

    total_sessions = len(selected)
    students = [
        StudentStanding(
            student_id=student_id,
            attendance_rate=_rate(entry["attended"], total_sessions),
            **entry,
        )
        for student_id, entry in standings.items()
    ]
    students.sort(key=lambda s: (-s.attendance_rate, -s.participation, s.student_name.lower()))

    if students:
        rate_sum = sum(s.attendance_rate for s in students)

    summary = ClassSummary(
        total_sessions=total_sessions,
        unique_students=len(students),
        total_check_ins=on_time + late,
        on_time=on_time,
        late=late,
        average_attendance_rate=round(rate_sum / len(students), 1) if students else 0.0,
    )

    return ClassAnalytics(
        class_name=class_name,
        summary=summary,
        students=students,
        at_risk=[s for s in students if s.attendance_rate < AT_RISK_THRESHOLD],
        trend=trend,
    )


def student_lookup(
    student_id: str,
    sessions: Sequence[Session],
    attendance_by_session: Mapping[str, Sequence[AttendanceRecord]],
) -> StudentLookupResult:
    """Every check-in of one student across all sessions, newest first, with totals."""
    wanted = student_id.strip()
    entries = []
    for session in sessions:
        for record in attendance_by_session.get(session.id, []):
            if record.student_id == wanted:
                entries.append(StudentLookupEntry(
                    session_id=session.id,
                    class_name=session.class_name,
                    session_date=session.created_at,
                    record=record,
                ))
    entries.sort(key=lambda e: e.session_date, reverse=True)

    late = sum(1 for e in entries if e.record.is_late)
    totals = StudentLookupTotals(
        attended=len(entries),
        on_time=len(entries) - late,
        late=late,
        participation=sum(e.record.participation for e in entries),
    )
    return StudentLookupResult(
        student_id=wanted,
        student_name=entries[0].record.student_name if entries else None,
        entries=entries,
        totals=totals,
    )

# --- CSV export ---

def _slug(text: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", text)


def export_attendance_csv(session: Session, records: Sequence[AttendanceRecord]) -> str:
    """Renders one session's attendance as CSV, ordered by check-in time."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)
    for record in sorted(records, key=lambda r: r.timestamp):
        writer.writerow([
            record.student_id,
            record.student_name,
            record.email or "",
            "Late" if record.is_late else "On Time",
            record.timestamp.isoformat(),
            "" if record.distance_meters is None else round(record.distance_meters),
            record.participation,
            "Yes" if record.manual else "No",
            record.note or "",
        ])
    return buffer.getvalue()


def export_filename(class_name: str, when: datetime) -> str:
    """'CS 101' on 2026-01-21 -> 'CS_101_attendance_2026-01-21.csv'."""
    return f"{_slug(class_name)}_attendance_{when.strftime('%Y-%m-%d')}.csv"


def analytics_report_csv(report: ClassAnalytics) -> str:
    """Per-student analytics table."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["Student ID", "Name", "Attended", "Sessions", "Late", "Participation", "Attendance Rate (%)"])
    for student in report.students:
        writer.writerow([
            student.student_id,
            student.student_name,
            student.attended,
            report.summary.total_sessions,
            student.late,
            student.participation,
            student.attendance_rate,
        ])
    return buffer.getvalue()


def analytics_filename(class_name: Optional[str], when: datetime) -> str:
    """'analytics_report_<class>_<date>.csv', or without the class part for all classes."""
    day = when.strftime("%Y-%m-%d")
    if not class_name:
        return f"analytics_report_{day}.csv"
    return f"analytics_report_{_slug(class_name)}_{day}.csv"

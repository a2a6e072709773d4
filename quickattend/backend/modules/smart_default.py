# quickattend/backend/modules/smart_default.py

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..models.redis_models import PreviousClassEntry, Session

# A session is in the same slot as now when it shares the weekday and clock hour.
LOOKBACK_DAYS = 14


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _in_frame_of(moment: datetime, now: datetime) -> datetime:
    """Expresses `moment` in the same clock as `now` (naive means server local)."""
    if now.tzinfo is None:
        if moment.tzinfo is None:
            return moment
        return moment.astimezone().replace(tzinfo=None)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=now.tzinfo)
    return moment.astimezone(now.tzinfo)


def find_smart_default(
    previous_classes: Sequence[Any],
    all_sessions: Sequence[Any],
    now: Optional[datetime] = None,
) -> Optional[str]:
    """
    Picks the class name to pre-select on the session setup screen.

    Args:
        previous_classes: Distinct classes, most recently used first.
        all_sessions: Past sessions, anything exposing `class_name` and `created_at`.
        now: Reference moment; defaults to the current local time.

    Returns:
        The class held in the same weekday/hour slot within the last 14 days
        (most recent such session wins), otherwise the most recently used
        class, or None when no classes are known at all.
    """
    if not previous_classes:
        return None

    fallback = _field(previous_classes[0], "class_name") or None
    if not all_sessions:
        return fallback

    now = now or datetime.now()
    window_start = now - timedelta(days=LOOKBACK_DAYS)

    matches = []
    for session in all_sessions:
        created_at = _field(session, "created_at")
        if created_at is None:
            continue
        local = _in_frame_of(created_at, now)
        if local.weekday() != now.weekday() or local.hour != now.hour:
            continue
        if window_start <= local <= now:
            matches.append((local, _field(session, "class_name")))

    if matches:
        matches.sort(key=lambda match: match[0], reverse=True)
        return matches[0][1]

    return fallback


def build_previous_classes(sessions: Iterable[Session]) -> List[PreviousClassEntry]:
    """Collapses session history into one entry per class name, newest first."""
    latest: Dict[str, Session] = {}
    for session in sessions:
        current = latest.get(session.class_name)
        if current is None or session.created_at > current.created_at:
            latest[session.class_name] = session

    entries = [
        PreviousClassEntry(
            class_name=session.class_name,
            last_used=session.created_at,
            radius=session.radius_meters,
            late_threshold=session.late_threshold_minutes,
        )
        for session in latest.values()
    ]
    entries.sort(key=lambda entry: entry.last_used, reverse=True)
    return entries

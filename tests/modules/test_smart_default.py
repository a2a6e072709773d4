from datetime import datetime, timezone

from quickattend.backend.models.redis_models import Location, Session
from quickattend.backend.modules.smart_default import LOOKBACK_DAYS, build_previous_classes, find_smart_default


def previous_class(name: str, last_used: str) -> dict:
    return {"class_name": name, "last_used": datetime.fromisoformat(last_used), "radius": 300, "late_threshold": 10}


def past_session(name: str, created_at: str) -> dict:
    return {"class_name": name, "created_at": datetime.fromisoformat(created_at)}


def make_session(session_id: str, name: str, created_at: datetime, radius: int = 300, late: int = 10) -> Session:
    return Session(
        id=session_id,
        class_name=name,
        code="ABC234",
        created_at=created_at,
        active=False,
        radius_meters=radius,
        late_threshold_minutes=late,
        location=Location(lat=3.12, lng=101.65),
    )


class TestFindSmartDefault:
    now = datetime(2026, 1, 21, 10, 15)

    def test_empty_previous_classes_gives_none(self):
        assert find_smart_default([], [past_session("CS101", "2026-01-14T10:05:00")], self.now) is None

    def test_empty_sessions_falls_back_to_most_recent(self):
        previous = [previous_class("CS202", "2026-01-20T14:00:00"), previous_class("CS101", "2026-01-14T10:05:00")]
        assert find_smart_default(previous, [], self.now) == "CS202"

    def test_same_weekday_and_hour_beats_more_recent_class(self):
        previous = [previous_class("CS202", "2026-01-20T14:00:00"), previous_class("CS101", "2026-01-14T10:05:00")]
        sessions = [past_session("CS202", "2026-01-20T14:00:00"), past_session("CS101", "2026-01-14T10:05:00")]
        assert find_smart_default(previous, sessions, self.now) == "CS101"

    def test_different_hour_falls_back(self):
        now = datetime(2026, 1, 21, 15, 0)
        previous = [previous_class("CS202", "2026-01-20T14:00:00"), previous_class("CS101", "2026-01-14T10:00:00")]
        sessions = [past_session("CS202", "2026-01-20T14:00:00"), past_session("CS101", "2026-01-14T10:00:00")]
        assert find_smart_default(previous, sessions, now) == "CS202"

    def test_hour_bucket_edges(self):
        previous = [previous_class("CS202", "2026-01-20T14:00:00"), previous_class("CS101", "2026-01-14T10:55:00")]
        sessions = [past_session("CS202", "2026-01-20T14:00:00"), past_session("CS101", "2026-01-14T10:55:00")]
        assert find_smart_default(previous, sessions, datetime(2026, 1, 21, 10, 0)) == "CS101"
        # 11:00 is the next bucket even though it is only five minutes away.
        assert find_smart_default(previous, sessions, datetime(2026, 1, 21, 11, 0)) == "CS202"

    def test_stale_match_is_skipped(self):
        now = datetime(2026, 1, 21, 10, 0)
        previous = [previous_class("CS202", "2026-01-20T14:00:00"), previous_class("CS101", "2025-12-31T10:00:00")]
        sessions = [past_session("CS202", "2026-01-20T14:00:00"), past_session("CS101", "2025-12-31T10:00:00")]
        assert find_smart_default(previous, sessions, now) == "CS202"

    def test_exactly_fourteen_days_is_included(self):
        now = datetime(2026, 1, 21, 10, 0)
        previous = [previous_class("CS202", "2026-01-20T14:00:00"), previous_class("CS101", "2026-01-07T10:00:00")]
        sessions = [past_session("CS202", "2026-01-20T14:00:00"), past_session("CS101", "2026-01-07T10:00:00")]
        assert LOOKBACK_DAYS == 14
        assert find_smart_default(previous, sessions, now) == "CS101"

    def test_just_over_fourteen_days_is_excluded(self):
        now = datetime(2026, 1, 21, 10, 30)
        previous = [previous_class("CS202", "2026-01-20T14:00:00"), previous_class("CS101", "2026-01-07T10:20:00")]
        # Same weekday and hour, but 14 days and 10 minutes back.
        sessions = [past_session("CS202", "2026-01-20T14:00:00"), past_session("CS101", "2026-01-07T10:20:00")]
        assert find_smart_default(previous, sessions, now) == "CS202"

    def test_later_session_in_the_same_hour_is_ignored(self):
        now = datetime(2026, 1, 21, 10, 15)
        previous = [previous_class("CS202", "2026-01-20T14:00:00"), previous_class("CS404", "2026-01-21T10:40:00")]
        sessions = [past_session("CS202", "2026-01-20T14:00:00"), past_session("CS404", "2026-01-21T10:40:00")]
        assert find_smart_default(previous, sessions, now) == "CS202"

    def test_most_recent_match_wins(self):
        previous = [previous_class("CS303", "2026-01-20T09:00:00"), previous_class("CS101", "2026-01-07T10:20:00")]
        sessions = [
            past_session("CS101", "2026-01-07T10:20:00"),
            past_session("CS303", "2026-01-14T10:20:00"),
        ]
        assert find_smart_default(previous, sessions, self.now) == "CS303"

    def test_aware_sessions_are_compared_in_the_clock_of_now(self):
        now = datetime(2026, 1, 21, 10, 15, tzinfo=timezone.utc)
        previous = [previous_class("CS202", "2026-01-20T14:00:00"), previous_class("CS101", "2026-01-14T10:05:00")]
        sessions = [
            {"class_name": "CS202", "created_at": datetime(2026, 1, 20, 14, 0, tzinfo=timezone.utc)},
            {"class_name": "CS101", "created_at": datetime(2026, 1, 14, 10, 5, tzinfo=timezone.utc)},
        ]
        assert find_smart_default(previous, sessions, now) == "CS101"


class TestBuildPreviousClasses:

    def test_one_entry_per_class_most_recent_first(self):
        sessions = [
            make_session("1", "CS101", datetime(2026, 1, 5, 10, tzinfo=timezone.utc), radius=200, late=5),
            make_session("2", "CS202", datetime(2026, 1, 6, 14, tzinfo=timezone.utc)),
            make_session("3", "CS101", datetime(2026, 1, 12, 10, tzinfo=timezone.utc), radius=150, late=15),
        ]
        entries = build_previous_classes(sessions)

        assert [e.class_name for e in entries] == ["CS101", "CS202"]
        assert entries[0].last_used == datetime(2026, 1, 12, 10, tzinfo=timezone.utc)
        assert entries[0].radius == 150
        assert entries[0].late_threshold == 15

    def test_empty(self):
        assert build_previous_classes([]) == []

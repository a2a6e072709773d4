from datetime import datetime, timedelta, timezone

import pytest

from quickattend.backend.tools.validators import is_late_check_in, is_valid_code, is_valid_email


class TestIsValidEmail:

    @pytest.mark.parametrize("email", ["student@university.edu", "a.b@c.co", "  padded@example.com  "])
    def test_valid(self, email):
        assert is_valid_email(email) is True

    @pytest.mark.parametrize("email", ["", None, 42, "no-at-sign.com", "two@@example.com", "a b@example.com", "user@domain", "a@b.co\nx@y.z"])
    def test_invalid(self, email):
        assert is_valid_email(email) is False


class TestIsValidCode:

    @pytest.mark.parametrize("code", ["ABC123", "abc123", "ZZZZZZ", "999999"])
    def test_valid(self, code):
        assert is_valid_code(code) is True

    @pytest.mark.parametrize("code", ["", None, 123456, "ABC12", "ABC1234", "ABC-12", "ABC 12", "ABC12\n", "ABC123\n"])
    def test_invalid(self, code):
        assert is_valid_code(code) is False


class TestIsLateCheckIn:
    start = datetime(2026, 1, 21, 10, 0, tzinfo=timezone.utc)

    def test_at_start_is_on_time(self):
        assert is_late_check_in(self.start, self.start, 10) is False

    def test_exactly_on_the_boundary_is_on_time(self):
        assert is_late_check_in(self.start + timedelta(minutes=10), self.start, 10) is False

    def test_just_past_the_boundary_is_late(self):
        assert is_late_check_in(self.start + timedelta(minutes=10, milliseconds=1), self.start, 10) is True

    def test_zero_threshold(self):
        assert is_late_check_in(self.start, self.start, 0) is False
        assert is_late_check_in(self.start + timedelta(milliseconds=1), self.start, 0) is True

    def test_accepts_iso_strings(self):
        assert is_late_check_in("2026-01-21T10:15:00Z", "2026-01-21T10:00:00Z", 10) is True
        assert is_late_check_in("2026-01-21T10:05:00+00:00", "2026-01-21T10:00:00Z", 10) is False

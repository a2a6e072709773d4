# quickattend/backend/tools/validators.py

import re
from datetime import datetime, timedelta
from typing import Any, Union

_EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_CODE_PATTERN = re.compile(r"[A-Z0-9]+")

CODE_LENGTH = 6


def is_valid_email(email: Any) -> bool:
    """
    Checks that a string looks like local-part@domain.tld.

    Returns False for None, empty or non-string input instead of raising.
    """
    if not email or not isinstance(email, str):
        return False
    return bool(_EMAIL_PATTERN.fullmatch(email.strip()))


def is_valid_code(code: Any) -> bool:
    """
    A check-in code is exactly 6 characters of [A-Z0-9] once upper-cased.
    Lowercase input is accepted; anything else is simply invalid.
    """
    if not code or not isinstance(code, str):
        return False
    upper = code.upper()
    return len(upper) == CODE_LENGTH and bool(_CODE_PATTERN.fullmatch(upper))


def _to_datetime(value: Union[datetime, str]) -> datetime:
    if isinstance(value, datetime):
        return value
    # fromisoformat only understands a trailing 'Z' from Python 3.11 on.
    return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))


def is_late_check_in(
    check_in: Union[datetime, str],
    session_start: Union[datetime, str],
    threshold_minutes: int,
) -> bool:
    """
    Decides whether a check-in counts as late.

    Args:
        check_in: Moment the student checked in.
        session_start: Moment the session started.
        threshold_minutes: Grace period in minutes.

    Returns:
        bool: True only when the check-in is strictly after start + threshold.
        A check-in exactly on the boundary is on time.
    """
    elapsed = _to_datetime(check_in) - _to_datetime(session_start)
    return elapsed > timedelta(minutes=threshold_minutes)

# quickattend/backend/modules/backup.py

import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..models.redis_models import Session, ValidationResult

BACKUP_VERSION = "1.0"
BACKUP_PATHS = ("sessions", "attendance", "failed", "audit", "courses")

# Class names used by demo and end-to-end runs. Matched as whole words, ignoring case.
TEST_PATTERNS = (
    "Test",
    "Flicker",
    "Empty Session",
    "Updated Session",
)


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def generate_backup_filename(when: Optional[datetime] = None, backup_dir: str = "backups") -> str:
    """'backups/backup-2026-01-21T10-15-00.json' (UTC, colons replaced)."""
    stamp = _utc(when or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H-%M-%S")
    return f"{backup_dir.rstrip('/')}/backup-{stamp}.json"


def format_backup_data(data: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Wraps a snapshot with its export metadata."""
    return {
        "exported_at": _utc(now or datetime.now(timezone.utc)).isoformat(),
        "version": BACKUP_VERSION,
        "paths": list(BACKUP_PATHS),
        "data": data,
    }


def validate_backup_data(data: Any) -> ValidationResult:
    """Checks that a snapshot is a mapping holding every backed-up path."""
    if not isinstance(data, dict):
        return ValidationResult(valid=False, errors=["Data must be an object"])

    errors = [f"Missing path: {path}" for path in BACKUP_PATHS if path not in data]
    return ValidationResult(valid=not errors, errors=errors)


def _pattern_regex(pattern: str) -> re.Pattern:
    words = r"\s+".join(re.escape(word) for word in pattern.split())
    return re.compile(rf"\b{words}\b", re.IGNORECASE)


def is_test_session(class_name: str, patterns: Iterable[str] = TEST_PATTERNS) -> bool:
    """
    True when a pattern occurs as whole words in the class name, so "QR Test 2"
    matches "Test" but "Contest Math" does not.
    """
    return any(_pattern_regex(pattern).search(class_name or "") for pattern in patterns)


def find_test_sessions(sessions: Sequence[Session], patterns: Iterable[str] = TEST_PATTERNS) -> List[Session]:
    """Sessions whose class name looks like leftover test data."""
    patterns = tuple(patterns)
    return [s for s in sessions if is_test_session(s.class_name, patterns)]

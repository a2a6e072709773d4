"""
Operational chores: snapshots and removal of leftover test or empty sessions.

Usage:
    python -m quickattend.backend.tasks.maintenance backup
    python -m quickattend.backend.tasks.maintenance verify <backup-file>
    python -m quickattend.backend.tasks.maintenance cleanup-test [--id SESSION_ID ...] [--apply]
    python -m quickattend.backend.tasks.maintenance cleanup-empty [--apply]

Cleanup commands only report what they would delete unless --apply is given.
"""
import argparse
import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

import redis.asyncio as redis

from ..config.config import settings
from ..db.redis_client import RedisClient
from ..logging.logging_config import setup_logging
from ..models.redis_models import Session, ValidationResult
from ..modules.backup import TEST_PATTERNS, find_test_sessions, format_backup_data, generate_backup_filename, validate_backup_data

logger = logging.getLogger(__name__)


async def export_backup(redis_client: RedisClient, backup_dir: str, now: Optional[datetime] = None) -> Path:
    """Writes every backed-up path to a timestamped JSON file and returns its path."""
    data = await redis_client.dump_paths()
    path = Path(generate_backup_filename(now, backup_dir))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(format_backup_data(data, now), indent=2), encoding="utf-8")
    logger.info(f"Backup of {len(data['sessions'])} sessions written to {path}.")
    return path


def verify_backup(path: Path) -> ValidationResult:
    """Checks that a backup file is readable JSON holding every backed-up path."""
    try:
        content = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        return ValidationResult(valid=False, errors=[f"Unreadable backup: {e}"])
    if not isinstance(content, dict) or "data" not in content:
        return ValidationResult(valid=False, errors=["Backup has no data section"])
    return validate_backup_data(content["data"])


async def _delete_sessions(redis_client: RedisClient, sessions: List[Session], dry_run: bool, label: str) -> List[Session]:
    for session in sessions:
        if dry_run:
            logger.info(f"[dry run] Would delete {label} session {session.id} ('{session.class_name}').")
        else:
            await redis_client.delete_session(session)
            logger.info(f"Deleted {label} session {session.id} ('{session.class_name}').")
    return sessions


async def cleanup_test_sessions(
    redis_client: RedisClient,
    dry_run: bool = True,
    patterns: Iterable[str] = TEST_PATTERNS,
    session_ids: Optional[Iterable[str]] = None,
) -> List[Session]:
    """
    Deletes ended sessions whose class name matches a test pattern. When
    `session_ids` is given only those sessions are considered. Active
    sessions are left alone.
    """
    sessions = await redis_client.get_all_sessions()
    if session_ids is not None:
        wanted = set(session_ids)
        sessions = [s for s in sessions if s.id in wanted]
    matches = [s for s in find_test_sessions(sessions, patterns) if not s.active]
    return await _delete_sessions(redis_client, matches, dry_run, "test")


async def cleanup_empty_sessions(redis_client: RedisClient, dry_run: bool = True) -> List[Session]:
    """Deletes ended sessions that nobody checked in to."""
    sessions = [s for s in await redis_client.get_all_sessions() if not s.active]
    empty = [s for s in sessions if await redis_client.count_attendance(s.id) == 0]
    return await _delete_sessions(redis_client, empty, dry_run, "empty")


async def _run(args: argparse.Namespace) -> int:
    pool = redis.ConnectionPool.from_url(settings.APPLICATION_REDIS_URL, decode_responses=True)
    redis_client = RedisClient(pool=pool)
    try:
        if args.command == "backup":
            print(await export_backup(redis_client, args.backup_dir))
        elif args.command == "cleanup-test":
            removed = await cleanup_test_sessions(redis_client, dry_run=not args.apply, session_ids=args.ids)
            print(f"{'Deleted' if args.apply else 'Would delete'} {len(removed)} test sessions.")
        elif args.command == "cleanup-empty":
            removed = await cleanup_empty_sessions(redis_client, dry_run=not args.apply)
            print(f"{'Deleted' if args.apply else 'Would delete'} {len(removed)} empty sessions.")
    finally:
        await pool.disconnect()
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description="QuickAttend maintenance tasks")
    subparsers = parser.add_subparsers(dest="command", required=True)

    backup_parser = subparsers.add_parser("backup", help="Export all data to a JSON file")
    backup_parser.add_argument("--backup-dir", default=settings.BACKUP_DIR)

    verify_parser = subparsers.add_parser("verify", help="Check that a backup file is complete")
    verify_parser.add_argument("path", type=Path)

    for name in ("cleanup-test", "cleanup-empty"):
        cleanup_parser = subparsers.add_parser(name)
        cleanup_parser.add_argument("--apply", action="store_true", help="Actually delete (default is a dry run)")
    subparsers.choices["cleanup-test"].add_argument(
        "--id", dest="ids", action="append", help="Only consider this session id (repeatable)"
    )

    args = parser.parse_args(argv)
    setup_logging()
    if args.command == "verify":
        result = verify_backup(args.path)
        for error in result.errors:
            print(error)
        print("Backup is valid." if result.valid else "Backup is invalid.")
        return 0 if result.valid else 1
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())

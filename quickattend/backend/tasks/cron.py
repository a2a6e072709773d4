import logging
from typing import Optional

from ..config.config import settings
from ..db.redis_client import RedisClient
from ..models.redis_models import Session
from ..services.exceptions import ServiceError
from ..services.instructor_service import InstructorService
from .maintenance import export_backup

logger = logging.getLogger(__name__)


async def rotate_session_code(redis_client: RedisClient, session_id: str) -> Optional[Session]:
    """
    Gives an active session a new code. Returns None once the session is
    gone or has ended, which tells the caller to stop rotating it.
    """
    try:
        return await InstructorService(redis_client).rotate_code(session_id)
    except ServiceError as e:
        logger.info(f"Code rotation for session {session_id} skipped: {e}")
    # A lost race with a manual rotation leaves the session live; keep its job.
    session = await redis_client.get_session(session_id)
    return session if session is not None and session.active else None


async def nightly_backup_task(redis_client: RedisClient, backup_dir: Optional[str] = None):
    """Writes a full snapshot to the backup directory. Failures are logged, never raised."""
    logger.info("Running nightly_backup_task...")
    try:
        path = await export_backup(redis_client, backup_dir or settings.BACKUP_DIR)
        logger.info(f"Nightly backup written to {path}.")
    except Exception as e:
        logger.error(f"Nightly backup failed: {e}", exc_info=True)

import logging

from apscheduler.jobstores.base import JobLookupError

from ..db.redis_client import RedisClient
from .cron import rotate_session_code

logger = logging.getLogger(__name__)


class CodeRotator:
    """
    Owns one interval job per active session that replaces the session code.
    `start` is idempotent; `stop` is safe to call for sessions without a job.
    """

    def __init__(self, scheduler, redis_client: RedisClient, interval_seconds: int):
        self.scheduler = scheduler
        self.redis_client = redis_client
        self.interval_seconds = interval_seconds

    @staticmethod
    def job_id(session_id: str) -> str:
        return f"rotate:{session_id}"

    def start(self, session_id: str):
        self.scheduler.add_job(
            self.rotate,
            "interval",
            seconds=self.interval_seconds,
            args=[session_id],
            id=self.job_id(session_id),
            replace_existing=True,
        )
        logger.info(f"Code rotation started for session {session_id} every {self.interval_seconds}s.")

    def stop(self, session_id: str):
        try:
            self.scheduler.remove_job(self.job_id(session_id))
            logger.info(f"Code rotation stopped for session {session_id}.")
        except JobLookupError:
            pass

    def is_running(self, session_id: str) -> bool:
        return self.scheduler.get_job(self.job_id(session_id)) is not None

    async def rotate(self, session_id: str):
        session = await rotate_session_code(self.redis_client, session_id)
        if session is None:
            self.stop(session_id)

    async def resume_active(self) -> int:
        """
        Restarts rotation for sessions left active by a previous process and
        returns how many were started. Sessions that already rotate are skipped.
        """
        stopped = [s for s in await self.redis_client.get_active_sessions() if not self.is_running(s.id)]
        for session in stopped:
            self.start(session.id)
        return len(stopped)

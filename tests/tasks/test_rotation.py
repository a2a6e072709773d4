import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from apscheduler.jobstores.base import JobLookupError

from quickattend.backend.tasks.rotation import CodeRotator


@pytest.fixture
def rotator():
    scheduler = MagicMock()
    return CodeRotator(scheduler, AsyncMock(), interval_seconds=120)


class TestCodeRotatorJobs:

    def test_start_registers_interval_job(self, rotator):
        rotator.start("sess-1")

        rotator.scheduler.add_job.assert_called_once_with(
            rotator.rotate,
            "interval",
            seconds=120,
            args=["sess-1"],
            id="rotate:sess-1",
            replace_existing=True,
        )

    def test_stop_removes_job(self, rotator):
        rotator.stop("sess-1")
        rotator.scheduler.remove_job.assert_called_once_with("rotate:sess-1")

    def test_stop_without_job_is_harmless(self, rotator):
        rotator.scheduler.remove_job.side_effect = JobLookupError("rotate:sess-1")
        rotator.stop("sess-1")

    def test_is_running(self, rotator):
        rotator.scheduler.get_job.return_value = None
        assert rotator.is_running("sess-1") is False
        rotator.scheduler.get_job.return_value = object()
        assert rotator.is_running("sess-1") is True


@pytest.mark.asyncio
class TestCodeRotatorRuns:

    async def test_rotate_keeps_job_for_active_session(self, rotator):
        with patch("quickattend.backend.tasks.rotation.rotate_session_code", new_callable=AsyncMock) as mock_rotate:
            mock_rotate.return_value = MagicMock()
            await rotator.rotate("sess-1")
        rotator.scheduler.remove_job.assert_not_called()

    async def test_rotate_stops_job_when_session_ended(self, rotator):
        with patch("quickattend.backend.tasks.rotation.rotate_session_code", new_callable=AsyncMock) as mock_rotate:
            mock_rotate.return_value = None
            await rotator.rotate("sess-1")
        rotator.scheduler.remove_job.assert_called_once_with("rotate:sess-1")

    async def test_resume_active(self, rotator):
        rotator.redis_client.get_active_sessions.return_value = [MagicMock(id="a"), MagicMock(id="b")]
        rotator.scheduler.get_job.return_value = None

        assert await rotator.resume_active() == 2

        job_ids = [c.kwargs["id"] for c in rotator.scheduler.add_job.call_args_list]
        assert job_ids == ["rotate:a", "rotate:b"]

    async def test_resume_active_skips_running_sessions(self, rotator):
        rotator.redis_client.get_active_sessions.return_value = [MagicMock(id="a"), MagicMock(id="b")]
        rotator.scheduler.get_job.side_effect = lambda job_id: MagicMock() if job_id == "rotate:a" else None

        assert await rotator.resume_active() == 1

        job_ids = [c.kwargs["id"] for c in rotator.scheduler.add_job.call_args_list]
        assert job_ids == ["rotate:b"]

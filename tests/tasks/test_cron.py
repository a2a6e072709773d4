import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from quickattend.backend.tasks.cron import nightly_backup_task, rotate_session_code
from quickattend.backend.services.exceptions import NotFoundError, ServiceError


@pytest.mark.asyncio
class TestRotateSessionCode:

    async def test_returns_rotated_session(self):
        with patch("quickattend.backend.tasks.cron.InstructorService") as service_cls:
            service_cls.return_value.rotate_code = AsyncMock(return_value="rotated")
            assert await rotate_session_code(AsyncMock(), "sess-1") == "rotated"
            service_cls.return_value.rotate_code.assert_awaited_once_with("sess-1")

    @pytest.mark.parametrize("error", [ServiceError("Only active sessions have their code rotated."), NotFoundError("Session not found.")])
    async def test_returns_none_when_session_cannot_rotate(self, error):
        redis_client = AsyncMock()
        redis_client.get_session.return_value = None
        with patch("quickattend.backend.tasks.cron.InstructorService") as service_cls:
            service_cls.return_value.rotate_code = AsyncMock(side_effect=error)
            assert await rotate_session_code(redis_client, "sess-1") is None

    async def test_ended_session_returns_none(self):
        redis_client = AsyncMock()
        redis_client.get_session.return_value = MagicMock(active=False)
        with patch("quickattend.backend.tasks.cron.InstructorService") as service_cls:
            service_cls.return_value.rotate_code = AsyncMock(side_effect=ServiceError("Only active sessions have their code rotated."))
            assert await rotate_session_code(redis_client, "sess-1") is None

    async def test_lost_race_keeps_live_session_rotating(self):
        live = MagicMock(active=True)
        redis_client = AsyncMock()
        redis_client.get_session.return_value = live
        with patch("quickattend.backend.tasks.cron.InstructorService") as service_cls:
            service_cls.return_value.rotate_code = AsyncMock(side_effect=ServiceError("The session changed while its code was being rotated."))
            assert await rotate_session_code(redis_client, "sess-1") is live


@pytest.mark.asyncio
class TestNightlyBackup:

    async def test_writes_to_configured_directory(self, tmp_path):
        with patch("quickattend.backend.tasks.cron.export_backup", new_callable=AsyncMock) as mock_export:
            mock_export.return_value = tmp_path / "backup.json"
            redis_client = AsyncMock()

            await nightly_backup_task(redis_client, backup_dir=str(tmp_path))

            mock_export.assert_awaited_once_with(redis_client, str(tmp_path))

    async def test_failure_is_logged_not_raised(self, caplog):
        with patch("quickattend.backend.tasks.cron.export_backup", new_callable=AsyncMock) as mock_export:
            mock_export.side_effect = OSError("disk full")

            await nightly_backup_task(AsyncMock(), backup_dir="/nonexistent")

        assert "Nightly backup failed" in caplog.text

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from quickattend.backend.models.redis_models import StudentInfo
from quickattend.backend.modules.student_info import StudentInfoStore


@pytest_asyncio.fixture
async def store_instance():
    mock_redis_client = AsyncMock()
    store = StudentInfoStore(mock_redis_client, "DEV-0000ABCD", ttl=3600)
    return store, mock_redis_client


@pytest.fixture
def info() -> StudentInfo:
    return StudentInfo(student_id="S001", student_name="Ada Lovelace", student_email="ada@uni.edu")


@pytest.mark.asyncio
class TestStudentInfoStore:

    async def test_save(self, store_instance, info):
        store, mock_redis_client = store_instance
        assert await store.save(info) is True
        mock_redis_client.save_student_info.assert_awaited_once_with(
            "DEV-0000ABCD",
            {"student_id": "S001", "student_name": "Ada Lovelace", "student_email": "ada@uni.edu"},
            ttl=3600,
        )

    async def test_load_round_trip(self, store_instance, info):
        store, mock_redis_client = store_instance
        mock_redis_client.get_student_info.return_value = info.model_dump()
        assert await store.load() == info

    @pytest.mark.parametrize("missing", ["student_id", "student_name", "student_email"])
    async def test_load_none_when_a_field_is_missing(self, store_instance, info, missing):
        store, mock_redis_client = store_instance
        fields = info.model_dump()
        del fields[missing]
        mock_redis_client.get_student_info.return_value = fields
        assert await store.load() is None

    async def test_load_none_when_a_field_is_empty(self, store_instance, info):
        store, mock_redis_client = store_instance
        mock_redis_client.get_student_info.return_value = {**info.model_dump(), "student_email": ""}
        assert await store.load() is None

    async def test_load_none_when_nothing_stored(self, store_instance):
        store, mock_redis_client = store_instance
        mock_redis_client.get_student_info.return_value = {}
        assert await store.load() is None

    async def test_clear(self, store_instance):
        store, mock_redis_client = store_instance
        assert await store.clear() is True
        mock_redis_client.delete_student_info.assert_awaited_once_with("DEV-0000ABCD")

    async def test_storage_errors_never_propagate(self, store_instance, info):
        store, mock_redis_client = store_instance
        mock_redis_client.save_student_info.side_effect = ConnectionError("redis down")
        mock_redis_client.get_student_info.side_effect = ConnectionError("redis down")
        mock_redis_client.delete_student_info.side_effect = ConnectionError("redis down")

        assert await store.save(info) is False
        assert await store.load() is None
        assert await store.clear() is False

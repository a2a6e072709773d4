from datetime import datetime, timedelta, timezone

from quickattend.backend.api.auth import create_access_token
from quickattend.backend.api.dependencies import get_redis_client
from quickattend.backend.models.redis_models import InstructorSessionRedis


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_instructor_login_success(client, override):
    redis_client = override(get_redis_client)

    response = client.post("/api/v1/auth/instructor/login", json={"pin": "4321", "display_name": "Dr. Rivera"})

    assert response.status_code == 200
    data = response.json()
    assert data["display_name"] == "Dr. Rivera"
    assert data["token"]["token_type"] == "bearer"
    assert data["token"]["access_token"]
    redis_client.save_instructor_session.assert_awaited_once()


def test_instructor_login_wrong_pin(client, override):
    redis_client = override(get_redis_client)

    response = client.post("/api/v1/auth/instructor/login", json={"pin": "0000"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid PIN."
    redis_client.save_instructor_session.assert_not_awaited()


def test_token_endpoint_accepts_pin_as_password(client, override):
    override(get_redis_client)
    response = client.post("/api/v1/auth/token", data={"username": "Dr. Rivera", "password": "4321"})
    assert response.status_code == 200
    assert "access_token" in response.json()


def test_me_requires_live_instructor_session(client, override):
    redis_client = override(get_redis_client)
    now = datetime.now(timezone.utc)
    redis_client.get_instructor_session.return_value = InstructorSessionRedis(
        session_id="inst-1", session_start_time=now, session_end_time=now + timedelta(hours=1)
    )
    token = create_access_token({"session_id": "inst-1", "role": "instructor"}, timedelta(minutes=5))

    response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json()["session_id"] == "inst-1"


def test_logged_out_token_is_refused(client, override):
    redis_client = override(get_redis_client)
    redis_client.get_instructor_session.return_value = None
    token = create_access_token({"session_id": "inst-1", "role": "instructor"}, timedelta(minutes=5))

    response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_token_with_wrong_role_is_refused(client, override):
    override(get_redis_client)
    token = create_access_token({"session_id": "inst-1", "role": "student"}, timedelta(minutes=5))
    response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_garbage_token_is_refused(client, override):
    override(get_redis_client)
    response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_logout_deletes_session(client, override):
    redis_client = override(get_redis_client)
    now = datetime.now(timezone.utc)
    redis_client.get_instructor_session.return_value = InstructorSessionRedis(
        session_id="inst-1", session_start_time=now, session_end_time=now + timedelta(hours=1)
    )
    token = create_access_token({"session_id": "inst-1", "role": "instructor"}, timedelta(minutes=5))

    response = client.post("/api/v1/auth/logout", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 204
    redis_client.delete_instructor_session.assert_awaited_once_with("inst-1")

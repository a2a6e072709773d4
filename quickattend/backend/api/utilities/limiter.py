# quickattend/backend/api/utilities/limiter.py

from fastapi import Request
import jwt

from slowapi import Limiter
from slowapi.util import get_remote_address

from ...config.config import settings

def get_limiter_key(request: Request) -> str:
    """
    Rate limit key: the instructor login session when a valid bearer token is
    present, otherwise the client IP. Students never log in, so they are
    always limited per address.
    """
    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ")[1]
        try:
            # Expiry does not matter here, only the identity inside.
            payload = jwt.decode(
                token,
                settings.SECRET_KEY,
                algorithms=[settings.ALGORITHM],
                options={"verify_exp": False}
            )
            session_id = payload.get("session_id")
            if session_id:
                return f"instructor:{session_id}"
        except jwt.PyJWTError:
            pass

    return get_remote_address(request)

# Falls back to in-memory counters when RATE_LIMITER_REDIS_URL is not set.
limiter = Limiter(
    key_func=get_limiter_key,
    storage_uri=settings.RATE_LIMITER_REDIS_URL,
    enabled=settings.RATE_LIMIT_ENABLED,
)

import hmac
import logging
from fastapi import APIRouter, Depends, HTTPException, status, Response, Request
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from datetime import datetime, timedelta, timezone
from uuid import uuid4
from typing import Optional
import jwt
from pydantic import ValidationError

from .schemas.auth import InstructorLoginRequest, InstructorLoginResponse, Token, TokenData
from ..models.redis_models import InstructorSessionRedis
from ..db.redis_client import RedisClient
from ..config.config import settings
from .dependencies import get_redis_client
from .utilities.limiter import limiter

logger = logging.getLogger(__name__)

INSTRUCTOR_ROLE = "instructor"

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


def create_access_token(data: dict, expires_delta: timedelta) -> str:
    """Signs a JWT carrying `data` that expires after `expires_delta`."""
    to_encode = data.copy()
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


async def get_current_instructor(
    token: str = Depends(oauth2_scheme),
    redis_client: RedisClient = Depends(get_redis_client)
) -> InstructorSessionRedis:
    """
    Decodes the bearer token and checks that its login session still exists
    in Redis, so a logout invalidates the token immediately.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        token_data = TokenData.model_validate(payload)
    except (jwt.PyJWTError, ValidationError) as e:
        logger.warning(f"Token validation error: {e}")
        raise credentials_exception

    if token_data.session_id is None or token_data.role != INSTRUCTOR_ROLE:
        logger.warning(f"Token is valid but is not an instructor token: {payload}")
        raise credentials_exception

    instructor_session = await redis_client.get_instructor_session(token_data.session_id)
    if instructor_session is None:
        logger.warning(f"Instructor session '{token_data.session_id}' has a valid token but no session in Redis.")
        raise credentials_exception
    return instructor_session


def _pin_matches(pin: str) -> bool:
    if not settings.INSTRUCTOR_PIN:
        logger.error("INSTRUCTOR_PIN is not configured; instructor login is disabled.")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Instructor login is not configured.")
    return hmac.compare_digest(pin.encode(), settings.INSTRUCTOR_PIN.encode())


async def _perform_login(pin: str, display_name: Optional[str], redis_client: RedisClient) -> InstructorLoginResponse:
    if not _pin_matches(pin):
        logger.warning("Instructor login failed: wrong PIN.")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid PIN.")

    ttl = settings.INSTRUCTOR_SESSION_TTL_SECONDS
    now = datetime.now(timezone.utc)
    instructor_session = InstructorSessionRedis(
        session_id=uuid4().hex,
        display_name=display_name,
        session_start_time=now,
        session_end_time=now + timedelta(seconds=ttl),
    )
    try:
        await redis_client.save_instructor_session(instructor_session, ttl=ttl)
    except Exception:
        logger.error("Could not store the instructor session.", exc_info=True)
        raise HTTPException(status_code=500, detail="An unexpected server error occurred during login.")

    access_token = create_access_token(
        data={"session_id": instructor_session.session_id, "role": INSTRUCTOR_ROLE},
        expires_delta=timedelta(minutes=settings.INSTRUCTOR_TOKEN_EXPIRE_MINUTES),
    )
    logger.info(f"Instructor session {instructor_session.session_id} started.")
    return InstructorLoginResponse(token=Token(access_token=access_token), display_name=display_name)


@router.post("/token", response_model=Token)
@limiter.limit("10/minute")
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    redis_client: RedisClient = Depends(get_redis_client)
):
    """Standard OAuth2 endpoint for Swagger UI. The password field carries the PIN."""
    login_response = await _perform_login(form_data.password, form_data.username or None, redis_client)
    return login_response.token


@router.post("/instructor/login", response_model=InstructorLoginResponse)
@limiter.limit("10/minute")
async def instructor_login(
    request: Request,
    login_request: InstructorLoginRequest,
    redis_client: RedisClient = Depends(get_redis_client)
):
    return await _perform_login(login_request.pin, login_request.display_name, redis_client)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def logout(
    request: Request,
    redis_client: RedisClient = Depends(get_redis_client),
    instructor: InstructorSessionRedis = Depends(get_current_instructor)
):
    """Deletes the instructor session; the token stops working right away."""
    try:
        await redis_client.delete_instructor_session(instructor.session_id)
        logger.info(f"Instructor session {instructor.session_id} ended by logout.")
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception:
        logger.error(f"Error during logout of session {instructor.session_id}.", exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred during logout.")


@router.get("/me", response_model=InstructorSessionRedis)
@limiter.limit("60/minute")
async def get_me(request: Request, instructor: InstructorSessionRedis = Depends(get_current_instructor)):
    """The current login session, used for the instructor greeting."""
    return instructor

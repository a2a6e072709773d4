# quickattend/backend/main.py
from fastapi import FastAPI
from contextlib import asynccontextmanager
import redis.asyncio as redis
from apscheduler.schedulers.asyncio import AsyncIOScheduler as Scheduler
import logging

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from fastapi.middleware.cors import CORSMiddleware

from .config.config import settings
from .logging.logging_config import setup_logging
from .api import auth, instructor, courses, student
from .db.redis_client import RedisClient
from .tasks.cron import nightly_backup_task
from .tasks.rotation import CodeRotator
from .api.utilities.limiter import limiter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Creates the Redis pool and the scheduler on startup, resumes code
    rotation for sessions that were still active, and tears everything
    down on shutdown.
    """
    setup_logging()
    app.state.limiter = limiter

    logger.info("Application starting...")

    app.state.redis_pool = None
    app.state.scheduler = None
    app.state.code_rotator = None

    try:
        redis_pool = redis.ConnectionPool.from_url(
            settings.APPLICATION_REDIS_URL, decode_responses=True
        )
        app.state.redis_pool = redis_pool
        redis_client = RedisClient(pool=redis_pool)
        logger.info("Redis connection pool created.")

        scheduler = Scheduler()
        scheduler.add_job(
            nightly_backup_task, "cron", hour=settings.BACKUP_HOUR, args=[redis_client], id="nightly_backup"
        )
        scheduler.start()
        app.state.scheduler = scheduler

        code_rotator = CodeRotator(scheduler, redis_client, settings.CODE_ROTATION_SECONDS)
        app.state.code_rotator = code_rotator
        resumed = await code_rotator.resume_active()
        logger.info(f"Scheduler started; code rotation resumed for {resumed} active sessions.")

    except Exception as e:
        logger.error(f"Error during startup: {e}", exc_info=True)

    yield

    logger.info("Application shutting down...")
    if app.state.scheduler:
        app.state.scheduler.shutdown()
        logger.info("Scheduler stopped.")
    if app.state.redis_pool:
        await app.state.redis_pool.disconnect()
        logger.info("Redis connection pool closed.")


app = FastAPI(
    title="QuickAttend API",
    description="Classroom attendance with rotating check-in codes and geofencing",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(instructor.router, prefix="/api/v1")
app.include_router(courses.router, prefix="/api/v1")
app.include_router(student.router, prefix="/api/v1")

@app.get("/health", tags=["System"])
def health_check():
    """Simple liveness check."""
    return {"status": "ok", "message": "QuickAttend API is running."}

import os
from datetime import timezone, tzinfo
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

class Config:
    """
    Holds the settings read straight from environment variables.
    """
    # Redis
    APPLICATION_REDIS_URL: str = os.environ.get("APPLICATION_REDIS_URL", "redis://localhost:6379/0")
    # No dedicated limiter Redis means an in-process counter.
    RATE_LIMITER_REDIS_URL: str = os.environ.get("RATE_LIMITER_REDIS_URL") or "memory://"
    RATE_LIMIT_ENABLED: bool = os.environ.get("RATE_LIMIT_ENABLED", "true").lower() == "true"

    # Instructor auth
    SECRET_KEY: str = os.environ.get("SECRET_KEY", "change-me")
    ALGORITHM: str = os.environ.get("ALGORITHM", "HS256")
    INSTRUCTOR_PIN: str = os.environ.get("INSTRUCTOR_PIN", "")
    INSTRUCTOR_TOKEN_EXPIRE_MINUTES: int = int(os.environ.get("INSTRUCTOR_TOKEN_EXPIRE_MINUTES", 240))
    INSTRUCTOR_SESSION_TTL_SECONDS: int = int(os.environ.get("INSTRUCTOR_SESSION_TTL_SECONDS", 14400))

    # Attendance sessions
    CODE_ROTATION_SECONDS: int = int(os.environ.get("CODE_ROTATION_SECONDS", 120))
    DEFAULT_RADIUS_METERS: int = int(os.environ.get("DEFAULT_RADIUS_METERS", 300))
    DEFAULT_LATE_THRESHOLD_MINUTES: int = int(os.environ.get("DEFAULT_LATE_THRESHOLD_MINUTES", 10))
    LOCAL_TIMEZONE: str = os.environ.get("LOCAL_TIMEZONE", "UTC")
    PUBLIC_BASE_URL: str = os.environ.get("PUBLIC_BASE_URL", "http://localhost:8000/")

    # Returning-student prefill
    STUDENT_INFO_TTL_SECONDS: int = int(os.environ.get("STUDENT_INFO_TTL_SECONDS", 60 * 60 * 24 * 180))

    # Maintenance
    BACKUP_DIR: str = os.environ.get("BACKUP_DIR", "backups")
    BACKUP_HOUR: int = int(os.environ.get("BACKUP_HOUR", 3))

    def local_timezone(self) -> tzinfo:
        """Timezone used for weekday/hour matching and schedule expansion."""
        if self.LOCAL_TIMEZONE.upper() == "UTC":
            return timezone.utc
        return ZoneInfo(self.LOCAL_TIMEZONE)

# Single importable settings instance
settings = Config()

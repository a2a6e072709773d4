import logging
from typing import List, Optional, Tuple
from datetime import date, datetime, timezone

from ..config.config import settings
from ..db.redis_client import RedisClient
from ..models.redis_models import PreviousClassEntry
from ..modules.analytics import ClassAnalytics, analytics_filename, analytics_report_csv, class_analytics, filter_sessions
from ..modules.smart_default import build_previous_classes, find_smart_default
from .exceptions import ServiceError

logger = logging.getLogger(__name__)


class AnalyticsService:
    """Read-only views over the whole session history."""

    def __init__(self, redis_client: RedisClient):
        self.redis_client = redis_client

    async def _all_sessions(self):
        try:
            return await self.redis_client.get_all_sessions()
        except Exception as e:
            logger.error("Error loading sessions for analytics.", exc_info=True)
            raise ServiceError("A server error occurred while loading sessions.") from e

    async def get_previous_classes(self) -> List[PreviousClassEntry]:
        return build_previous_classes(await self._all_sessions())

    async def get_smart_default(self, now: Optional[datetime] = None) -> Optional[str]:
        sessions = await self._all_sessions()
        local_now = (now or datetime.now(timezone.utc)).astimezone(settings.local_timezone())
        return find_smart_default(build_previous_classes(sessions), sessions, now=local_now)

    async def get_class_analytics(
        self,
        class_name: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> ClassAnalytics:
        sessions = filter_sessions(
            await self._all_sessions(),
            now=datetime.now(timezone.utc),
            show_all=True,
            start_date=start_date,
            end_date=end_date,
            tz=settings.local_timezone(),
        )
        try:
            attendance = await self.redis_client.get_attendance_for_sessions([s.id for s in sessions])
        except Exception as e:
            logger.error("Error loading attendance for analytics.", exc_info=True)
            raise ServiceError("A server error occurred while computing analytics.") from e
        return class_analytics(sessions, attendance, class_name=class_name or None)

    async def export_class_analytics(self, class_name: Optional[str] = None, **filters) -> Tuple[str, str]:
        """Returns (filename, csv_text) of the per-student analytics table."""
        report = await self.get_class_analytics(class_name, **filters)
        today = datetime.now(timezone.utc).astimezone(settings.local_timezone())
        return analytics_filename(class_name, today), analytics_report_csv(report)

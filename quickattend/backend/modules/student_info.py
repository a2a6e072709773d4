# quickattend/backend/modules/student_info.py

import logging
from typing import Optional

from ..models.redis_models import StudentInfo

logger = logging.getLogger(__name__)

STUDENT_INFO_FIELDS = ("student_id", "student_name", "student_email")


class StudentInfoStore:
    """
    Remembers a returning student's id, name and email for one device so the
    check-in form can be prefilled. Storage failures are logged and never
    propagate: a missing prefill must not block a check-in.
    """

    def __init__(self, redis_client, device_id: str, ttl: Optional[int] = None):
        self.redis_client = redis_client
        self.device_id = device_id
        self.ttl = ttl

    async def save(self, info: StudentInfo) -> bool:
        try:
            await self.redis_client.save_student_info(self.device_id, info.model_dump(), ttl=self.ttl)
            return True
        except Exception as e:
            logger.warning(f"Could not save student info for device {self.device_id}: {e}")
            return False

    async def load(self) -> Optional[StudentInfo]:
        """Returns the stored info, or None unless all three fields are non-empty."""
        try:
            fields = await self.redis_client.get_student_info(self.device_id)
        except Exception as e:
            logger.warning(f"Could not load student info for device {self.device_id}: {e}")
            return None

        if not fields or not all(fields.get(name) for name in STUDENT_INFO_FIELDS):
            return None
        return StudentInfo(**{name: fields[name] for name in STUDENT_INFO_FIELDS})

    async def clear(self) -> bool:
        try:
            await self.redis_client.delete_student_info(self.device_id)
            return True
        except Exception as e:
            logger.warning(f"Could not clear student info for device {self.device_id}: {e}")
            return False

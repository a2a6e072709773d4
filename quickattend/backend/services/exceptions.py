from typing import Optional

from ..models.redis_models import FailedAttempt


class ServiceError(Exception):
    """General exception class for the service layer."""
    pass


class NotFoundError(ServiceError):
    """The requested session, record or course does not exist."""
    pass


class CheckInRejected(ServiceError):
    """A check-in was refused; the stored failed attempt travels with it."""

    def __init__(self, message: str, attempt: Optional[FailedAttempt] = None):
        super().__init__(message)
        self.attempt = attempt

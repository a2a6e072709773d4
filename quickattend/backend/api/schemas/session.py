from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import List, Optional

from ...config.config import settings
from ...models.redis_models import Location, Session
from ...tools.codes import build_checkin_url
from ...tools.validators import is_valid_email


class SessionStartRequest(BaseModel):
    """Request model for starting a quick attendance session."""
    class_name: str = Field(..., min_length=1, max_length=100, description="e.g. 'CS101-A'.")
    location: Location = Field(..., description="Where the instructor is standing; centre of the geofence.")
    radius_meters: Optional[int] = Field(None, ge=10, le=5000, description="Defaults to 300.")
    late_threshold_minutes: Optional[int] = Field(None, ge=0, le=240, description="Defaults to 10.")

    @field_validator("class_name")
    def class_name_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Class name is required.")
        return v.strip()


class SessionResponse(Session):
    """A session together with the URL its QR code encodes."""
    checkin_url: Optional[str] = None

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        url = build_checkin_url(settings.PUBLIC_BASE_URL, session.code) if session.active else None
        return cls(**session.model_dump(), checkin_url=url)


class ManualAttendanceRequest(BaseModel):
    student_id: str = Field(..., min_length=1, max_length=50)
    student_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = None
    is_late: bool = False
    note: Optional[str] = Field(None, max_length=500)

    @field_validator("email")
    def email_must_be_valid(cls, v):
        if v is not None and v.strip() and not is_valid_email(v):
            raise ValueError("Invalid email address.")
        return v.strip() if v else None


class AttendanceUpdateRequest(BaseModel):
    """Fields left out (or null) keep their current value."""
    student_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = None
    is_late: Optional[bool] = None
    note: Optional[str] = Field(None, max_length=500)

    @field_validator("email")
    def email_must_be_valid(cls, v):
        if v is not None and not is_valid_email(v):
            raise ValueError("Invalid email address.")
        return v.strip() if v else v


class DismissFailedRequest(BaseModel):
    attempt_ids: List[str] = Field(..., min_length=1)


class DismissFailedResponse(BaseModel):
    dismissed: int


class SmartDefaultResponse(BaseModel):
    class_name: Optional[str] = None
    generated_at: datetime

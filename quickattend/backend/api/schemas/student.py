from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional

from ...tools.codes import code_from_scan
from ...tools.validators import is_valid_code, is_valid_email


class CheckInRequest(BaseModel):
    """A student's check-in submission. Malformed codes and emails are refused up front."""
    code: str = Field(..., description="The 6-character code shown by the instructor, or the scanned QR URL.")
    student_id: str = Field(..., min_length=1, max_length=50)
    student_name: str = Field(..., min_length=1, max_length=100)
    email: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    device_id: Optional[str] = Field(None, max_length=20)

    @field_validator("code")
    def code_must_be_valid(cls, v):
        v = code_from_scan(v)
        if not is_valid_code(v):
            raise ValueError("Code must be 6 letters or digits.")
        return v.strip().upper()

    @field_validator("email")
    def email_must_be_valid(cls, v):
        if not is_valid_email(v):
            raise ValueError("Invalid email address.")
        return v.strip()

    @field_validator("student_id", "student_name")
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError("This field is required.")
        return v.strip()


class CheckInResponse(BaseModel):
    session_id: str
    student_id: str
    status: str
    is_late: bool
    distance_meters: Optional[float] = None
    timestamp: datetime
    message: str


class DeviceIdResponse(BaseModel):
    device_id: str

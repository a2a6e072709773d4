from pydantic import BaseModel, Field
from typing import Optional


class InstructorLoginRequest(BaseModel):
    pin: str = Field(..., min_length=1, description="Shared instructor PIN.")
    display_name: Optional[str] = Field(None, max_length=100, description="Name used in the instructor greeting.")


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class InstructorLoginResponse(BaseModel):
    token: Token
    display_name: Optional[str] = None


# Internal representation of JWT data
class TokenData(BaseModel):
    session_id: Optional[str] = None
    role: Optional[str] = None

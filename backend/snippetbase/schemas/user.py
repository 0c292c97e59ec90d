"""User request/response contracts for login and profile."""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class LoginRequest(BaseModel):
    email: str


class UserOut(BaseModel):
    user_id: int
    organization_id: Optional[int] = None
    email: str
    given_name: Optional[str] = None
    is_organization_admin: bool
    wants_suggestion_emails: bool
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut

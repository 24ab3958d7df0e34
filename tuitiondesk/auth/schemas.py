from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from tuitiondesk.core.enums import UserRole


class LoginRequest(BaseModel):
    username: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class UserInfo(BaseModel):
    id: UUID
    username: str
    role: UserRole
    full_name: str
    institute_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    has_accepted_terms: bool
    accepted_at: Optional[datetime] = None
    accepted_version: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserInfo
    issued_at: datetime


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class AcceptTermsRequest(BaseModel):
    version: str = Field(..., min_length=1, max_length=20)


class UpdateCredentialsRequest(BaseModel):
    current_password: str
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=4, max_length=72)


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for role checks."""

    id: UUID
    role: UserRole

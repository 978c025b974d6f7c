"""Write schemas for users and their sessions."""

from pydantic import EmailStr, Field
from typing import Optional
from datetime import datetime

from leadstore.models import Role
from leadstore.schemas.base import WriteModel


class UserCreate(WriteModel):
    """Create user payload."""
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password_hash: str = Field(..., min_length=1, max_length=255)
    is_active: Optional[bool] = None
    role: Optional[Role] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class UserUpdate(WriteModel):
    """Partial user update."""
    username: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    password_hash: Optional[str] = Field(default=None, min_length=1, max_length=255)
    is_active: Optional[bool] = None
    role: Optional[Role] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class UserSessionCreate(WriteModel):
    """Create session payload."""
    session_token: str = Field(..., min_length=1, max_length=512)
    ip_address: str = Field(..., max_length=64)
    user_agent: str
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    user_id: int


class UserSessionUpdate(WriteModel):
    """Partial session update (typically revocation)."""
    session_token: Optional[str] = Field(default=None, min_length=1, max_length=512)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = None
    expires_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    user_id: Optional[int] = None

"""Write schemas for contacts and lead sources."""

from pydantic import EmailStr, Field
from typing import Optional
from datetime import datetime

from leadstore.schemas.base import WriteModel


class ContactCreate(WriteModel):
    """Create contact payload."""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[EmailStr] = None
    phone: str = Field(..., min_length=7, max_length=20)
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ContactUpdate(WriteModel):
    """Partial contact update."""
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, min_length=7, max_length=20)
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SourceCreate(WriteModel):
    """Create lead source payload."""
    name: str = Field(..., min_length=1, max_length=100)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SourceUpdate(WriteModel):
    """Rename a lead source."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

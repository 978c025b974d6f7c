"""Write schemas for key/value application settings."""

from pydantic import Field
from typing import Any, Optional
from datetime import datetime

from leadstore.schemas.base import WriteModel


class AppSettingCreate(WriteModel):
    """Store a setting. ``value`` is any JSON document and is not inspected."""
    key: str = Field(..., min_length=1, max_length=100)
    value: Any
    updated_at: Optional[datetime] = None


class AppSettingUpdate(WriteModel):
    key: Optional[str] = Field(default=None, min_length=1, max_length=100)
    value: Optional[Any] = None
    updated_at: Optional[datetime] = None

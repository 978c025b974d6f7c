"""Write schemas for notifications."""

from pydantic import Field
from typing import Optional
from datetime import datetime

from leadstore.schemas.base import WriteModel


class NotificationCreate(WriteModel):
    """
    Create notification payload.

    ``assigned_to`` is an audience label ("all", a role name) and is not
    linked to ``user_id``.
    """
    type: str = Field(..., min_length=1, max_length=50)
    message: str = Field(..., min_length=1)
    read: Optional[bool] = None
    created_at: Optional[datetime] = None
    user_id: Optional[int] = None
    lead_id: Optional[int] = None
    priority: Optional[str] = Field(default=None, min_length=1, max_length=20)
    assigned_to: Optional[str] = Field(default=None, max_length=100)


class NotificationUpdate(WriteModel):
    type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    message: Optional[str] = Field(default=None, min_length=1)
    read: Optional[bool] = None
    created_at: Optional[datetime] = None
    user_id: Optional[int] = None
    lead_id: Optional[int] = None
    priority: Optional[str] = Field(default=None, min_length=1, max_length=20)
    assigned_to: Optional[str] = Field(default=None, max_length=100)

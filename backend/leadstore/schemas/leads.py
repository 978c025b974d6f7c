"""
Write schemas for leads and the records hanging off them (payments and
timeline activities).
"""

from pydantic import Field
from typing import Optional
from datetime import datetime

from leadstore.schemas.base import WriteModel


class LeadCreate(WriteModel):
    """Create lead payload. ``contact_id`` is mandatory."""
    title: Optional[str] = Field(default=None, max_length=200)
    quotation_amount: Optional[float] = Field(default=None, ge=0)
    client_budget: float = Field(..., ge=0)
    status: Optional[str] = Field(default=None, min_length=1, max_length=50)
    probability: Optional[int] = Field(default=None, ge=0, le=100)
    expected_close_date: Optional[datetime] = None
    notes: Optional[str] = None

    # Event / booking
    guests: Optional[int] = Field(default=None, ge=0)
    venue: Optional[str] = Field(default=None, max_length=200)
    event_type: Optional[str] = Field(default=None, max_length=100)
    event_date: Optional[datetime] = None
    final_amount: Optional[float] = Field(default=None, ge=0)
    advance_amount: Optional[float] = Field(default=None, ge=0)
    site_visit_date: Optional[datetime] = None
    site_visit_time: Optional[str] = Field(default=None, max_length=50)
    booking_notes: Optional[str] = None
    booked_at: Optional[datetime] = None
    booked_by: Optional[str] = Field(default=None, max_length=100)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    contact_id: int
    source_id: Optional[int] = None
    assigned_to: Optional[int] = None


class LeadUpdate(WriteModel):
    """Partial lead update."""
    title: Optional[str] = Field(default=None, max_length=200)
    quotation_amount: Optional[float] = Field(default=None, ge=0)
    client_budget: Optional[float] = Field(default=None, ge=0)
    status: Optional[str] = Field(default=None, min_length=1, max_length=50)
    probability: Optional[int] = Field(default=None, ge=0, le=100)
    expected_close_date: Optional[datetime] = None
    notes: Optional[str] = None

    guests: Optional[int] = Field(default=None, ge=0)
    venue: Optional[str] = Field(default=None, max_length=200)
    event_type: Optional[str] = Field(default=None, max_length=100)
    event_date: Optional[datetime] = None
    final_amount: Optional[float] = Field(default=None, ge=0)
    advance_amount: Optional[float] = Field(default=None, ge=0)
    site_visit_date: Optional[datetime] = None
    site_visit_time: Optional[str] = Field(default=None, max_length=50)
    booking_notes: Optional[str] = None
    booked_at: Optional[datetime] = None
    booked_by: Optional[str] = Field(default=None, max_length=100)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    contact_id: Optional[int] = None
    source_id: Optional[int] = None
    assigned_to: Optional[int] = None


class PaymentCreate(WriteModel):
    """Record a payment against a lead."""
    amount: float = Field(..., ge=0)
    date: datetime
    type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    notes: Optional[str] = None
    lead_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaymentUpdate(WriteModel):
    amount: Optional[float] = Field(default=None, ge=0)
    date: Optional[datetime] = None
    type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    notes: Optional[str] = None
    lead_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LeadActivityCreate(WriteModel):
    """Timeline entry (note, call log, stage change)."""
    lead_id: int
    user_id: Optional[int] = None
    type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    content: str = Field(..., min_length=1)
    created_at: Optional[datetime] = None


class LeadActivityUpdate(WriteModel):
    lead_id: Optional[int] = None
    user_id: Optional[int] = None
    type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    content: Optional[str] = Field(default=None, min_length=1)
    created_at: Optional[datetime] = None

"""
SQLAlchemy ORM models for the CRM data set.

Nine tables: users, sessions, contacts, leads, payments, lead_activities,
sources, notifications, app_settings.

Referential policy:
1. Required ownership FKs cascade (sessions, payments, lead activities)
2. Lead.contact_id restricts: a contact with leads cannot be deleted
3. Optional FKs are nulled when their parent goes away
"""

from sqlalchemy import (
    Column, String, Boolean, Integer, Float, Text, DateTime, JSON, ForeignKey, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum

from leadstore.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, stored the same way on every backend."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Convert an offset-aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Role(str, enum.Enum):
    ADMIN = "Admin"
    OWNER = "Owner"
    SALES = "Sales"
    FINANCE = "Finance"


# ============================================================================
# USERS & SESSIONS
# ============================================================================

class User(Base):
    """Staff account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    role = Column(
        SQLEnum(Role, name="user_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=Role.SALES,
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    last_login_at = Column(DateTime, nullable=True)

    # Relationships
    leads = relationship("Lead", back_populates="assignee", passive_deletes=True)
    lead_activities = relationship("LeadActivity", back_populates="user", passive_deletes=True)
    notifications = relationship("Notification", back_populates="user", passive_deletes=True)
    sessions = relationship("UserSession", back_populates="user", passive_deletes=True)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


class UserSession(Base):
    """Login session issued to a user."""
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_token = Column(String(512), nullable=False, unique=True)
    ip_address = Column(String(64), nullable=False)
    user_agent = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    user = relationship("User", back_populates="sessions")


# ============================================================================
# CONTACTS, SOURCES & LEADS
# ============================================================================

class Contact(Base):
    """Person a lead is raised for."""
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True, unique=True)
    phone = Column(String(20), nullable=False, unique=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    leads = relationship("Lead", back_populates="contact", passive_deletes=True)

    def __repr__(self):
        return f"<Contact(id={self.id}, first_name='{self.first_name}', phone='{self.phone}')>"


class Source(Base):
    """Where leads come from (walk-in, website, referral...)."""
    __tablename__ = "sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    leads = relationship("Lead", back_populates="source", passive_deletes=True)


class Lead(Base):
    """Sales opportunity for an event booking."""
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=True)
    quotation_amount = Column(Float, nullable=True)
    client_budget = Column(Float, nullable=False)
    status = Column(String(50), nullable=False, default="New")
    probability = Column(Integer, nullable=True)
    expected_close_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    # Event / booking
    guests = Column(Integer, nullable=True)
    venue = Column(String(200), nullable=True)
    event_type = Column(String(100), nullable=True)
    event_date = Column(DateTime, nullable=True)
    final_amount = Column(Float, nullable=True)
    advance_amount = Column(Float, nullable=True)
    site_visit_date = Column(DateTime, nullable=True)
    site_visit_time = Column(String(50), nullable=True)
    booking_notes = Column(Text, nullable=True)
    booked_at = Column(DateTime, nullable=True)
    booked_by = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    contact_id = Column(Integer, ForeignKey("contacts.id", ondelete="RESTRICT"), nullable=False, index=True)
    source_id = Column(Integer, ForeignKey("sources.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_to = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Relationships
    contact = relationship("Contact", back_populates="leads")
    source = relationship("Source", back_populates="leads")
    assignee = relationship("User", back_populates="leads")
    activities = relationship("LeadActivity", back_populates="lead", passive_deletes=True)
    notifications = relationship("Notification", back_populates="lead", passive_deletes=True)
    payments = relationship("Payment", back_populates="lead", passive_deletes=True)

    def __repr__(self):
        return f"<Lead(id={self.id}, title='{self.title}', status='{self.status}')>"


class Payment(Base):
    """Money received against a lead."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    amount = Column(Float, nullable=False)
    date = Column(DateTime, nullable=False)
    type = Column(String(50), nullable=False, default="advance")
    notes = Column(Text, nullable=True)
    lead_id = Column(Integer, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    lead = relationship("Lead", back_populates="payments")


class LeadActivity(Base):
    """Timeline entry on a lead (note, call, stage change...)."""
    __tablename__ = "lead_activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    type = Column(String(50), nullable=False, default="NOTE")
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    lead = relationship("Lead", back_populates="activities")
    user = relationship("User", back_populates="lead_activities")


# ============================================================================
# NOTIFICATIONS & SETTINGS
# ============================================================================

class Notification(Base):
    """
    In-app notification.

    ``assigned_to`` is an audience string ("all", a role name...) and is
    independent of the ``user_id`` foreign key.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id", ondelete="SET NULL"), nullable=True, index=True)
    priority = Column(String(20), nullable=False, default="normal")
    assigned_to = Column(String(100), nullable=True)

    user = relationship("User", back_populates="notifications")
    lead = relationship("Lead", back_populates="notifications")


class AppSetting(Base):
    """Key/value application setting. ``value`` is an opaque JSON document."""
    __tablename__ = "app_settings"

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

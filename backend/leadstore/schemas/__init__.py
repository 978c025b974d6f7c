"""
Pydantic write schemas, one ``Create``/``Update`` pair per delegate.

The delegates validate every write payload against these before touching
the session; reads are not validated here.
"""

from leadstore.schemas.users import (
    UserCreate, UserUpdate, UserSessionCreate, UserSessionUpdate
)
from leadstore.schemas.contacts import (
    ContactCreate, ContactUpdate, SourceCreate, SourceUpdate
)
from leadstore.schemas.leads import (
    LeadCreate, LeadUpdate,
    PaymentCreate, PaymentUpdate,
    LeadActivityCreate, LeadActivityUpdate,
)
from leadstore.schemas.notifications import NotificationCreate, NotificationUpdate
from leadstore.schemas.settings import AppSettingCreate, AppSettingUpdate


WRITE_SCHEMAS = {
    "user": (UserCreate, UserUpdate),
    "sessions": (UserSessionCreate, UserSessionUpdate),
    "contact": (ContactCreate, ContactUpdate),
    "lead": (LeadCreate, LeadUpdate),
    "payment": (PaymentCreate, PaymentUpdate),
    "lead_activity": (LeadActivityCreate, LeadActivityUpdate),
    "sources": (SourceCreate, SourceUpdate),
    "notification": (NotificationCreate, NotificationUpdate),
    "app_setting": (AppSettingCreate, AppSettingUpdate),
}


def get_write_schemas(name: str):
    """Return the ``(Create, Update)`` pair for a delegate name."""
    try:
        return WRITE_SCHEMAS[name]
    except KeyError:
        raise ValueError(f"No write schemas registered for '{name}'")


__all__ = [
    "WRITE_SCHEMAS",
    "get_write_schemas",
    "UserCreate", "UserUpdate", "UserSessionCreate", "UserSessionUpdate",
    "ContactCreate", "ContactUpdate", "SourceCreate", "SourceUpdate",
    "LeadCreate", "LeadUpdate", "PaymentCreate", "PaymentUpdate",
    "LeadActivityCreate", "LeadActivityUpdate",
    "NotificationCreate", "NotificationUpdate",
    "AppSettingCreate", "AppSettingUpdate",
]

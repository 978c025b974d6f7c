"""Shared base for write payload schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from leadstore.models import as_naive_utc


class WriteModel(BaseModel):
    """Base write payload: unknown keys are rejected, enums are kept as members."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=False)

    @field_validator("*", mode="after")
    @classmethod
    def normalize_datetimes(cls, value):
        # Columns hold naive UTC
        if isinstance(value, datetime):
            return as_naive_utc(value)
        return value

"""Account-related DTOs shared across services."""

from __future__ import annotations

from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _assume_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Account(BaseModel):
    """Wire representation of an identifier-to-profile binding."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    profile_id: str = Field(default="", alias="profileID")
    is_registration: bool = Field(default=False, alias="isRegistration")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    last_seen_at: datetime | None = Field(default=None, alias="lastSeenAt")
    last_used_at: datetime | None = Field(default=None, alias="lastUsedAt")

    @field_validator("created_at", "last_seen_at", "last_used_at")
    @classmethod
    def timestamps_in_utc(cls, value: datetime | None) -> datetime | None:
        return _assume_utc(value)


class Change(BaseModel):
    """Wire representation of a sparse update to an account's timestamps."""

    model_config = ConfigDict(populate_by_name=True)

    last_seen_at: datetime | None = Field(default=None, alias="lastSeenAt")
    last_used_at: datetime | None = Field(default=None, alias="lastUsedAt")

    @field_validator("last_seen_at", "last_used_at")
    @classmethod
    def timestamps_in_utc(cls, value: datetime | None) -> datetime | None:
        return _assume_utc(value)


class AccountsEnvelope(BaseModel):
    """Response body wrapping every account returned by the API."""

    accounts: list[Account] = Field(default_factory=list)

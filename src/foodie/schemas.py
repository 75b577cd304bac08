"""Shared pydantic base models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset on round trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


class CamelModel(BaseModel):
    """Wire models use camelCase keys and accept snake_case on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserSummary(CamelModel):
    id: int
    display_name: str | None = None
    avatar_url: str | None = None

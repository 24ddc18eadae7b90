"""Shared columns for the session tables."""

from datetime import datetime, timezone
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware_timestamp(**column_kwargs) -> datetime:
    field_kwargs = {"sa_column_kwargs": column_kwargs} if column_kwargs else {}
    return Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
        **field_kwargs,
    )


class TimestampMixin(SQLModel):
    created_at: datetime = _aware_timestamp()
    updated_at: datetime = _aware_timestamp(onupdate=utcnow)


class UUIDMixin(SQLModel):
    # Profiles reuse the identity provider's subject id; other rows mint their own
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

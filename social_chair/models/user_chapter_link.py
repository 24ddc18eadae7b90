"""User-Chapter membership (join table carrying the role)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class UserChapterLink(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "user_chapter_links"

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    chapter_id: uuid.UUID = Field(foreign_key="chapters.id", nullable=False)
    role_id: Optional[uuid.UUID] = Field(default=None, foreign_key="roles.id")
    is_primary: bool = Field(default=False, nullable=False)
    is_active: bool = Field(default=True, nullable=False)
    joined_at: datetime = Field(
        default_factory=utcnow, nullable=False, sa_type=sa.DateTime(timezone=True)
    )
    left_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))

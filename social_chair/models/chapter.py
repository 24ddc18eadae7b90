"""Chapter model."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Chapter(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "chapters"
    __table_args__ = (
        sa.UniqueConstraint(
            "school_name", "organization_name", "chapter_code", name="uq_chapters_natural_key"
        ),
    )

    school_name: str = Field(nullable=False, index=True)
    organization_name: str = Field(nullable=False)
    chapter_code: str = Field(nullable=False)
    location: Optional[str] = None
    is_active: bool = Field(default=True, nullable=False)

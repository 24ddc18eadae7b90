"""Role model. Role names are a closed set seeded by the backend."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Role(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "roles"

    name: str = Field(unique=True, nullable=False, index=True)
    description: Optional[str] = None
    permissions: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
    is_active: bool = Field(default=True, nullable=False)

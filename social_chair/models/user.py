"""User profile model. Keyed by the identity provider's subject id."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from social_chair.schemas.common import Tier, UserStatus

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    first_name: str = Field(default="", nullable=False)
    last_name: str = Field(default="", nullable=False)
    email: str = Field(unique=True, index=True, nullable=False)
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    tier: str = Field(default=Tier.FREE.value, nullable=False)
    status: str = Field(default=UserStatus.ACTIVE.value, nullable=False)
    last_login: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))

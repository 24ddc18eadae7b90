"""
Identity provider payloads and sign-in/sign-up request/result schemas.
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

# Keys under which sign-up details travel in the identity's metadata
METADATA_FIELDS = (
    "first_name",
    "last_name",
    "school_name",
    "organization_name",
    "chapter_code",
    "role_name",
)


# ---------------------------------------------------------------------------
# Identity provider payloads
# ---------------------------------------------------------------------------

class AuthUser(BaseModel):
    """An identity issued by the identity provider."""

    model_config = ConfigDict(extra="ignore")

    id: uuid.UUID
    email: Optional[str] = None
    email_confirmed_at: Optional[datetime] = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_confirmed(self) -> bool:
        return self.email_confirmed_at is not None


class AuthSession(BaseModel):
    """A session credential. Never persisted by the application itself."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    expires_at: Optional[int] = None
    user: AuthUser

    @model_validator(mode="after")
    def _fill_expires_at(self) -> "AuthSession":
        if self.expires_at is None and self.expires_in is not None:
            self.expires_at = int(time.time()) + self.expires_in
        return self

    def is_expired(self, leeway: int = 10) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= time.time() + leeway


class SignUpResponse(BaseModel):
    """Provider answer to a sign-up: no session means confirmation is pending."""
    user: Optional[AuthUser] = None
    session: Optional[AuthSession] = None


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class ProfileDetails(BaseModel):
    """Everything provisioning needs to create a profile and its membership."""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    school_name: str = ""
    organization_name: str = ""
    chapter_code: str = ""
    role_name: str = "Social Chair"

    @classmethod
    def from_identity(cls, user: AuthUser, default_role_name: str = "Social Chair") -> "ProfileDetails":
        """Rebuild sign-up details from identity metadata; missing values become ""."""
        meta = user.user_metadata or {}
        values = {field: str(meta.get(field) or "") for field in METADATA_FIELDS}
        # Older sign-up forms stored the organization as fraternity_name
        values["organization_name"] = values["organization_name"] or str(meta.get("fraternity_name") or "")
        values["role_name"] = values["role_name"] or default_role_name
        return cls(email=user.email or "", **values)


class SignUpData(ProfileDetails):
    email: EmailStr
    password: str = Field(min_length=1)
    first_name: str = Field(min_length=1, max_length=200)
    last_name: str = Field(min_length=1, max_length=200)

    def to_metadata(self) -> dict[str, str]:
        return {field: getattr(self, field) for field in METADATA_FIELDS}

    def profile_details(self) -> ProfileDetails:
        return ProfileDetails.model_validate(self.model_dump(exclude={"password"}))


# ---------------------------------------------------------------------------
# Results (returned, never raised)
# ---------------------------------------------------------------------------

class SignUpResult(BaseModel):
    error: Optional[str] = None
    needs_confirmation: Optional[bool] = None


class SignInResult(BaseModel):
    error: Optional[str] = None

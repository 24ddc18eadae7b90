"""
In-memory identity provider for session bootstrap tests.

Behaves like the hosted provider: optional email confirmation, password
checks, session issuance and auth-state notifications.
"""

import secrets
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func
from sqlmodel import select

from social_chair.core.exceptions import ProviderError
from social_chair.schemas.auth import AuthSession, AuthUser, SignUpResponse
from social_chair.schemas.common import AuthEvent
from social_chair.services.identity import AuthEventEmitter


class FakeIdentityProvider(AuthEventEmitter):
    def __init__(self, require_confirmation: bool = False):
        super().__init__()
        self.require_confirmation = require_confirmation
        self.fail_with: Optional[str] = None
        self.fail_sign_out = False
        self._accounts: dict[str, tuple[str, AuthUser]] = {}
        self._session: Optional[AuthSession] = None

    def _issue(self, user: AuthUser) -> AuthSession:
        return AuthSession(
            access_token=secrets.token_urlsafe(16),
            refresh_token=secrets.token_urlsafe(16),
            expires_in=3600,
            user=user,
        )

    def _check_failure(self) -> None:
        if self.fail_with:
            raise ProviderError(self.fail_with, status_code=500)

    def confirm(self, email: str) -> AuthUser:
        password, user = self._accounts[email]
        user = user.model_copy(update={"email_confirmed_at": datetime.now(timezone.utc)})
        self._accounts[email] = (password, user)
        return user

    # --- IdentityProvider ---

    async def get_current_session(self) -> Optional[AuthSession]:
        self._check_failure()
        return self._session

    async def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> SignUpResponse:
        self._check_failure()
        if email in self._accounts:
            raise ProviderError("User already registered", status_code=422)

        user = AuthUser(
            id=uuid.uuid4(),
            email=email,
            email_confirmed_at=None if self.require_confirmation else datetime.now(timezone.utc),
            user_metadata=dict(metadata),
        )
        self._accounts[email] = (password, user)
        if self.require_confirmation:
            return SignUpResponse(user=user)

        self._session = self._issue(user)
        await self._notify(AuthEvent.SIGNED_IN, self._session)
        return SignUpResponse(user=user, session=self._session)

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        self._check_failure()
        account = self._accounts.get(email)
        if account is None or account[0] != password:
            raise ProviderError("Invalid login credentials", status_code=400)
        user = account[1]
        if not user.is_confirmed:
            raise ProviderError("Email not confirmed", status_code=400)

        self._session = self._issue(user)
        await self._notify(AuthEvent.SIGNED_IN, self._session)
        return self._session

    async def sign_out(self) -> None:
        if self.fail_sign_out:
            raise ProviderError("Identity provider unreachable")
        self._session = None
        await self._notify(AuthEvent.SIGNED_OUT, None)

    async def refresh(self) -> AuthSession:
        assert self._session
        self._session = self._issue(self._session.user)
        await self._notify(AuthEvent.TOKEN_REFRESHED, self._session)
        return self._session


async def count_rows(factory, model, *where) -> int:
    async with factory() as session:
        stmt = select(func.count()).select_from(model)
        if where:
            stmt = stmt.where(*where)
        result = await session.execute(stmt)
        return result.scalar_one()

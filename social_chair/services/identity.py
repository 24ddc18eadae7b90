"""
Identity provider client.

The session bootstrap talks to the hosted identity provider through the
``IdentityProvider`` protocol. ``GoTrueClient`` implements it against a
GoTrue-compatible auth REST API:

- Email/password sign-up (with optional email confirmation) and sign-in
- Session mirroring into a pluggable storage, with refresh on expiry
- Auth-state notifications (SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED)
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx
import structlog
from pydantic import ValidationError

from social_chair.core.exceptions import ProviderError
from social_chair.schemas.auth import AuthSession, AuthUser, SignUpResponse
from social_chair.schemas.common import AuthEvent

log = structlog.get_logger()

AuthStateCallback = Callable[[AuthEvent, Optional[AuthSession]], Awaitable[None]]

# Error body keys, most specific first
_ERROR_MESSAGE_KEYS = ("msg", "error_description", "message", "error")


class AuthSubscription:
    """Handle returned by ``on_auth_state_change``."""

    def __init__(self, subscribers: list[AuthStateCallback], callback: AuthStateCallback):
        self._subscribers = subscribers
        self._callback = callback

    def unsubscribe(self) -> None:
        if self._callback in self._subscribers:
            self._subscribers.remove(self._callback)


class IdentityProvider(Protocol):
    async def get_current_session(self) -> Optional[AuthSession]: ...

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession: ...

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, Any]
    ) -> SignUpResponse: ...

    async def sign_out(self) -> None: ...

    def on_auth_state_change(self, callback: AuthStateCallback) -> AuthSubscription: ...


class AuthEventEmitter:
    """Subscriber registry shared by provider implementations."""

    def __init__(self) -> None:
        self._subscribers: list[AuthStateCallback] = []

    def on_auth_state_change(self, callback: AuthStateCallback) -> AuthSubscription:
        self._subscribers.append(callback)
        return AuthSubscription(self._subscribers, callback)

    async def _notify(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        log.info(
            "auth.state_changed",
            auth_event=event.value,
            user_id=str(session.user.id) if session else None,
        )
        for callback in list(self._subscribers):
            try:
                await callback(event, session)
            except Exception:
                log.exception("auth.subscriber_error", auth_event=event.value)


# ---------------------------------------------------------------------------
# Session storage
# ---------------------------------------------------------------------------

class SessionStorage:
    async def load(self) -> Optional[AuthSession]:
        raise NotImplementedError

    async def save(self, session: AuthSession) -> None:
        raise NotImplementedError

    async def clear(self) -> None:
        raise NotImplementedError


class MemorySessionStorage(SessionStorage):
    def __init__(self) -> None:
        self._session: Optional[AuthSession] = None

    async def load(self) -> Optional[AuthSession]:
        return self._session

    async def save(self, session: AuthSession) -> None:
        self._session = session

    async def clear(self) -> None:
        self._session = None


class FileSessionStorage(SessionStorage):
    """Persists the session as JSON so it survives process restarts."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    async def load(self) -> Optional[AuthSession]:
        if not self._path.exists():
            return None
        try:
            return AuthSession.model_validate_json(self._path.read_text())
        except (ValidationError, ValueError):
            log.warning("session_storage.unreadable", path=str(self._path))
            return None

    async def save(self, session: AuthSession) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(session.model_dump_json())

    async def clear(self) -> None:
        self._path.unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# GoTrue client
# ---------------------------------------------------------------------------

def _error_from_response(resp: httpx.Response) -> ProviderError:
    try:
        body = resp.json()
    except (json.JSONDecodeError, ValueError):
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = next(
        (body[k] for k in _ERROR_MESSAGE_KEYS if isinstance(body.get(k), str) and body[k]),
        f"Identity provider returned HTTP {resp.status_code}",
    )
    code = body.get("error_code") or (body.get("error") if isinstance(body.get("error"), str) else None)
    return ProviderError(message, status_code=resp.status_code, code=code)


class GoTrueClient(AuthEventEmitter):
    """
    Async client for a GoTrue-compatible auth API.

    Call ``open()`` before use and ``close()`` on shutdown.
    """

    def __init__(
        self,
        auth_url: str,
        api_key: str,
        request_timeout: int = 30,
        storage: SessionStorage | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__()
        self._auth_url = auth_url.rstrip("/")
        self._api_key = api_key
        self._request_timeout = request_timeout
        self._storage = storage or MemorySessionStorage()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=f"{self._auth_url}/auth/v1",
            timeout=httpx.Timeout(self._request_timeout),
            headers={"apikey": self._api_key, "Authorization": f"Bearer {self._api_key}"},
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        access_token: str | None = None,
    ) -> dict[str, Any] | None:
        assert self._client, "GoTrueClient.open() was not called"
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
        try:
            resp = await self._client.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.HTTPError as exc:
            log.error("gotrue.unreachable", path=path, error=str(exc))
            raise ProviderError(f"Identity provider unreachable: {exc}")

        if resp.status_code >= 400:
            error = _error_from_response(resp)
            log.warning("gotrue.rejected", path=path, status=resp.status_code, error=error.message)
            raise error
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def _set_session(self, body: dict[str, Any] | None, event: AuthEvent) -> AuthSession:
        try:
            session = AuthSession.model_validate(body)
        except ValidationError:
            raise ProviderError("Identity provider returned an invalid session")
        await self._storage.save(session)
        await self._notify(event, session)
        return session

    # --- Session ---

    async def get_current_session(self) -> Optional[AuthSession]:
        """Return the stored session, refreshing it first when expired."""
        session = await self._storage.load()
        if session is None or not session.is_expired():
            return session

        if not session.refresh_token:
            await self._storage.clear()
            return None
        try:
            return await self.refresh_session(session.refresh_token)
        except ProviderError as exc:
            if exc.status_code is None:
                raise
            log.info("gotrue.refresh_rejected", error=exc.message)
            await self._storage.clear()
            return None

    async def refresh_session(self, refresh_token: str) -> AuthSession:
        body = await self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return await self._set_session(body, AuthEvent.TOKEN_REFRESHED)

    # --- Sign-in / sign-up / sign-out ---

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        body = await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return await self._set_session(body, AuthEvent.SIGNED_IN)

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, Any]
    ) -> SignUpResponse:
        """Register an identity. No session in the response means confirmation is pending."""
        body = await self._request(
            "POST",
            "/signup",
            json={"email": email, "password": password, "data": metadata},
        ) or {}

        if body.get("access_token"):
            session = await self._set_session(body, AuthEvent.SIGNED_IN)
            return SignUpResponse(user=session.user, session=session)

        user_body = body.get("user", body)
        if not isinstance(user_body, dict) or not user_body.get("id"):
            return SignUpResponse()
        return SignUpResponse(user=AuthUser.model_validate(user_body))

    async def sign_out(self) -> None:
        """Revoke the session server-side (best-effort) and drop it locally."""
        session = await self._storage.load()
        if session:
            try:
                await self._request("POST", "/logout", access_token=session.access_token)
            except ProviderError as exc:
                log.warning("gotrue.logout_failed", error=exc.message)
        await self._storage.clear()
        await self._notify(AuthEvent.SIGNED_OUT, None)

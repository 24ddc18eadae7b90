"""
Session bootstrap and identity resolution.

Single authority for "who is the current user, which chapter do they belong to
and what role do they hold". Every provider notification, the initial load and
explicit refreshes start a fresh resolution cycle:

    INITIALIZING -> RESOLVED_FULL | RESOLVED_PROFILE_ONLY | UNAUTHENTICATED | TIMED_OUT

Each cycle carries a generation number; only the newest cycle may publish its
result, so a slow cycle that was overtaken can never overwrite newer state.
Each fetch is bounded by ``fetch_timeout_seconds`` and the whole cycle by
``resolve_timeout_seconds``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from social_chair.core.config import Settings, get_settings
from social_chair.core.database import SessionFactory, session_scope
from social_chair.core.exceptions import ProviderError, ProvisioningError, RecordNotFound
from social_chair.models.chapter import Chapter
from social_chair.models.role import Role
from social_chair.models.user import User
from social_chair.models.user_chapter_link import UserChapterLink
from social_chair.schemas.auth import (
    AuthSession,
    AuthUser,
    ProfileDetails,
    SignInResult,
    SignUpData,
    SignUpResult,
)
from social_chair.schemas.common import AuthEvent
from social_chair.services import profiles
from social_chair.services.identity import AuthSubscription, IdentityProvider

log = structlog.get_logger()

T = TypeVar("T")

UNEXPECTED_ERROR = "An unexpected error occurred"
EMAIL_NOT_CONFIRMED = "Please check your email and click the confirmation link before signing in."
SERVICE_MISCONFIGURED = (
    "Authentication service configuration error. "
    "Please try again later or contact support."
)
_MISCONFIGURATION_MARKERS = (
    "OAuth authorization request does not exist",
    "Failed to fetch details for API authorization request",
)


def describe_provider_error(message: str) -> str:
    """Rewrite provider rejections into the text shown to users."""
    if "Email not confirmed" in message:
        return EMAIL_NOT_CONFIRMED
    if any(marker in message for marker in _MISCONFIGURATION_MARKERS):
        return SERVICE_MISCONFIGURED
    return message


# ---------------------------------------------------------------------------
# Observable state
# ---------------------------------------------------------------------------

class ResolutionStatus(str, Enum):
    INITIALIZING = "initializing"
    RESOLVED_FULL = "resolved_full"
    RESOLVED_PROFILE_ONLY = "resolved_profile_only"
    UNAUTHENTICATED = "unauthenticated"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ResolvedIdentity:
    """Immutable snapshot of the current identity. Rebuilt on every cycle."""
    status: ResolutionStatus = ResolutionStatus.INITIALIZING
    loading: bool = True
    session: Optional[AuthSession] = None
    profile: Optional[User] = None
    chapter: Optional[Chapter] = None
    role: Optional[Role] = None
    membership_link: Optional[UserChapterLink] = None
    error: Optional[str] = None

    @property
    def identity(self) -> Optional[AuthUser]:
        return self.session.user if self.session else None

    @property
    def is_authenticated(self) -> bool:
        return self.profile is not None

    @classmethod
    def initializing(cls, session: Optional[AuthSession] = None) -> "ResolvedIdentity":
        return cls(status=ResolutionStatus.INITIALIZING, loading=True, session=session)

    @classmethod
    def cleared(
        cls,
        status: ResolutionStatus = ResolutionStatus.UNAUTHENTICATED,
        session: Optional[AuthSession] = None,
        error: Optional[str] = None,
    ) -> "ResolvedIdentity":
        """Nothing resolved. The session is kept so a refresh can retry."""
        return cls(status=status, loading=False, session=session, error=error)

    def as_dict(self) -> dict[str, Any]:
        def dump(model):
            return model.model_dump(mode="json") if model is not None else None

        return {
            "status": self.status.value,
            "loading": self.loading,
            "identity": dump(self.identity),
            "profile": dump(self.profile),
            "chapter": dump(self.chapter),
            "role": dump(self.role),
            "membership_link": dump(self.membership_link),
            "error": self.error,
        }


Listener = Callable[[ResolvedIdentity], None]


class IdentityStore:
    """Holds the current ResolvedIdentity and notifies subscribers on change."""

    def __init__(self) -> None:
        self._snapshot = ResolvedIdentity()
        self._listeners: list[Listener] = []

    @property
    def snapshot(self) -> ResolvedIdentity:
        return self._snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, snapshot: ResolvedIdentity) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                log.exception("identity_store.listener_error")


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------

class SessionBootstrap:
    """
    Resolves and republishes the current identity.

    Lifecycle: ``start()`` at application start, ``close()`` at shutdown.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        session_factory: SessionFactory,
        settings: Settings | None = None,
        store: IdentityStore | None = None,
    ):
        self._provider = provider
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self.store = store or IdentityStore()
        self._generation = 0
        self._loading_session = False
        self._subscription: AuthSubscription | None = None

    @property
    def state(self) -> ResolvedIdentity:
        return self.store.snapshot

    async def start(self) -> ResolvedIdentity:
        """Subscribe to provider notifications and resolve the persisted session."""
        if self._subscription is None:
            self._subscription = self._provider.on_auth_state_change(self._on_auth_state_change)
        await self._run_cycle(AuthEvent.INITIAL_SESSION, None, load_session=True)
        return self.state

    def close(self) -> None:
        if self._subscription:
            self._subscription.unsubscribe()
            self._subscription = None
        # Anything still in flight is now stale
        self._generation += 1

    # --- Public operations ---

    async def sign_up(self, data: SignUpData) -> SignUpResult:
        """Register a new identity; provisions the profile unless confirmation is pending."""
        try:
            response = await self._provider.sign_up(data.email, data.password, data.to_metadata())
        except ProviderError as exc:
            return SignUpResult(error=describe_provider_error(exc.message))
        except Exception:
            log.exception("session.sign_up_failed", email=data.email)
            return SignUpResult(error=UNEXPECTED_ERROR)

        if response.user is None:
            return SignUpResult(error="Failed to create user")

        if response.session is None and not response.user.is_confirmed:
            log.info("session.sign_up_pending_confirmation", user_id=str(response.user.id))
            return SignUpResult(needs_confirmation=True)

        try:
            await self._fetch(self._provision(response.user, data.profile_details()))
        except ProvisioningError as exc:
            log.error("session.provisioning_failed", user_id=str(response.user.id), error=exc.message)
            return SignUpResult(error=exc.message)
        except Exception:
            log.exception("session.provisioning_failed", user_id=str(response.user.id))
            return SignUpResult(error=UNEXPECTED_ERROR)

        if response.session is not None:
            await self._run_cycle(None, response.session)
        return SignUpResult(needs_confirmation=False)

    async def sign_in(self, email: str, password: str) -> SignInResult:
        """Sign in; resolution runs off the provider's SIGNED_IN notification."""
        try:
            session = await self._provider.sign_in_with_password(email, password)
        except ProviderError as exc:
            return SignInResult(error=describe_provider_error(exc.message))
        except Exception:
            log.exception("session.sign_in_failed", email=email)
            return SignInResult(error=UNEXPECTED_ERROR)

        known = self.state.identity
        if self.state.profile is None and known is not None and known.id == session.user.id:
            log.info("session.profile_missing_after_sign_in", user_id=str(session.user.id))
        return SignInResult()

    async def sign_out(self) -> None:
        """Best-effort provider sign-out; local state is always cleared."""
        try:
            await self._provider.sign_out()
        except Exception:
            log.warning("session.sign_out_failed", exc_info=True)
        self._generation += 1
        self.store.publish(ResolvedIdentity.cleared())
        log.info("session.signed_out")

    async def refresh_user_data(self) -> None:
        """Re-resolve the currently known identity. No-op when nobody is signed in."""
        session = self.state.session
        if session is None:
            log.debug("session.refresh_skipped")
            return
        await self._run_cycle(None, session)

    # --- Resolution ---

    async def _on_auth_state_change(
        self, event: AuthEvent, session: Optional[AuthSession]
    ) -> None:
        if event == AuthEvent.TOKEN_REFRESHED and self._loading_session:
            # The cycle reading the stored session resolves the refreshed one itself
            log.debug("session.refresh_during_load_skipped")
            return
        await self._run_cycle(event, session)

    async def _run_cycle(
        self,
        event: Optional[AuthEvent],
        session: Optional[AuthSession],
        *,
        load_session: bool = False,
    ) -> None:
        self._generation += 1
        generation = self._generation
        self.store.publish(ResolvedIdentity.initializing(session))

        try:
            snapshot = await asyncio.wait_for(
                self._resolve(session, load_session=load_session),
                timeout=self._settings.resolve_timeout_seconds,
            )
        except asyncio.CancelledError:
            log.warning("session.cycle_cancelled", generation=generation)
            if generation == self._generation:
                self.store.publish(
                    ResolvedIdentity.cleared(
                        ResolutionStatus.TIMED_OUT, session, error="Resolution was cancelled"
                    )
                )
            raise
        except asyncio.TimeoutError:
            log.warning("session.timed_out", auth_event=event.value if event else None)
            snapshot = ResolvedIdentity.cleared(
                ResolutionStatus.TIMED_OUT, session, error="Timed out resolving the current user"
            )
        except Exception as exc:
            log.exception("session.resolve_failed", auth_event=event.value if event else None)
            snapshot = ResolvedIdentity.cleared(
                ResolutionStatus.UNAUTHENTICATED, session, error=str(exc) or UNEXPECTED_ERROR
            )

        if generation != self._generation:
            log.debug("session.stale_cycle_discarded", generation=generation, latest=self._generation)
            return

        self.store.publish(snapshot)
        log.info(
            "session.resolved",
            status=snapshot.status.value,
            user_id=str(snapshot.identity.id) if snapshot.identity else None,
        )

    async def _resolve(
        self, session: Optional[AuthSession], *, load_session: bool
    ) -> ResolvedIdentity:
        if load_session:
            self._loading_session = True
            try:
                session = await self._fetch(self._provider.get_current_session())
            finally:
                self._loading_session = False
        if session is None:
            return ResolvedIdentity.cleared()

        identity = session.user
        if identity.is_confirmed and not await self._fetch(self._read(profiles.profile_exists, identity.id)):
            details = ProfileDetails.from_identity(identity, self._settings.default_role_name)
            try:
                await self._fetch(self._provision(identity, details))
            except ProvisioningError as exc:
                log.error("session.provisioning_failed", user_id=str(identity.id), error=exc.message)

        try:
            profile = await self._fetch(self._read(profiles.get_profile, identity.id))
        except RecordNotFound as exc:
            log.warning("session.profile_not_found", user_id=str(identity.id))
            return ResolvedIdentity.cleared(ResolutionStatus.UNAUTHENTICATED, session, error=exc.message)

        try:
            membership = await self._fetch(self._read(profiles.get_primary_membership, identity.id))
        except RecordNotFound:
            return ResolvedIdentity(
                status=ResolutionStatus.RESOLVED_PROFILE_ONLY,
                loading=False,
                session=session,
                profile=profile,
            )

        return ResolvedIdentity(
            status=ResolutionStatus.RESOLVED_FULL,
            loading=False,
            session=session,
            profile=profile,
            chapter=membership.chapter,
            role=membership.role,
            membership_link=membership.link,
        )

    async def _fetch(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._settings.fetch_timeout_seconds)

    async def _read(self, query: Callable[..., Awaitable[T]], *args: Any) -> T:
        async with self._session_factory() as db:
            return await query(*args, db)

    async def _provision(self, identity: AuthUser, details: ProfileDetails) -> User:
        async with session_scope(self._session_factory) as db:
            return await profiles.provision_profile(
                identity.id, details, db, tier=self._settings.default_tier
            )

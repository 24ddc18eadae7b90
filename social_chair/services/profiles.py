"""
Profile service: the persistence reads the session bootstrap depends on,
plus profile provisioning for first-time identities.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog
from sqlalchemy.exc import IntegrityError, MultipleResultsFound, NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from social_chair.core.exceptions import PersistenceError, ProvisioningError, RecordNotFound
from social_chair.models.chapter import Chapter
from social_chair.models.role import Role
from social_chair.models.user import User
from social_chair.models.user_chapter_link import UserChapterLink
from social_chair.schemas.auth import ProfileDetails
from social_chair.schemas.common import Tier

log = structlog.get_logger()


@dataclass(frozen=True)
class Membership:
    """A primary membership link with its chapter and (optional) role."""
    link: UserChapterLink
    chapter: Chapter
    role: Optional[Role]


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_profile(user_id: uuid.UUID, session: AsyncSession) -> User:
    """Fetch the profile keyed by the identity's subject id."""
    result = await session.execute(select(User).where(User.id == user_id))
    try:
        return result.scalar_one()
    except NoResultFound:
        raise RecordNotFound(f"No profile for user {user_id}")


async def profile_exists(user_id: uuid.UUID, session: AsyncSession) -> bool:
    result = await session.execute(select(User.id).where(User.id == user_id))
    return result.scalar_one_or_none() is not None


async def get_primary_membership(user_id: uuid.UUID, session: AsyncSession) -> Membership:
    """Fetch the active, primary membership link joined with chapter and role.

    Zero rows raises RecordNotFound; more than one is a data error.
    """
    result = await session.execute(
        select(UserChapterLink, Chapter, Role)
        .join(Chapter, Chapter.id == UserChapterLink.chapter_id)
        .outerjoin(Role, Role.id == UserChapterLink.role_id)
        .where(
            UserChapterLink.user_id == user_id,
            UserChapterLink.is_active == True,  # noqa: E712
            UserChapterLink.is_primary == True,  # noqa: E712
        )
    )
    try:
        link, chapter, role = result.one()
    except NoResultFound:
        raise RecordNotFound(f"No primary membership for user {user_id}")
    except MultipleResultsFound:
        raise PersistenceError(f"Multiple primary memberships for user {user_id}")
    return Membership(link=link, chapter=chapter, role=role)


async def get_role_by_name(name: str, session: AsyncSession) -> Role:
    result = await session.execute(select(Role).where(Role.name == name))
    role = result.scalar_one_or_none()
    if not role:
        raise RecordNotFound(f"Role '{name}' not found")
    return role


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def find_or_create_chapter(
    school_name: str,
    organization_name: str,
    chapter_code: str,
    session: AsyncSession,
) -> Chapter:
    """Look a chapter up by its natural key, inserting it when absent."""
    result = await session.execute(
        select(Chapter).where(
            Chapter.school_name == school_name,
            Chapter.organization_name == organization_name,
            Chapter.chapter_code == chapter_code,
        )
    )
    chapter = result.scalar_one_or_none()
    if chapter:
        return chapter

    chapter = Chapter(
        school_name=school_name,
        organization_name=organization_name,
        chapter_code=chapter_code,
    )
    session.add(chapter)
    await session.flush()
    log.info("chapter.created", chapter_id=str(chapter.id), school=school_name, code=chapter_code)
    return chapter


async def provision_profile(
    user_id: uuid.UUID,
    details: ProfileDetails,
    session: AsyncSession,
    *,
    tier: str = Tier.FREE.value,
) -> User:
    """Create profile, chapter (if needed) and primary membership link.

    Must run inside a single transaction (see ``session_scope``): raising
    ProvisioningError rolls back every row written here. Returns the existing
    profile untouched when one is already present.
    """
    existing = await session.get(User, user_id)
    if existing:
        log.info("profile.already_provisioned", user_id=str(user_id))
        return existing

    try:
        # 1. Profile
        user = User(
            id=user_id,
            first_name=details.first_name,
            last_name=details.last_name,
            email=details.email,
            tier=tier,
        )
        session.add(user)
        await session.flush()

        # 2. Chapter
        chapter = await find_or_create_chapter(
            details.school_name, details.organization_name, details.chapter_code, session
        )

        # 3. Role (closed set, never created here)
        try:
            role = await get_role_by_name(details.role_name, session)
        except RecordNotFound as exc:
            raise ProvisioningError(exc.message)

        # 4. Membership
        link = UserChapterLink(
            user_id=user.id,
            chapter_id=chapter.id,
            role_id=role.id,
            is_primary=True,
        )
        session.add(link)
        await session.flush()
    except IntegrityError as exc:
        raise ProvisioningError(f"Could not provision profile: {exc.orig}")

    log.info(
        "profile.provisioned",
        user_id=str(user_id),
        chapter_id=str(chapter.id),
        role=role.name,
    )
    return user


async def seed_roles(names: Iterable[str], session: AsyncSession) -> list[Role]:
    """Ensure the closed set of role names exists. Returns newly created roles."""
    created = []
    for name in names:
        result = await session.execute(select(Role).where(Role.name == name))
        if result.scalar_one_or_none():
            continue
        role = Role(name=name)
        session.add(role)
        created.append(role)
    await session.flush()
    if created:
        log.info("roles.seeded", roles=[r.name for r in created])
    return created

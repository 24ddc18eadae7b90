"""Tests for profile reads and provisioning."""

import uuid

import pytest

from social_chair.core.database import session_scope
from social_chair.core.exceptions import PersistenceError, ProvisioningError, RecordNotFound
from social_chair.models import Chapter, Role, User, UserChapterLink
from social_chair.schemas.auth import ProfileDetails
from social_chair.services import profiles

from .fakes import count_rows


def _details(**overrides) -> ProfileDetails:
    values = dict(
        first_name="Sam",
        last_name="Okafor",
        email="sam@tech.edu",
        school_name="Tech Institute",
        organization_name="Alpha Phi",
        chapter_code="Beta",
        role_name="Social Chair",
    )
    values.update(overrides)
    return ProfileDetails(**values)


async def test_get_profile_not_found(session_factory):
    async with session_factory() as session:
        with pytest.raises(RecordNotFound):
            await profiles.get_profile(uuid.uuid4(), session)


async def test_primary_membership_not_found(session_factory):
    async with session_factory() as session:
        with pytest.raises(RecordNotFound):
            await profiles.get_primary_membership(uuid.uuid4(), session)


async def test_get_role_by_name_unknown(session_factory):
    async with session_factory() as session:
        with pytest.raises(RecordNotFound, match="Role 'Treasurer' not found"):
            await profiles.get_role_by_name("Treasurer", session)


async def test_provision_creates_profile_chapter_and_link(session_factory):
    user_id = uuid.uuid4()
    async with session_scope(session_factory) as session:
        user = await profiles.provision_profile(user_id, _details(), session, tier="free")

    assert user.id == user_id
    async with session_factory() as session:
        assert await profiles.profile_exists(user_id, session)
        membership = await profiles.get_primary_membership(user_id, session)

    assert membership.chapter.school_name == "Tech Institute"
    assert membership.chapter.organization_name == "Alpha Phi"
    assert membership.chapter.chapter_code == "Beta"
    assert membership.role.name == "Social Chair"
    assert membership.link.is_primary is True
    assert membership.link.is_active is True


async def test_provision_is_idempotent(session_factory):
    user_id = uuid.uuid4()
    async with session_scope(session_factory) as session:
        await profiles.provision_profile(user_id, _details(), session)
    async with session_scope(session_factory) as session:
        again = await profiles.provision_profile(
            user_id, _details(first_name="Changed"), session
        )

    assert again.first_name == "Sam"
    assert await count_rows(session_factory, User) == 1
    assert await count_rows(session_factory, UserChapterLink) == 1


async def test_provision_reuses_chapter_by_natural_key(session_factory):
    async with session_scope(session_factory) as session:
        await profiles.provision_profile(uuid.uuid4(), _details(), session)
    async with session_scope(session_factory) as session:
        await profiles.provision_profile(
            uuid.uuid4(), _details(email="other@tech.edu"), session
        )

    assert await count_rows(session_factory, Chapter) == 1
    assert await count_rows(session_factory, UserChapterLink) == 2


async def test_provision_unknown_role_rolls_back(session_factory):
    user_id = uuid.uuid4()
    with pytest.raises(ProvisioningError, match="Role 'Grand Poobah' not found"):
        async with session_scope(session_factory) as session:
            await profiles.provision_profile(user_id, _details(role_name="Grand Poobah"), session)

    assert await count_rows(session_factory, User) == 0
    assert await count_rows(session_factory, Chapter) == 0
    assert await count_rows(session_factory, UserChapterLink) == 0


async def test_provision_duplicate_email_is_provisioning_error(session_factory):
    async with session_scope(session_factory) as session:
        await profiles.provision_profile(uuid.uuid4(), _details(), session)

    with pytest.raises(ProvisioningError):
        async with session_scope(session_factory) as session:
            await profiles.provision_profile(uuid.uuid4(), _details(), session)

    assert await count_rows(session_factory, User) == 1


async def test_multiple_primary_links_is_an_error(session_factory):
    user_id = uuid.uuid4()
    async with session_scope(session_factory) as session:
        await profiles.provision_profile(user_id, _details(), session)
        other = await profiles.find_or_create_chapter("Tech Institute", "Alpha Phi", "Gamma", session)
        session.add(UserChapterLink(user_id=user_id, chapter_id=other.id, is_primary=True))

    async with session_factory() as session:
        with pytest.raises(PersistenceError) as exc_info:
            await profiles.get_primary_membership(user_id, session)

    assert not isinstance(exc_info.value, RecordNotFound)


async def test_membership_without_role(session_factory):
    user_id = uuid.uuid4()
    async with session_scope(session_factory) as session:
        session.add(User(id=user_id, first_name="No", last_name="Role", email="norole@tech.edu"))
        await session.flush()
        chapter = await profiles.find_or_create_chapter("Tech Institute", "Alpha Phi", "Beta", session)
        session.add(UserChapterLink(user_id=user_id, chapter_id=chapter.id, is_primary=True))

    async with session_factory() as session:
        membership = await profiles.get_primary_membership(user_id, session)

    assert membership.role is None
    assert membership.chapter.chapter_code == "Beta"


async def test_seed_roles_only_creates_missing(session_factory):
    async with session_scope(session_factory) as session:
        created = await profiles.seed_roles(["Social Chair", "Treasurer"], session)

    assert [r.name for r in created] == ["Treasurer"]
    assert await count_rows(session_factory, Role) == 3

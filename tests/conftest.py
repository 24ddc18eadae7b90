"""
Shared fixtures: in-memory SQLite database with the role set seeded, a fake
identity provider, and a started SessionBootstrap.
"""

import pytest

from social_chair.core.config import Settings
from social_chair.core.database import create_engine, create_session_factory, init_db, session_scope
from social_chair.schemas.auth import SignUpData
from social_chair.services import profiles
from social_chair.services.session import SessionBootstrap

from .fakes import FakeIdentityProvider


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite+aiosqlite://",
        fetch_timeout_seconds=2.0,
        resolve_timeout_seconds=5.0,
    )


@pytest.fixture
async def engine(settings):
    engine = create_engine(settings.database_url, echo=False)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine, settings):
    factory = create_session_factory(engine)
    async with session_scope(factory) as session:
        await profiles.seed_roles(settings.seed_role_names, session)
    return factory


@pytest.fixture
def provider():
    return FakeIdentityProvider()


@pytest.fixture
async def bootstrap(provider, session_factory, settings):
    b = SessionBootstrap(provider, session_factory, settings)
    await b.start()
    yield b
    b.close()


@pytest.fixture
def sign_up_data():
    return SignUpData(
        first_name="Jordan",
        last_name="Reyes",
        email="jordan@stateu.edu",
        password="s3cret-pass",
        school_name="State University",
        organization_name="Sigma Chi",
        chapter_code="Rho Delta",
        role_name="Social Chair",
    )

"""Shared test fixtures for all test groups."""

import os
from typing import Any

import pytest
from fakeredis import FakeAsyncRedis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from sailsmart.agent.scorer_fake import ScorerFake
from sailsmart.core.auth import AuthUser
from sailsmart.core.config import get_settings
from sailsmart.db.base import Base
from sailsmart.db.models import (
    IdentityDocument,
    Journey,
    JourneyRequirement,
    Leg,
    Profile,
    Registration,
    RegistrationAnswer,
)
from sailsmart.services.notifications import NotificationOutbox


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are lru_cached; tests that monkeypatch env need a clean cache."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def database_url(tmp_path) -> str:
    """TEST_DATABASE_URL when set, otherwise a per-test SQLite file."""
    return os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path}/test.db"


@pytest.fixture
async def engine(database_url) -> AsyncEngine:
    """Create the test engine, (re)create all tables, and set the global session factory."""
    import sailsmart.db.base as db_mod
    import sailsmart.db.models  # noqa: F401

    engine = create_async_engine(database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    db_mod._engine = engine
    db_mod._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    db_mod._engine = None
    db_mod._session_factory = None
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def redis():
    """Provide fakeredis async client."""
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def outbox(redis) -> NotificationOutbox:
    return NotificationOutbox(redis)


@pytest.fixture
def scorer() -> ScorerFake:
    """ScorerFake with the all_satisfied scenario (default)."""
    return ScorerFake(scenario="all_satisfied")


@pytest.fixture
def owner_user() -> AuthUser:
    return AuthUser(user_id="owner-1", email="skipper@example.com", claims={"sub": "owner-1"})


@pytest.fixture
def crew_user() -> AuthUser:
    return AuthUser(user_id="crew-1", email="deckhand@example.com", claims={"sub": "crew-1"})


@pytest.fixture
def other_user() -> AuthUser:
    return AuthUser(user_id="stranger-1", email="stranger@example.com", claims={"sub": "stranger-1"})


class Seeder:
    """Inserts rows that live outside this service (profiles, journeys, legs, documents)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def add(self, obj):
        async with self.session_factory() as db:
            db.add(obj)
            await db.commit()
        return obj

    async def profile(self, user_id: str, **fields: Any) -> Profile:
        defaults = {
            "full_name": None,
            "roles": [],
            "risk_levels": [],
            "skills": [],
            "ai_processing_consent": False,
        }
        return await self.add(Profile(id=user_id, **{**defaults, **fields}))

    async def journey(self, owner_id: str, **fields: Any) -> Journey:
        defaults = {"name": "Canaries to Caribbean", "state": "Published", "skills": []}
        return await self.add(Journey(owner_id=owner_id, **{**defaults, **fields}))

    async def leg(self, journey_id: str, **fields: Any) -> Leg:
        defaults = {"name": "Leg 1", "skills": []}
        return await self.add(Leg(journey_id=journey_id, **{**defaults, **fields}))

    async def requirement(self, journey_id: str, requirement_type: str, **fields: Any) -> JourneyRequirement:
        return await self.add(JourneyRequirement(journey_id=journey_id, requirement_type=requirement_type, **fields))

    async def passport(self, user_id: str, **fields: Any) -> IdentityDocument:
        defaults = {"document_type": "passport", "is_verified": True}
        return await self.add(IdentityDocument(user_id=user_id, **{**defaults, **fields}))

    async def registration(
        self, leg_id: str, user_id: str, answers: dict[str, str] | None = None, **fields: Any
    ) -> Registration:
        registration = await self.add(Registration(leg_id=leg_id, user_id=user_id, **fields))
        for requirement_id, text in (answers or {}).items():
            await self.add(RegistrationAnswer(
                registration_id=registration.id, requirement_id=requirement_id, answer_text=text
            ))
        return registration

    async def get(self, model, pk):
        async with self.session_factory() as db:
            return await db.get(model, pk)


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)

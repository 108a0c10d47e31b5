"""Service test fixtures — async DB, graph store, fake providers, FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use the test DB session
    - db_manager patched for background tasks that bypass get_db
    - Identity and roster providers overridden with fakes (no network)

Design Decisions:
    - SQLite in-memory with StaticPool: every session shares the one connection
    - login() writes a real session cookie, so routes run the full authentication path
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from sqlalchemy.pool import StaticPool
from httpx import ASGITransport, AsyncClient

from rostergraph.api.dependencies import get_identity_provider, get_roster_provider
from rostergraph.config import get_settings
from rostergraph.core.domain_types import EdgeType, EntityKind, entity_key
from rostergraph.core.session_state import (
    Credentials, Identity, encode_session_cookie, new_session,
)
from rostergraph.db.base import Base
from rostergraph.infrastructure.database import get_db, DatabaseSessionManager
from rostergraph.infrastructure.graph_store import SqlGraphStore
import rostergraph.infrastructure.database as db_module
import rostergraph.models  # noqa: F401
from rostergraph.main import app

from tests.services.fakes import FakeIdentityProvider, FakeRosterProvider


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
        poolclass=StaticPool, connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def store(test_db):
    return SqlGraphStore(test_db)


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def roster_provider():
    return FakeRosterProvider()


@pytest.fixture
async def client(test_engine, test_session_factory, identity_provider, roster_provider):
    """FastAPI test client with DB and providers overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    app.dependency_overrides[get_roster_provider] = lambda: roster_provider

    # Patch db_manager for background tasks that use it directly
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager


@pytest.fixture
def login(client, identity_provider):
    """Put a valid session cookie for `user_id` on the client."""
    def _login(user_id: str, name: str | None = None, refresh_token: str | None = "refresh-1"):
        identity = Identity(id=user_id, email=f"{user_id}@school.org", name=name or user_id.upper())
        access = f"access-{user_id}"
        identity_provider.tokens[access] = identity
        now = datetime.now(timezone.utc)
        payload = new_session(
            Credentials(access_token=access, refresh_token=refresh_token,
                        expires_at=now.timestamp() + 3600),
            identity, now,
        )
        client.cookies.set(get_settings().session_cookie_name, encode_session_cookie(payload))
        return identity
    return _login


@pytest.fixture
def seed(store):
    """Seed helpers: courses, users and role edges straight into the store."""
    class _Seed:
        async def course(self, course_id: str, owner: str | None = None, name: str = "Course"):
            key = await store.upsert_entity(EntityKind.COURSE, course_id, {"name": name})
            if owner:
                await self.role(owner, course_id, EdgeType.IS_OWNER)
            return key

        async def user(self, user_id: str, name: str | None = None):
            return await store.upsert_entity(
                EntityKind.USER, user_id, {"name": name or user_id, "email": None, "photo_url": None},
            )

        async def role(self, user_id: str, course_id: str, edge_type: EdgeType):
            await self.user(user_id)
            await store.relate(
                entity_key(EntityKind.USER, user_id), edge_type,
                entity_key(EntityKind.COURSE, course_id),
            )

    return _Seed()

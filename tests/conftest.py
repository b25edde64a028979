"""
Pytest fixtures for ModelVault tests.
"""

import os

# Cheap hashing and a throwaway database before any settings are cached
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./modelvault-test.db")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from modelvault.config import Settings
from modelvault.database import build_engine, build_session_maker
from modelvault.kernel.artifacts import ArtifactService, BlobStore
from modelvault.kernel.elements import ElementService
from modelvault.kernel.hierarchy import ChainIds
from modelvault.kernel.identity.jwt import JWTManager
from modelvault.kernel.identity.password import PasswordHasher
from modelvault.kernel.identity.user_service import UserService
from modelvault.kernel.models import Base, User
from modelvault.kernel.permissions import PermissionLevel
from modelvault.kernel.resources import ResourceService
from modelvault.schemas.resource import OrgCreate, ProjectCreate


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a per-test SQLite file and blob root."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        artifact_root=str(tmp_path / "blobs"),
        storage_timeout_seconds=5.0,
        bcrypt_rounds=4,
        secret_key="test-secret-key-for-testing-only",
    )


@pytest_asyncio.fixture(scope="function")
async def db_engine(settings: Settings):
    """Create a test database engine."""
    engine = build_engine(settings.database_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with build_session_maker(db_engine)() as session:
        yield session
        await session.rollback()


@pytest.fixture
def blob_store(settings: Settings) -> BlobStore:
    return BlobStore.from_settings(settings)


@pytest.fixture
def artifact_service(db_session, blob_store, settings) -> ArtifactService:
    return ArtifactService(db_session, blob_store, settings)


@pytest.fixture
def resource_service(db_session, blob_store, settings) -> ResourceService:
    return ResourceService(db_session, blob_store, settings)


@pytest.fixture
def element_service(db_session, settings) -> ElementService:
    return ElementService(db_session, settings)


@pytest.fixture
def user_service(db_session, settings) -> UserService:
    return UserService(db_session, settings)


async def _add_user(session: AsyncSession, username: str, *, admin: bool = False) -> User:
    user = User(
        username=username,
        is_global_admin=admin,
        password_hash=PasswordHasher(rounds=4).hash("TestPassword123"),
    )
    session.add(user)
    await session.commit()
    return user


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    """A global admin."""
    return await _add_user(db_session, "root", admin=True)


@pytest_asyncio.fixture
async def alice(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "alice")


@pytest_asyncio.fixture
async def bob(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "bob")


@pytest_asyncio.fixture
async def hierarchy(resource_service: ResourceService, admin: User, alice: User):
    """
    Org ``acme`` with project ``rocket`` and its master branch.

    alice holds write on the org, so she inherits write on the project.
    """
    await resource_service.create_org(admin, OrgCreate(id="acme", name="Acme"))
    await resource_service.set_permission(admin, ChainIds("acme"), "alice", PermissionLevel.WRITE)
    await resource_service.create_project(admin, "acme", ProjectCreate(id="rocket", name="Rocket"))
    return ChainIds("acme", "rocket", "master")


@pytest.fixture
def jwt_manager(settings: Settings) -> JWTManager:
    """Create a JWT manager for tests."""
    return JWTManager(
        secret_key=settings.secret_key,
        algorithm="HS256",
        access_token_expire_minutes=30,
    )


@pytest.fixture
def auth_headers(jwt_manager: JWTManager):
    """Build bearer headers for a username."""
    def _headers(username: str) -> dict:
        token = jwt_manager.create_access_token(username).access_token
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest_asyncio.fixture
async def client(db_engine, blob_store, settings, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the per-test database and blob root."""
    from modelvault.api import deps
    from modelvault.kernel.identity import jwt as jwt_module
    from modelvault.main import app

    session_maker = build_session_maker(db_engine)

    async def _get_db():
        async with session_maker() as session:
            yield session

    monkeypatch.setattr(jwt_module, "_jwt_manager", JWTManager(secret_key=settings.secret_key))
    app.dependency_overrides[deps.get_db] = _get_db
    app.dependency_overrides[deps.get_blob_store] = lambda: blob_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

"""
Pytest fixtures for authorization core tests.
"""

from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.config import Settings
from src.database import build_engine, build_session_maker
from src.kernel.cache import PermissionCache, get_permission_cache
from src.kernel.identity.principal import AuthContext, Principal
from src.kernel.models.base import Base
from src.kernel.permissions.authorization_engine import AuthorizationEngine


@pytest.fixture
def database_url(tmp_path) -> str:
    """File-backed SQLite so separate sessions get separate connections."""
    return f"sqlite+aiosqlite:///{tmp_path / 'rbac_test.db'}"


@pytest.fixture
def settings(database_url: str) -> Settings:
    """Test settings: two guards for users, one for admins."""
    return Settings(
        _env_file=None,
        database_url=database_url,
        default_guard="web",
        guards={"web": "user", "api": "user", "admin": "admin"},
        tenant_scope_enabled=True,
        wildcard_enabled=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Create a test database engine with all RBAC tables."""
    engine = build_engine(database_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_maker(db_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def cache() -> PermissionCache:
    """A private cache so tests never share catalogs."""
    return PermissionCache()


@pytest.fixture(autouse=True)
def clear_global_cache():
    """The process-wide cache outlives each test database."""
    get_permission_cache().clear()
    yield
    get_permission_cache().clear()


@pytest.fixture
def alice() -> Principal:
    return Principal(type="user", id=1, tenant_id="acme")


@pytest.fixture
def bob() -> Principal:
    return Principal(type="user", id=2, tenant_id="acme")


@pytest.fixture
def mallory() -> Principal:
    """A user of another tenant."""
    return Principal(type="user", id=3, tenant_id="globex")


@pytest.fixture
def operator() -> Principal:
    """A principal authenticated only by the admin guard."""
    return Principal(type="admin", id=1, tenant_id="acme")


@pytest.fixture
def make_engine(settings: Settings, cache: PermissionCache) -> Callable[..., AuthorizationEngine]:
    """
    Factory for engines bound to a session and an acting principal.

    Keyword arguments override settings fields, e.g.
    ``make_engine(session, alice, wildcard_enabled=True)``.
    """

    def _make(session: AsyncSession, principal=None, **overrides) -> AuthorizationEngine:
        engine_settings = settings.model_copy(update=overrides) if overrides else settings
        return AuthorizationEngine(session, AuthContext(principal=principal), engine_settings, cache)

    return _make

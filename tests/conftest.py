"""
Test infrastructure for the blog content service.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- Each test gets its own ``Database`` handle with freshly created tables,
  and the app is built with ``create_app(database=..., cache_manager=...)``
  so request handlers use exactly the handles the test inspects.
- Redis is replaced by fakeredis' ``FakeAsyncRedis`` on a private
  ``FakeServer`` per test, so TTLs and key semantics match real Redis.
  A disconnected server raises ``ConnectionError`` on every call to
  exercise graceful degradation.
"""
import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from blog_service.cache import CacheManager, UserCache
from blog_service.database import Base, Database
from blog_service.main import create_app

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def database() -> Database:
    """A fresh in-memory database with all tables created."""
    db = Database.from_url(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await db.create_all()
    yield db
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database: Database) -> AsyncSession:
    """
    Yield a live AsyncSession for tests that call services directly or
    need to seed / assert ORM state.
    """
    async with database.session_factory() as session:
        yield session


@pytest.fixture
def fake_redis() -> fakeredis.FakeAsyncRedis:
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def cache_manager(fake_redis: fakeredis.FakeAsyncRedis) -> CacheManager:
    return CacheManager(client=fake_redis)


@pytest.fixture
def broken_cache() -> CacheManager:
    """A cache whose Redis client fails on every call."""
    server = fakeredis.FakeServer()
    server.connected = False
    return CacheManager(client=fakeredis.FakeAsyncRedis(server=server, decode_responses=True))


@pytest.fixture
def user_cache(cache_manager: CacheManager) -> UserCache:
    return UserCache(cache_manager, ttl=60 * 60 * 24)


@pytest.fixture
def sent_codes() -> list[tuple[str, str]]:
    """Verification codes handed to the test sender, as (email, code)."""
    return []


@pytest.fixture
def app(database: Database, cache_manager: CacheManager, sent_codes):
    async def record_code(email: str, code: str) -> bool:
        sent_codes.append((email, code))
        return True

    return create_app(database=database, cache_manager=cache_manager, code_sender=record_code)


@pytest_asyncio.fixture
async def async_client(app) -> AsyncClient:
    """httpx client wired to the app; keeps the session cookie between calls."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

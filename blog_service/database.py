import logging

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from blog_service.config import settings
from blog_service.errors import TRANSIENT_ERRORS, TransientStoreError
from blog_service.middleware import install_query_counter

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(url: str | None = None, **overrides) -> AsyncEngine:
    """
    Create an async engine with a bounded connection pool.

    At most ``DB_POOL_SIZE + DB_MAX_OVERFLOW`` statements are in flight;
    further callers wait up to ``DB_POOL_TIMEOUT`` seconds for a free
    connection and then fail with a pool timeout.  SQLite URLs keep their
    dialect default pool since it does not accept these arguments.
    """
    url = url or settings.DATABASE_URL
    options: dict = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
        )
    options.update(overrides)
    engine = create_async_engine(url, **options)
    install_query_counter(engine)
    return engine


class Database:
    """
    Process-wide store handle.  Constructed once in the application
    lifespan and passed to request handlers through ``app.state``.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(cls, url: str | None = None, **overrides) -> "Database":
        return cls(build_engine(url, **overrides))

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_db(request: Request):
    database: Database = request.app.state.db
    async with database.session_factory() as session:
        try:
            yield session
            await session.commit()
        except TRANSIENT_ERRORS as exc:
            await session.rollback()
            logger.warning("Store unavailable: %s", exc)
            raise TransientStoreError(str(exc)) from exc
        except Exception:
            await session.rollback()
            raise

"""Async SQLAlchemy engine and session factory.

One engine per process. Postgres (asyncpg) gets a sized connection pool;
SQLite (aiosqlite, used by the test suite) keeps SQLAlchemy's default
pool. Each request gets its own AsyncSession through get_db.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tcp_platform.config import settings


def engine_options(url: str) -> dict:
    options = {"echo": settings.debug, "pool_pre_ping": True}
    if make_url(url).get_backend_name() == "postgresql":
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

# expire_on_commit=False: handlers keep reading ORM objects after the
# service has committed.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency: one session per request, closed afterwards."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()

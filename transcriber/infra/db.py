"""
Database infrastructure configuration

SQLAlchemy async engine and session management.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from transcriber.core.config import settings


def _engine_kwargs(url: str) -> dict:
    kwargs = {"echo": settings.db_echo, "pool_pre_ping": True}
    # SQLite pools do not accept sizing arguments
    if not url.startswith("sqlite"):
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_max_overflow
    return kwargs


# Create async engine
engine = create_async_engine(settings.database_url, **_engine_kwargs(settings.database_url))

# Variable to override session in tests
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def close_db_connection():
    """Close database connection pool"""
    await engine.dispose()

"""
Database session management.

WHY: Async database sessions are required for FastAPI's async/await pattern.
One session per request is the unit of work: every lifecycle operation that
touches two entities (proposal + inquiry, payment + inquiry) commits or
rolls back as a whole.
"""

from typing import Any, AsyncGenerator, Dict
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from client_portal.core.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    """
    Pool options for the configured database.

    WHY: SQLite (local development, tests) has no server-side pool to size.
    """
    options: Dict[str, Any] = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=10, max_overflow=20)
    return options


engine = create_async_engine(
    settings.async_database_url,
    **_engine_options(settings.async_database_url),
)

# expire_on_commit=False prevents lazy-loading issues after commit
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get database session.

    WHY: Commit on success and roll back on any exception, so a failed
    two-entity transition leaves both entities as they were.

    Yields:
        AsyncSession: Database session for the request
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

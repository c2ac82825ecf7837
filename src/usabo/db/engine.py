"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.

SQLite (via aiosqlite) is the default embedded store. Pool sizing only
applies to server databases, so it is skipped for sqlite URLs.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from usabo.config import settings
from usabo.db.models import Base


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an engine with pool options suited to the backend."""
    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=echo,
            connect_args={"timeout": 30},
        )
    return create_async_engine(
        url,
        echo=echo,
        pool_size=5,
        max_overflow=15,
    )


# echo=True in debug to see SQL queries.
engine = build_engine(settings.database_url, echo=settings.debug)

# Session factory, one session per request.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_models(bind: AsyncEngine = engine) -> None:
    """Create missing tables. Idempotent; Alembic owns changes after that."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()

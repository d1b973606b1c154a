"""
Database configuration and session management
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from muattrans.config import get_settings

settings = get_settings()


def _get_async_url(url: str) -> str:
    """Convert database URL to async variant"""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://")
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///")
    return url


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """SQLite ignores FOREIGN KEY clauses unless switched on per connection"""

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Async engine for a sync-style URL; SQLite gets foreign keys, Postgres a sized pool"""
    async_url = _get_async_url(url)
    engine_kwargs = {"echo": echo, "future": True}

    # SQLite doesn't support pool_size
    if not async_url.startswith("sqlite"):
        engine_kwargs["pool_size"] = 20
        engine_kwargs["max_overflow"] = 10

    new_engine = create_async_engine(async_url, **engine_kwargs)
    if async_url.startswith("sqlite"):
        enable_sqlite_foreign_keys(new_engine)
    return new_engine


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Base class for models
Base = declarative_base()


async def get_db() -> AsyncSession:
    """Dependency for getting database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

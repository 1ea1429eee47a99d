"""
db/session.py — Database Connection & Session Management
=========================================================
Handles the async database connection using SQLAlchemy.
Called by main.py on startup via init_db().

All routes use get_db() as a FastAPI dependency to get a DB session.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from config import settings
import logging

logger = logging.getLogger("medchain.db")

# Convert standard postgres:// URL to async postgresql+asyncpg://
DATABASE_URL = settings.DATABASE_URL.replace(
    "postgresql://", "postgresql+asyncpg://"
)


def make_engine(url: str = DATABASE_URL) -> AsyncEngine:
    """Create an async engine. SQLite ignores pool sizing, so it is only passed elsewhere."""
    kwargs = {"echo": settings.DEBUG}   # logs all SQL in debug mode
    if not url.startswith("sqlite"):
        kwargs.update(pool_size=settings.DB_POOL_SIZE, max_overflow=settings.DB_MAX_OVERFLOW)
    return create_async_engine(url, **kwargs)


def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# Create async engine
engine = make_engine()

# Session factory
AsyncSessionLocal = make_sessionmaker(engine)


class Base(DeclarativeBase):
    """Base class all database models inherit from."""
    pass


async def init_db(bind: AsyncEngine = None):
    """Create all tables on startup if they don't exist."""
    from db.models import (  # noqa: F401 (import registers the tables)
        User, HistoryEntry, Permission, Prescription, Block, FileBlob
    )
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created / verified.")


async def get_db():
    """
    FastAPI dependency: yields a DB session per request.

    Usage in any route:
        from db.session import get_db
        from sqlalchemy.ext.asyncio import AsyncSession

        async def my_endpoint(db: AsyncSession = Depends(get_db)):
            ...

    Gateway functions commit their own unit of work; anything left
    pending when a request fails is rolled back here.
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

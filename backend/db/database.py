"""SQLAlchemy async database setup for the run history."""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.config import get_settings

settings = get_settings()


def create_db_engine(database_url: str = None):
    """Create and configure async SQLAlchemy engine.

    Returns:
        Async SQLAlchemy engine instance.
    """
    url = database_url or settings.DATABASE_URL
    kwargs = dict(echo=settings.SQLALCHEMY_ECHO)
    if not url.startswith("sqlite"):
        kwargs.update(pool_pre_ping=True, pool_recycle=1800)
    return create_async_engine(url, **kwargs)


def create_session_factory(engine):
    """Create async session factory.

    Args:
        engine: SQLAlchemy async engine instance.

    Returns:
        Async sessionmaker instance.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Global engine and session factory instances
engine = create_db_engine()
AsyncSessionLocal = create_session_factory(engine)


async def init_db(db_engine=None):
    """Create the run history tables. Called once at application startup."""
    from db.base import Base
    import db.models  # noqa: F401 — registers models

    async with (db_engine or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(db_engine=None):
    """Close database connections at application shutdown."""
    await (db_engine or engine).dispose()

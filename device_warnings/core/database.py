"""Database configuration and session management."""
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base
from .config import DATABASE_URL

Base = declarative_base()


def make_engine(url: str = DATABASE_URL):
    """Create the async engine for ``url``."""
    return create_async_engine(url)


def make_session_maker(bind) -> async_sessionmaker:
    """Session factory used by the engine, dispatcher and sweeper."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine()
async_session_maker = make_session_maker(engine)


async def create_db_and_tables(bind=None):
    """Create all database tables."""
    # Models register themselves on Base.metadata when imported
    from device_warnings import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

"""Async SQLAlchemy engine and session helpers."""
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.config import get_settings


settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def get_session_factory() -> async_sessionmaker:
    """Return the session factory for work that runs outside the request session."""
    return async_session_factory


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    One unit of work: commit if the block succeeds, roll back if it raises.

    Used for request sessions, background pruning and scheduled tasks alike.
    Services only flush; the commit happens here.

    Args:
        factory: Session factory to use. Defaults to the application's.
    """
    async with (factory or async_session_factory)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """
    Yield a request-scoped database session.

    Uses unit-of-work pattern: every version written during a request is
    committed together at request end, or not at all.
    """
    async with session_scope() as session:
        yield session

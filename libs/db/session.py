from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from libs.db.config import AsyncSessionLocal


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields an async database session.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def sibling_session_factory(db: AsyncSession) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the same engine as ``db``.

    Background work spawned from a request must not share the request's
    session; this gives it a fresh one against the same database.
    """
    return async_sessionmaker(
        bind=db.bind, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> AsyncIterator[AsyncSession]:
    """Session for worker jobs; always closed, never committed implicitly."""
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()

"""
Database session management for SQLAlchemy with async support

Only needed when overrides live in Postgres (OVERRIDE_BACKEND=postgres).
Override reads and upserts are single short statements, so the pool is
small and fixed: DATABASE_POOL_SIZE connections, no overflow.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def async_database_url(database_url: str) -> str:
    """postgresql:// -> postgresql+asyncpg://"""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


class DatabaseSessionManager:
    """Engine + session factory for the override table"""

    def __init__(self):
        self._engine = None
        self._sessionmaker = None
        self._init_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._sessionmaker is not None

    async def init(self, database_url: str, pool_size: int = 5, echo: bool = False):
        """Create the engine once; later calls are no-ops"""
        if self.initialized:
            return

        async with self._init_lock:  # Double-checked locking
            if self.initialized:
                return

            self._engine = create_async_engine(
                async_database_url(database_url),
                echo=echo,
                pool_size=pool_size,
                max_overflow=0,
                pool_pre_ping=True,
            )
            self._sessionmaker = async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

    async def close(self):
        """Dispose the engine (safe to call when never initialized)"""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on success and rolls back on error"""
        if not self.initialized:
            raise RuntimeError("DatabaseSessionManager not initialized")

        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


# Global session manager instance
sessionmanager = DatabaseSessionManager()

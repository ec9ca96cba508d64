"""
Database connection and session management.

Only used when plans are persisted with the database result store.
"""
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from polyplan.config import get_settings

settings = get_settings()

# Create async engine
# Using NullPool so each request gets its own connection
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    poolclass=NullPool,
)

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def check_db_connection() -> bool:
    """Check if database connection is healthy."""
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
            return True
    except Exception:
        return False


async def create_tables() -> None:
    """Create tables for all registered models."""
    from polyplan.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

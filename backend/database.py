# database.py - Async database setup
import os
import logging
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

logger = logging.getLogger("taskgrid.database")

# Database configuration
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite+aiosqlite:///./taskgrid.db"
)

_engine_options = {
    "echo": os.getenv("SQL_ECHO", "false").lower() == "true",
    "pool_pre_ping": True,
}
if not DATABASE_URL.startswith("sqlite"):
    # Connection pooling for server databases (postgresql+asyncpg)
    _engine_options.update(pool_size=20, max_overflow=0, pool_recycle=3600)

engine = create_async_engine(DATABASE_URL, **_engine_options)

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db_session():
    """Dependency for getting database session (FastAPI Depends)"""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Initialize database and create tables"""
    from models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized")


async def close_db():
    """Close database connection pool"""
    await engine.dispose()

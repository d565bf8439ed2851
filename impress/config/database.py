import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from impress.config.settings import settings

logger = logging.getLogger("uvicorn.error")


def make_engine(url: str = None) -> AsyncEngine:
    return create_async_engine(url or settings.database_url, echo=False, future=True)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


# Create async engine
engine = make_engine()

# Create session factory
AsyncSessionLocal = make_session_factory(engine)


# Dependency for FastAPI routes
async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


# Create tables and check the connection
async def init_db(bind: AsyncEngine = None) -> bool:
    from impress.infrastructure.database.models import Base

    bind = bind or engine
    try:
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection successful")
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from .config import settings

engine = create_async_engine(settings.DATABASE_URL)

# expire_on_commit=False keeps refreshed rows readable after the merge commits
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

Base = declarative_base()

async def get_db():
    """
    FastAPI dependency yielding one session per request.
    """
    async with AsyncSessionLocal() as session:
        yield session

async def init_db():
    """
    Create the countries table if it does not exist yet.
    """
    from . import models  # noqa: F401  registers Country on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

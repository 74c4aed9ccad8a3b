from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardtruth.config import get_settings
from cardtruth.models.base import Base

settings = get_settings()

# Stored layers hold statement values; SQL echo stays off outside development.
async_engine = create_async_engine(
    settings.database_url,
    echo=(settings.db_echo if settings.app_env.lower() == "development" else False),
    future=True,
)

AsyncSessionLocal = async_sessionmaker(
    async_engine, class_=AsyncSession, expire_on_commit=False
)


async def init_db() -> None:
    """Create the ``layer_records`` table if it does not exist."""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session

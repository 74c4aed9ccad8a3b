import sys
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.append(str(Path(__file__).parents[1] / "src"))

from cardtruth.config import Settings, get_settings
from cardtruth.db.session import get_db
from cardtruth.main import app
from cardtruth.models.base import Base
from cardtruth.repositories.layers import InMemoryKeyValueStore, TruthLayerRepository

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SAMPLE_STATEMENT = """CHASE SAPPHIRE PREFERRED
Account ending in 4321
Statement Period: 10/01/2024 - 10/31/2024

ACCOUNT SUMMARY
Previous Balance $1,500.00
Payments and Credits -$500.00
Purchases $1,074.43
Fees Charged $0.00
Interest Charged $0.00
New Balance $2,074.43
Minimum Payment Due $35.00
Payment Due Date 11/25/2024
Credit Limit $10,000.00
"""


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment."""
    return Settings(_env_file=None)


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def repository(store: InMemoryKeyValueStore) -> TruthLayerRepository:
    return TruthLayerRepository(store)


@pytest.fixture
def sample_statement_text() -> str:
    return SAMPLE_STATEMENT


@pytest.fixture(scope="function")
async def test_engine():
    """In-memory SQLite engine with the layer_records table created."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine):
    """Provide test database session with fresh connection per test."""
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(db_session: AsyncSession, settings: Settings):
    """Provide test client with database and settings overrides."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

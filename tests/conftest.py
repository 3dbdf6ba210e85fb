import pytest
import pytest_asyncio
from datetime import datetime, timezone
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from amc_engine.main import app
from amc_engine.database import Base, get_db
from amc_engine.api.deps import get_clock, get_customer_directory, get_user_directory
from amc_engine.services.amc.ports import FixedClock, StaticDirectory
from amc_engine.services.contract_store import ContractStore
from tests.factories import DEFAULT_CUSTOMER_ID, OTHER_CUSTOMER_ID

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
TECHNICIANS = ["tech-001", "tech-002"]


@pytest.fixture
def clock():
    """Clock pinned to the start of the 2025 contract year."""
    return FixedClock(NOW)


@pytest.fixture
def customers():
    return StaticDirectory([DEFAULT_CUSTOMER_ID, OTHER_CUSTOMER_ID])


@pytest.fixture
def users():
    return StaticDirectory(TECHNICIANS)


@pytest_asyncio.fixture
async def test_db():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def store(test_db: AsyncSession, clock, customers, users):
    return ContractStore(test_db, clock, customers, users)


@pytest_asyncio.fixture
async def client(test_db: AsyncSession, clock, customers, users):
    """Create test client with overridden database, clock and directories."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_customer_directory] = lambda: customers
    app.dependency_overrides[get_user_directory] = lambda: users

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

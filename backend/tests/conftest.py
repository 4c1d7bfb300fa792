"""Pytest configuration and shared fixtures for backend tests."""

import os
import sys

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Add parent directory to path for roomvision module discovery
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set test environment BEFORE importing roomvision modules
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("HIGGSFIELD_API_KEY", "")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")

from roomvision.core.database import Base
from roomvision.models.user import User
from roomvision.services.auth_service import AuthService


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine, fresh for every test.

    A file (not ``:memory:``) so that separate sessions see the same data.
    """
    db_path = tmp_path / "roomvision_test.db"
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory configured like the application's."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide a test database session."""
    async with session_factory() as session:
        yield session


async def _create_user(session_factory, user_id: str, email: str, credits: int) -> User:
    async with session_factory() as session:
        user = User(id=user_id, email=email, name="Test User", credits=credits)
        session.add(user)
        await session.commit()
        return user


@pytest_asyncio.fixture
async def test_user(session_factory) -> User:
    """A user with 3 credits."""
    return await _create_user(session_factory, "user_test_1", "test@example.com", 3)


@pytest_asyncio.fixture
async def broke_user(session_factory) -> User:
    """A user with no credits."""
    return await _create_user(session_factory, "user_broke", "broke@example.com", 0)


@pytest_asyncio.fixture
async def single_credit_user(session_factory) -> User:
    """A user with exactly one credit."""
    return await _create_user(session_factory, "user_single", "single@example.com", 1)


@pytest.fixture
def user_factory(session_factory):
    """Create users with arbitrary balances."""

    async def factory(user_id: str, credits: int = 0) -> User:
        return await _create_user(session_factory, user_id, f"{user_id}@example.com", credits)

    return factory


@pytest.fixture
def auth_headers():
    """Build bearer headers for a user."""

    def build(user: User) -> dict:
        token, _ = AuthService.create_access_token(user.id)
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture
def balance_of(session_factory):
    """Read a user's committed balance from a fresh session."""

    async def read(user_id: str) -> int:
        async with session_factory() as session:
            user = await session.get(User, user_id)
            return user.credits

    return read

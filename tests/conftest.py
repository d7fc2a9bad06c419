"""Pytest configuration and fixtures."""

import os

# Force testing environment before the application reads its settings
os.environ["TESTING"] = "true"

from typing import Dict, List  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import alert_engine.models  # noqa: E402,F401
from alert_engine.core.config import Settings  # noqa: E402
from alert_engine.core.database import Base, get_db  # noqa: E402
from alert_engine.core.principal import Principal  # noqa: E402
from alert_engine.core.security import create_access_token, get_password_hash  # noqa: E402
from alert_engine.main import create_application  # noqa: E402
from alert_engine.models.portfolio import Portfolio, PortfolioItem  # noqa: E402
from alert_engine.models.user import User  # noqa: E402
from alert_engine.models.windfarm import Windfarm  # noqa: E402
from tests.factories import FakeEmailService  # noqa: E402

# Use SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def test_settings() -> Settings:
    """Settings with instant retries and sequential evaluation."""
    return Settings(
        TESTING=True,
        ALERT_EVALUATION_CONCURRENCY=1,
        NOTIFICATION_MAX_ATTEMPTS=3,
        NOTIFICATION_RETRY_BASE_SECONDS=0.0,
        NOTIFICATION_RETRY_MAX_SECONDS=0.0,
    )


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test engine for each test function."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(test_session):
    """Async HTTP client with the database dependency overridden."""
    app = create_application()

    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def fake_email() -> FakeEmailService:
    return FakeEmailService()


async def _create_user(session: AsyncSession, username: str, email: str) -> User:
    user = User(
        email=email,
        username=username,
        hashed_password=get_password_hash("testpassword123"),
        first_name=username.title(),
        is_active=True,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(test_session) -> User:
    return await _create_user(test_session, "operator", "operator@example.com")


@pytest_asyncio.fixture
async def other_user(test_session) -> User:
    return await _create_user(test_session, "intruder", "intruder@example.com")


@pytest.fixture
def principal(test_user) -> Principal:
    return Principal.from_user(test_user)


@pytest.fixture
def auth_headers(test_user) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject=test_user.username)}"}


@pytest.fixture
def other_auth_headers(other_user) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject=other_user.username)}"}


@pytest_asyncio.fixture
async def windfarm(test_session) -> Windfarm:
    """Windfarm 42, the subject of most evaluation scenarios."""
    farm = Windfarm(id=42, code="WF42", name="Hornsea Two", status="operational", nameplate_capacity_mw=1320.0)
    test_session.add(farm)
    await test_session.commit()
    return farm


@pytest_asyncio.fixture
async def windfarms(test_session, windfarm) -> List[Windfarm]:
    """Windfarm 42 plus one operational, one without status and one decommissioned."""
    extra = [
        Windfarm(id=43, code="WF43", name="Walney Extension", status="operational"),
        Windfarm(id=44, code="WF44", name="Burbo Bank", status=None),
        Windfarm(id=45, code="WF45", name="Blyth Offshore", status="decommissioned"),
    ]
    test_session.add_all(extra)
    await test_session.commit()
    return [windfarm, *extra]


@pytest_asyncio.fixture
async def portfolio(test_session, test_user, windfarms) -> Portfolio:
    portfolio = Portfolio(user_id=test_user.id, name="North Sea")
    test_session.add(portfolio)
    await test_session.flush()
    test_session.add_all(
        [
            PortfolioItem(portfolio_id=portfolio.id, windfarm_id=42),
            PortfolioItem(portfolio_id=portfolio.id, windfarm_id=43),
        ]
    )
    await test_session.commit()
    return portfolio


from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.core.auth.jwt import create_access_token
from src.core.auth.models import UserRole
from src.core.database.base import Base
from src.core.database import get_db
from src.main import app
from src.modules.listings.models import CuisineType, DietaryType, Listing
from src.modules.listings.schemas import ListingCreate
from src.modules.listings.service import ListingService
from src.modules.vendors.service import VendorService
from src.shared.utils.time import utcnow

# In-memory SQLite; StaticPool keeps a single connection so the schema survives
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh database per test: create tables, dispose after."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Get test database session."""
    session_factory = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """File-backed database where each session gets its own connection.

    Used to run scans concurrently; SQLite serialises the writers.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Get test HTTP client with overridden database dependency."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[int, UserRole], dict[str, str]]:
    """Build an Authorization header for a principal, as the identity provider would."""

    def _headers(principal_id: int, role: UserRole) -> dict[str, str]:
        token = create_access_token(principal_id, role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers


def build_listing_payload(
    total_portions: int = 10,
    priority_requested: bool = False,
    best_before: datetime | None = None,
    **overrides,
) -> ListingCreate:
    data = {
        "title": "Nasi lemak",
        "description": "Lunch surplus",
        "location": "Blk 123 Hawker Centre",
        "cuisine": CuisineType.MALAY,
        "dietary_info": [DietaryType.HALAL],
        "total_portions": total_portions,
        "best_before": best_before or utcnow() + timedelta(hours=4),
        "priority_requested": priority_requested,
    }
    data.update(overrides)
    return ListingCreate(**data)


@pytest.fixture
def listing_payload() -> Callable[..., ListingCreate]:
    return build_listing_payload


@pytest.fixture
def make_listing(
    db_session: AsyncSession,
) -> Callable[..., Awaitable[Listing]]:
    """Create an active listing for a vendor through ListingService."""

    async def _make(
        vendor_id: int = 100,
        total_portions: int = 10,
        priority_requested: bool = False,
        now: datetime | None = None,
        **overrides,
    ) -> Listing:
        now = now or utcnow()
        best_before = overrides.pop("best_before", now + timedelta(hours=4))
        payload = build_listing_payload(
            total_portions=total_portions,
            priority_requested=priority_requested,
            best_before=best_before,
            **overrides,
        )
        return await ListingService(db_session).create_listing(vendor_id, payload, now=now)

    return _make


@pytest.fixture
def vendor_qr(db_session: AsyncSession) -> Callable[[int], Awaitable[str]]:
    """Issue (or fetch) a vendor's QR code."""

    async def _qr(vendor_id: int = 100) -> str:
        qr = await VendorService(db_session).get_or_create_qr_code(vendor_id)
        return qr.qr_code

    return _qr

"""Test configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")

from datetime import timedelta  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from reservation_engine.core.clock import utcnow  # noqa: E402
from reservation_engine.core.database import Base  # noqa: E402
from reservation_engine.models import DepartureResource, DepartureStatus, ResourceType  # noqa: E402
from reservation_engine.schemas.departure import (  # noqa: E402
    CreateDepartureRequest,
    DepartureOut,
    DepartureResourceInput,
    UpdateDepartureRequest,
)
from reservation_engine.services.catalog import CatalogItem, StaticCatalogGateway  # noqa: E402
from reservation_engine.services.departure_service import DepartureService  # noqa: E402
from reservation_engine.workers.expiry_scheduler import ExpiryScheduler  # noqa: E402

TENANT_ID = "tenant-a"
OTHER_TENANT_ID = "tenant-b"


class RecordingScheduler(ExpiryScheduler):
    """Scheduler that records calls instead of running jobs."""

    def __init__(self):
        self.scheduled: list[tuple[timedelta, str, str]] = []
        self.cancelled: list[str] = []

    async def schedule(self, delay: timedelta, booking_id: str, tenant_id: str) -> str:
        self.scheduled.append((delay, booking_id, tenant_id))
        return f"job-{len(self.scheduled)}"

    async def cancel(self, job_id: str) -> None:
        self.cancelled.append(job_id)


class FailingScheduler(ExpiryScheduler):
    """Scheduler whose backend is unavailable."""

    async def schedule(self, delay: timedelta, booking_id: str, tenant_id: str) -> str:
        raise RuntimeError("expiry queue unavailable")

    async def cancel(self, job_id: str) -> None:
        raise RuntimeError("expiry queue unavailable")


def build_catalog() -> StaticCatalogGateway:
    return StaticCatalogGateway({
        "BOAT-001": CatalogItem("BOAT-001", found=True, bookable=True),
        "BOAT-DRAFT": CatalogItem("BOAT-DRAFT", found=True, bookable=False),
        "CABIN-INT": CatalogItem("CABIN-INT", found=True, list_price=80000, currency="EUR"),
        "CABIN-BAL": CatalogItem("CABIN-BAL", found=True, list_price=200000, currency="EUR"),
        "CABIN-USD": CatalogItem("CABIN-USD", found=True, list_price=50000, currency="USD"),
        "DECK-FREE": CatalogItem("DECK-FREE", found=True),
    })


def build_departure_request(**overrides) -> CreateDepartureRequest:
    """Boat departure with an interior cabin pool (5) and a balcony pool (2, price override)."""
    data = {
        "product_entity_code": "BOAT-001",
        "label": "Spring cruise",
        "starts_at": utcnow() + timedelta(days=30),
        "ends_at": utcnow() + timedelta(days=37),
        "hold_ttl_ms": 15 * 60 * 1000,
        "resources": [
            DepartureResourceInput(
                resource_type=ResourceType.CABIN,
                child_entity_code="CABIN-INT",
                total_capacity=5,
            ),
            DepartureResourceInput(
                resource_type=ResourceType.CABIN,
                child_entity_code="CABIN-BAL",
                total_capacity=2,
                price_override=250000,
            ),
        ],
    }
    data.update(overrides)
    return CreateDepartureRequest(**data)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a file-backed test database so each session gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'reservations.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def catalog():
    return build_catalog()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def failing_scheduler():
    return FailingScheduler()


@pytest.fixture
def departure_request():
    return build_departure_request


@pytest.fixture
def make_departure(test_session, catalog):
    """Create a departure and optionally open it for booking."""

    async def _make(
        active: bool = True,
        tenant_id: str = TENANT_ID,
        session: Optional[AsyncSession] = None,
        **overrides,
    ):
        service = DepartureService(session or test_session, tenant_id, catalog)
        departure = await service.create_departure(build_departure_request(**overrides))
        if active:
            departure = await service.update_departure(
                departure.departure_id, UpdateDepartureRequest(status=DepartureStatus.ACTIVE)
            )
        return DepartureOut.model_validate(departure)

    return _make


@pytest.fixture
def ledger(test_session):
    """Load resource counters and check that every pool still balances."""

    async def _ledger(departure_id: str, session: Optional[AsyncSession] = None) -> dict[str, DepartureResource]:
        result = await (session or test_session).execute(
            select(DepartureResource)
            .where(DepartureResource.departure_id == departure_id)
            .execution_options(populate_existing=True)
        )
        resources = {r.resource_id: r for r in result.scalars()}
        for resource in resources.values():
            assert min(resource.available, resource.held, resource.booked) >= 0, resource
            assert resource.is_balanced, resource
        return resources

    return _ledger

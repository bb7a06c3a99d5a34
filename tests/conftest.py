"""Pytest fixtures for FleetFlow service and API tests.

Services run against an in-memory SQLite database (aiosqlite) built from
``Base.metadata``; PostgreSQL-only behaviour such as ``FOR UPDATE`` is a
no-op there.
"""

import uuid
from collections.abc import AsyncGenerator
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import fleetflow.models  # noqa: F401  (populates Base.metadata)
from fleetflow.database.base import Base
from fleetflow.models.packaging_slot_cost import PackagingSlotCost
from fleetflow.models.reference import Driver, Facility, Vehicle, Warehouse
from fleetflow.modules.auth.auth import (
    ROLE_DRIVER,
    ROLE_FACILITY_INCHARGE,
    ROLE_SYSTEM_ADMIN,
    ROLE_WAREHOUSE_OFFICER,
    ROLE_ZONAL_MANAGER,
    Actor,
)
from fleetflow.modules.packaging.constants import SEEDED_SLOT_COSTS

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def async_test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(async_test_engine) -> AsyncGenerator[AsyncSession, None]:
    """A session on a fresh schema; each test sees its own database."""
    session_factory = async_sessionmaker(
        async_test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


@pytest.fixture
def officer() -> Actor:
    return Actor(id=uuid.uuid4(), email="officer@example.org", roles=frozenset({ROLE_WAREHOUSE_OFFICER}))


@pytest.fixture
def manager() -> Actor:
    return Actor(id=uuid.uuid4(), email="manager@example.org", roles=frozenset({ROLE_ZONAL_MANAGER}))


@pytest.fixture
def incharge() -> Actor:
    return Actor(id=uuid.uuid4(), roles=frozenset({ROLE_FACILITY_INCHARGE}))


@pytest.fixture
def driver_actor() -> Actor:
    return Actor(id=uuid.uuid4(), roles=frozenset({ROLE_DRIVER}))


@pytest.fixture
def admin() -> Actor:
    return Actor(id=uuid.uuid4(), roles=frozenset({ROLE_SYSTEM_ADMIN}))


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def slot_costs(db: AsyncSession) -> dict:
    """The packaging_slot_costs seed rows."""
    for packaging_type, cost in SEEDED_SLOT_COSTS.items():
        db.add(PackagingSlotCost(packaging_type=packaging_type, slot_cost=cost))
    await db.flush()
    return SEEDED_SLOT_COSTS


@pytest_asyncio.fixture
async def warehouse(db: AsyncSession) -> Warehouse:
    warehouse = Warehouse(name="Central Medical Store", code="CMS")
    db.add(warehouse)
    await db.flush()
    return warehouse


@pytest_asyncio.fixture
async def facility(db: AsyncSession, warehouse: Warehouse) -> Facility:
    facility = Facility(name="Kilimani Health Centre", code="KHC", warehouse_id=warehouse.id)
    db.add(facility)
    await db.flush()
    return facility


@pytest_asyncio.fixture
async def other_facility(db: AsyncSession, warehouse: Warehouse) -> Facility:
    facility = Facility(name="Bondo Dispensary", code="BDS", warehouse_id=warehouse.id)
    db.add(facility)
    await db.flush()
    return facility


@pytest_asyncio.fixture
async def vehicle(db: AsyncSession) -> Vehicle:
    vehicle = Vehicle(plate_number="KDA 123X", model="Isuzu NPR", total_slots=12)
    db.add(vehicle)
    await db.flush()
    return vehicle


@pytest_asyncio.fixture
async def driver(db: AsyncSession) -> Driver:
    driver = Driver(name="Wanjiru Kamau", phone="+254700000001")
    db.add(driver)
    await db.flush()
    return driver


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_requisition(db: AsyncSession, facility: Facility, incharge: Actor):
    """Submit a pending requisition; ``items`` defaults to one 8 kg unit."""
    from fleetflow.modules.requisition.service import RequisitionService

    async def _make(items: list[dict] | None = None, facility_id: uuid.UUID | None = None):
        items = items or [
            {"item_name": "ORS sachets", "quantity": 1,
             "weight_kg": Decimal("8"), "volume_m3": Decimal("0.01")},
        ]
        return await RequisitionService(db).submit(
            facility_id=facility_id or facility.id, items=items, actor=incharge
        )

    return _make


@pytest.fixture
def make_ready_requisition(db: AsyncSession, make_requisition, officer: Actor, slot_costs):
    """Submit, approve and release a requisition so it is ``ready_for_dispatch``."""
    from fleetflow.modules.requisition.service import RequisitionService

    async def _make(items: list[dict] | None = None, facility_id: uuid.UUID | None = None):
        requisition = await make_requisition(items, facility_id)
        service = RequisitionService(db)
        await service.approve(requisition.id, officer)
        await service.mark_ready_for_dispatch(requisition.id, officer)
        return requisition

    return _make


@pytest.fixture
def make_batch(db: AsyncSession, facility: Facility, warehouse: Warehouse, officer: Actor):
    from fleetflow.modules.batch.service import BatchService

    async def _make(**overrides):
        fields = {
            "name": "Western route",
            "scheduled_date": date(2026, 11, 2),
            "warehouse_id": warehouse.id,
            "facility_ids": [facility.id],
            "optimized_route": {"stops": [str(facility.id)], "distance_km": 42.5},
            "total_quantity": 2,
        }
        fields.update(overrides)
        return await BatchService(db).create_batch(actor=officer, **fields)

    return _make


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


@pytest.fixture
def current_actor(officer: Actor) -> dict:
    """Mutable holder for the actor the API client authenticates as."""
    return {"actor": officer}


@pytest_asyncio.fixture
async def async_client(db: AsyncSession, current_actor: dict) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient wired to the FastAPI app with the test session and actor."""
    from fleetflow.app import app
    from fleetflow.database.session import get_db
    from fleetflow.modules.auth import get_current_actor

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db

    async def override_get_current_actor() -> Actor:
        return current_actor["actor"]

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_actor] = override_get_current_actor

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()

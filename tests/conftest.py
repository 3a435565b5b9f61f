"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) with the production
models so tests run without Docker / PostgreSQL / Redis.  SQLite ignores
``FOR UPDATE``; the compare-and-set updates keep claims exclusive there.
Redis is replaced by an in-memory queue and a recording publisher.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ambulance_dispatch.domain.enums import (
    BookingKind,
    BookingStatus,
    DriverStatus,
    VehicleStatus,
)
from ambulance_dispatch.domain.events import DispatchEvent
from ambulance_dispatch.infrastructure.database import Base
from ambulance_dispatch.infrastructure.models import (
    BookingModel,
    DriverModel,
    VehicleModel,
)
from ambulance_dispatch.services.factory import Services, build_services

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

T0 = datetime(2026, 10, 19, 8, 0, 0, tzinfo=timezone.utc)


# ── Test doubles ──────────────────────────────────────────────────────


class FixedClock:
    """Manually advanced clock shared by services and the dispatcher."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeQueue:
    """In-memory stand-in for ``DispatchQueue`` (ignores due times)."""

    def __init__(self):
        self.scheduled: dict[int, float] = {}
        self.history: list[tuple[int, float]] = []

    async def schedule(
        self, booking_id, delay_seconds=0.0, *, only_if_absent=False, now=None
    ) -> bool:
        if only_if_absent and booking_id in self.scheduled:
            return False
        self.scheduled[booking_id] = delay_seconds
        self.history.append((booking_id, delay_seconds))
        return True

    async def claim_due(self, limit=50, now=None) -> list[int]:
        claimed = list(self.scheduled)[:limit]
        for booking_id in claimed:
            del self.scheduled[booking_id]
        return claimed

    async def pending_count(self) -> int:
        return len(self.scheduled)


class RecordingPublisher:
    def __init__(self):
        self.events: list[DispatchEvent] = []

    async def publish(self, event: DispatchEvent) -> None:
        self.events.append(event)

    def named(self, name: str) -> list[DispatchEvent]:
        return [e for e in self.events if e.name == name]


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh schema per test on a single shared in-memory connection."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def services(queue, publisher, clock) -> Services:
    return build_services(queue, subscribers=[publisher], clock=clock)


# ── Factories ─────────────────────────────────────────────────────────


async def add_driver(
    session: AsyncSession,
    *,
    name: str = "Driver",
    status: DriverStatus = DriverStatus.AVAILABLE,
    is_active: bool = True,
    with_vehicle: bool = True,
    lat: float | None = None,
    lng: float | None = None,
    last_active_at: datetime | None = None,
) -> tuple[DriverModel, VehicleModel | None]:
    vehicle = None
    if with_vehicle:
        vehicle = VehicleModel(
            plate_number=f"AMB-{name}", status=VehicleStatus.AVAILABLE
        )
        session.add(vehicle)
        await session.flush()
    driver = DriverModel(
        name=name,
        status=status,
        is_active=is_active,
        vehicle_id=vehicle.id if vehicle else None,
        last_lat=lat,
        last_lng=lng,
        last_active_at=last_active_at,
        total_trips=0,
    )
    session.add(driver)
    await session.flush()
    if vehicle is not None:
        vehicle.assigned_driver_id = driver.id
    await session.commit()
    return driver, vehicle


async def add_booking(
    session: AsyncSession,
    *,
    kind: BookingKind = BookingKind.SCHEDULED,
    status: BookingStatus = BookingStatus.PENDING,
    driver: DriverModel | None = None,
    pickup: tuple[float, float] | None = None,
    destination: tuple[float, float] | None = None,
    **fields,
) -> BookingModel:
    fields.setdefault("dispatch_attempts", 0)
    fields.setdefault("is_downpayment_paid", False)
    fields.setdefault("is_fully_paid", False)
    booking = BookingModel(
        kind=kind,
        status=status,
        driver_id=driver.id if driver else None,
        vehicle_id=driver.vehicle_id if driver else None,
        pickup_lat=pickup[0] if pickup else None,
        pickup_lng=pickup[1] if pickup else None,
        destination_lat=destination[0] if destination else None,
        destination_lng=destination[1] if destination else None,
        **fields,
    )
    session.add(booking)
    await session.commit()
    return booking


async def assign(
    session: AsyncSession,
    services: Services,
    booking: BookingModel,
    driver: DriverModel,
    status: BookingStatus = BookingStatus.CONFIRMED,
):
    """Claim *booking* for *driver* through the guard."""
    result = await services.guard.try_assign(
        session, booking.id, driver.id, target=status
    )
    assert result.assigned
    return result

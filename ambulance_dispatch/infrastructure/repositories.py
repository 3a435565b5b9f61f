"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Methods named ``*_for_update`` take a row
lock (``SELECT ... FOR UPDATE``); methods named ``claim``/``mark_*`` are
compare-and-set updates that report whether their preconditions still
held when the row was written.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import BookingModel, DriverModel, PaymentModel, VehicleModel
from ambulance_dispatch.domain.enums import (
    LIVE_STATUSES,
    BookingKind,
    BookingStatus,
    DriverStatus,
)


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_by_id(self, booking_id: int) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def reload(self, booking_id: int) -> Optional[BookingModel]:
        """Read the committed row, overwriting any stale identity-map copy."""
        return await self.session.get(
            BookingModel, booking_id, populate_existing=True
        )

    async def get_for_update(self, booking_id: int) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def claim(
        self,
        booking_id: int,
        *,
        driver_id: int,
        vehicle_id: int,
        status: BookingStatus,
        confirmed_at: datetime,
    ) -> bool:
        """Bind a driver only if the booking is still pending and unbound."""
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == booking_id,
                BookingModel.status == BookingStatus.PENDING,
                BookingModel.driver_id.is_(None),
            )
            .values(
                driver_id=driver_id,
                vehicle_id=vehicle_id,
                status=status,
                confirmed_at=confirmed_at,
            )
        )
        return result.rowcount == 1

    async def mark_escalated(self, booking_id: int, at: datetime) -> bool:
        """One-shot flag: only the first caller gets ``True``."""
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == booking_id,
                BookingModel.dispatch_escalated_at.is_(None),
            )
            .values(dispatch_escalated_at=at)
        )
        return result.rowcount == 1

    async def set_eta_if_status(
        self, booking_id: int, status: BookingStatus, eta: datetime
    ) -> bool:
        """Write an ETA unless the booking has moved on since it was read."""
        result = await self.session.execute(
            update(BookingModel)
            .where(BookingModel.id == booking_id, BookingModel.status == status)
            .values(estimated_arrival_at=eta)
        )
        return result.rowcount == 1

    async def get_live_for_driver(self, driver_id: int) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.driver_id == driver_id,
                BookingModel.status.in_(LIVE_STATUSES),
            )
            .order_by(BookingModel.id)
        )
        return list(result.scalars().all())

    async def get_unassigned_emergencies(self) -> list[BookingModel]:
        """Pending emergency bookings whose dispatch never finished."""
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.kind == BookingKind.EMERGENCY,
                BookingModel.status == BookingStatus.PENDING,
                BookingModel.driver_id.is_(None),
                BookingModel.dispatch_escalated_at.is_(None),
            )
            .order_by(BookingModel.created_at)
        )
        return list(result.scalars().all())

    async def get_overdue_downpayments_for_update(
        self, now: datetime
    ) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.kind == BookingKind.SCHEDULED,
                BookingModel.status.in_(
                    (BookingStatus.PENDING, BookingStatus.PAYMENT_FAILED)
                ),
                BookingModel.is_downpayment_paid.is_(False),
                BookingModel.dp_payment_deadline.is_not(None),
                BookingModel.dp_payment_deadline < now,
            )
            .with_for_update()
        )
        return list(result.scalars().all())


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, driver_id: int) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id)

    async def reload(self, driver_id: int) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id, populate_existing=True)

    async def get_for_update(self, driver_id: int) -> Optional[DriverModel]:
        result = await self.session.execute(
            select(DriverModel)
            .where(DriverModel.id == driver_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_eligible(self) -> list[DriverModel]:
        """Available, active drivers with a vehicle and no live booking."""
        result = await self.session.execute(
            select(DriverModel)
            .where(
                DriverModel.status == DriverStatus.AVAILABLE,
                DriverModel.is_active.is_(True),
                DriverModel.vehicle_id.is_not(None),
                DriverModel.current_booking_id.is_(None),
            )
            .order_by(DriverModel.id)
        )
        return list(result.scalars().all())

    async def mark_busy(self, driver_id: int, booking_id: int, at: datetime) -> bool:
        """Take the driver only if still available, active and free."""
        result = await self.session.execute(
            update(DriverModel)
            .where(
                DriverModel.id == driver_id,
                DriverModel.status == DriverStatus.AVAILABLE,
                DriverModel.is_active.is_(True),
                DriverModel.vehicle_id.is_not(None),
                DriverModel.current_booking_id.is_(None),
            )
            .values(
                status=DriverStatus.BUSY,
                current_booking_id=booking_id,
                last_active_at=at,
            )
        )
        return result.rowcount == 1


class VehicleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, vehicle_id: int) -> Optional[VehicleModel]:
        return await self.session.get(VehicleModel, vehicle_id)

    async def get_for_update(self, vehicle_id: int) -> Optional[VehicleModel]:
        result = await self.session.execute(
            select(VehicleModel)
            .where(VehicleModel.id == vehicle_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


class PaymentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for_booking(self, booking_id: int) -> Optional[PaymentModel]:
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.booking_id == booking_id)
        )
        return result.scalar_one_or_none()

    async def upsert(self, booking_id: int, **fields) -> PaymentModel:
        """Replace the booking's current payment record."""
        payment = await self.get_for_booking(booking_id)
        if payment is None:
            payment = PaymentModel(booking_id=booking_id, **fields)
            self.session.add(payment)
        else:
            for key, value in fields.items():
                setattr(payment, key, value)
        await self.session.flush()
        return payment

"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 6 ambulances (one in maintenance)
  - 6 drivers, 4 of them available with a vehicle and a known location
  - 4 sample bookings (pending scheduled, overdue scheduled, confirmed,
    completed)

Emergency bookings are not seeded: create them through
``POST /api/v1/bookings`` so they are queued for dispatch.
"""

import asyncio
from datetime import timedelta

from sqlalchemy import text

from ambulance_dispatch.domain.entities import utcnow
from ambulance_dispatch.domain.enums import (
    BookingKind,
    BookingStatus,
    DriverStatus,
    VehicleStatus,
)
from ambulance_dispatch.infrastructure.database import async_session_factory, engine
from ambulance_dispatch.infrastructure.models import (
    BookingModel,
    DriverModel,
    VehicleModel,
)

# Central reference point used for coordinates below
BASE_LAT, BASE_LNG = -6.2000, 106.8166


VEHICLES = [
    {"plate_number": "B 1101 AMB", "vehicle_type": "advanced", "status": VehicleStatus.AVAILABLE},
    {"plate_number": "B 1102 AMB", "vehicle_type": "basic", "status": VehicleStatus.AVAILABLE},
    {"plate_number": "B 1103 AMB", "vehicle_type": "basic", "status": VehicleStatus.AVAILABLE},
    {"plate_number": "B 1104 AMB", "vehicle_type": "advanced", "status": VehicleStatus.AVAILABLE},
    {"plate_number": "B 1105 AMB", "vehicle_type": "basic", "status": VehicleStatus.ON_DUTY},
    {"plate_number": "B 1106 AMB", "vehicle_type": "basic", "status": VehicleStatus.MAINTENANCE},
]

DRIVERS = [
    # name, phone, status, vehicle index, (lat, lng)
    ("Budi Santoso", "+62811000001", DriverStatus.AVAILABLE, 0, (-6.1950, 106.8200)),
    ("Siti Rahma", "+62811000002", DriverStatus.AVAILABLE, 1, (-6.2100, 106.8300)),
    ("Andi Wijaya", "+62811000003", DriverStatus.AVAILABLE, 2, (-6.1800, 106.8000)),
    ("Dewi Lestari", "+62811000004", DriverStatus.AVAILABLE, 3, (-6.2300, 106.8500)),
    ("Rudi Hartono", "+62811000005", DriverStatus.BUSY, 4, (-6.2050, 106.8100)),
    ("Maya Putri", "+62811000006", DriverStatus.OFF, None, None),
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM vehicles"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        now = utcnow()

        # ── Vehicles ──────────────────────────────────────────────────
        vehicles = [VehicleModel(**v) for v in VEHICLES]
        session.add_all(vehicles)
        await session.flush()
        print(f"  Created {len(vehicles)} vehicles")

        # ── Drivers ───────────────────────────────────────────────────
        drivers = []
        for name, phone, status, vehicle_idx, location in DRIVERS:
            vehicle = vehicles[vehicle_idx] if vehicle_idx is not None else None
            driver = DriverModel(
                name=name,
                phone=phone,
                status=status,
                is_active=True,
                vehicle_id=vehicle.id if vehicle else None,
                last_lat=location[0] if location else None,
                last_lng=location[1] if location else None,
                last_location_at=now if location else None,
                last_active_at=now,
            )
            session.add(driver)
            drivers.append(driver)
        await session.flush()
        for driver, (_, _, _, vehicle_idx, _) in zip(drivers, DRIVERS):
            if vehicle_idx is not None:
                vehicles[vehicle_idx].assigned_driver_id = driver.id
        print(f"  Created {len(drivers)} drivers")

        # ── Bookings ──────────────────────────────────────────────────
        busy_driver = drivers[4]
        bookings = [
            BookingModel(
                kind=BookingKind.SCHEDULED,
                status=BookingStatus.PENDING,
                patient_name="Ahmad Fauzi",
                pickup_address="Jl. Sudirman 1",
                pickup_lat=BASE_LAT,
                pickup_lng=BASE_LNG,
                destination_address="RS Cipto Mangunkusumo",
                destination_lat=-6.1970,
                destination_lng=106.8470,
                dp_payment_deadline=now + timedelta(hours=6),
            ),
            BookingModel(
                kind=BookingKind.SCHEDULED,
                status=BookingStatus.PENDING,
                patient_name="Rina Marlina",
                pickup_address="Jl. Thamrin 10",
                pickup_lat=-6.1900,
                pickup_lng=106.8230,
                destination_address="RS Pondok Indah",
                destination_lat=-6.2820,
                destination_lng=106.7830,
                # Already overdue: picked up by the maintenance worker
                dp_payment_deadline=now - timedelta(hours=1),
            ),
            BookingModel(
                kind=BookingKind.SCHEDULED,
                status=BookingStatus.CONFIRMED,
                driver_id=busy_driver.id,
                vehicle_id=busy_driver.vehicle_id,
                patient_name="Hendra Gunawan",
                pickup_address="Jl. Gatot Subroto 5",
                pickup_lat=-6.2200,
                pickup_lng=106.8150,
                destination_address="RS Siloam Semanggi",
                destination_lat=-6.2190,
                destination_lng=106.8120,
                confirmed_at=now,
                is_downpayment_paid=True,
            ),
            BookingModel(
                kind=BookingKind.EMERGENCY,
                status=BookingStatus.COMPLETED,
                driver_id=drivers[0].id,
                vehicle_id=drivers[0].vehicle_id,
                patient_name="Yusuf Hakim",
                pickup_lat=-6.1960,
                pickup_lng=106.8210,
                destination_address="RSUD Tanah Abang",
                destination_lat=-6.1860,
                destination_lng=106.8110,
                confirmed_at=now - timedelta(hours=2),
                pickup_time=now - timedelta(hours=2),
                completion_time=now - timedelta(hours=1),
                is_downpayment_paid=True,
                is_fully_paid=True,
                dispatch_attempts=1,
                dispatch_started_at=now - timedelta(hours=2),
            ),
        ]
        session.add_all(bookings)
        await session.flush()
        busy_driver.current_booking_id = bookings[2].id
        drivers[0].total_trips = 1
        print(f"  Created {len(bookings)} bookings")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())

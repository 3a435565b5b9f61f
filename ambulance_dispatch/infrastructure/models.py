"""
SQLAlchemy ORM models.

Tables
------
* ``vehicles``  -- ambulances and their duty status
* ``drivers``   -- drivers, their bound vehicle and last known location
* ``bookings``  -- ambulance requests, their lifecycle and dispatch state
* ``payments``  -- the current payment record of a booking (one per booking)

Status columns are closed enumerations: a stored value outside the enum
raises on load.

Indexes
-------
* ``status`` on every table, used by candidate search and sweeps.
* ``driver_id`` on bookings for the live-booking lookup.
"""

import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)

from .database import Base
from ambulance_dispatch.domain.enums import (
    BookingKind,
    BookingStatus,
    DriverStatus,
    PaymentStatus,
    PaymentType,
    VehicleStatus,
)


def _enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Persist enum *values* (``"on_duty"``), not member names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plate_number = Column(String(20), unique=True, nullable=False)
    vehicle_type = Column(String(30), default="basic", nullable=False)
    status = Column(
        _enum(VehicleStatus, "vehicle_status"),
        default=VehicleStatus.AVAILABLE,
        nullable=False,
    )
    # Weak back-reference, lookup only.
    assigned_driver_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("idx_vehicles_status", "status"),)


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(30), nullable=True)
    status = Column(
        _enum(DriverStatus, "driver_status"),
        default=DriverStatus.OFF,
        nullable=False,
    )
    is_active = Column(Boolean, default=True, nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=True)
    current_booking_id = Column(Integer, nullable=True)

    last_lat = Column(Float, nullable=True)
    last_lng = Column(Float, nullable=True)
    last_location_at = Column(DateTime(timezone=True), nullable=True)
    last_active_at = Column(DateTime(timezone=True), nullable=True)

    total_trips = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_drivers_status", "status", "is_active"),
        Index("idx_drivers_vehicle", "vehicle_id"),
    )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(_enum(BookingKind, "booking_kind"), nullable=False)
    status = Column(
        _enum(BookingStatus, "booking_status"),
        default=BookingStatus.PENDING,
        nullable=False,
    )
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=True)

    patient_name = Column(String(120), nullable=True)
    contact_phone = Column(String(30), nullable=True)
    pickup_address = Column(String(255), nullable=True)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    destination_address = Column(String(255), nullable=True)
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)

    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    pickup_time = Column(DateTime(timezone=True), nullable=True)
    completion_time = Column(DateTime(timezone=True), nullable=True)
    estimated_arrival_at = Column(DateTime(timezone=True), nullable=True)

    is_downpayment_paid = Column(Boolean, default=False, nullable=False)
    is_fully_paid = Column(Boolean, default=False, nullable=False)
    dp_payment_deadline = Column(DateTime(timezone=True), nullable=True)

    cancellation_reason = Column(String(255), nullable=True)
    cancelled_by = Column(String(40), nullable=True)

    # Durable scheduler task state
    dispatch_attempts = Column(Integer, default=0, nullable=False)
    dispatch_started_at = Column(DateTime(timezone=True), nullable=True)
    dispatch_escalated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_bookings_status", "status", "kind"),
        Index("idx_bookings_driver", "driver_id"),
    )


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(
        Integer, ForeignKey("bookings.id"), unique=True, nullable=False
    )
    payment_type = Column(_enum(PaymentType, "payment_type"), nullable=False)
    status = Column(
        _enum(PaymentStatus, "payment_status"),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    amount = Column(Float, nullable=True)
    reference = Column(String(64), nullable=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

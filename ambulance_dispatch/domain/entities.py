"""
Domain value objects and invariants shared by the services.

Patterns used
-------------
- **State Pattern** via ``ensure_transition``: every booking status change
  is checked against ``BOOKING_TRANSITIONS`` before it is written.
- ``Candidate`` is the read-only snapshot of an eligible driver that the
  dispatch scheduler ranks; it never touches the store.

The functions here are duck-typed over ORM rows so the same rules apply
to persisted records and to plain test doubles.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .enums import (
    BOOKING_TRANSITIONS,
    BookingStatus,
    DriverStatus,
    PaymentStatus,
    PaymentType,
)


class InvalidStateTransition(Exception):
    """Raised when a booking status change violates the state machine."""


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Candidate:
    driver_id: int
    vehicle_id: int
    location: Optional[Location] = None
    last_active_at: Optional[datetime] = None

    @classmethod
    def from_driver(cls, driver) -> "Candidate":
        location = None
        if driver.last_lat is not None and driver.last_lng is not None:
            location = Location(driver.last_lat, driver.last_lng)
        return cls(
            driver_id=driver.id,
            vehicle_id=driver.vehicle_id,
            location=location,
            last_active_at=as_utc(driver.last_active_at),
        )


# ── Rules ─────────────────────────────────────────────────────────────


def ensure_transition(current: BookingStatus, target: BookingStatus) -> None:
    """Raise unless *current* -> *target* is an edge of the booking graph."""
    if target not in BOOKING_TRANSITIONS.get(BookingStatus(current), set()):
        raise InvalidStateTransition(
            f"Cannot transition from {BookingStatus(current).value} "
            f"to {BookingStatus(target).value}"
        )


def driver_is_eligible(driver) -> bool:
    """A driver may be claimed only when free, active and with a vehicle."""
    return (
        driver.status == DriverStatus.AVAILABLE
        and bool(driver.is_active)
        and driver.vehicle_id is not None
        and driver.current_booking_id is None
    )


def payment_is_settled(payment, payment_type: PaymentType | None = None) -> bool:
    if payment is None or payment.status != PaymentStatus.PAID:
        return False
    return payment_type is None or payment.payment_type == payment_type


# ── Time helpers ──────────────────────────────────────────────────────


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)

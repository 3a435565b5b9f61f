"""Typed outcomes returned by the guard and the lifecycle services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .enums import AssignOutcome, BookingStatus, ErrorKind


@dataclass(frozen=True)
class AssignResult:
    outcome: AssignOutcome
    booking_id: int
    driver_id: int
    vehicle_id: Optional[int] = None
    status: Optional[BookingStatus] = None

    @property
    def assigned(self) -> bool:
        return self.outcome == AssignOutcome.ASSIGNED


@dataclass(frozen=True)
class ActionResult:
    success: bool
    message: str
    error_kind: Optional[ErrorKind] = None
    warning: Optional[str] = None
    booking_id: Optional[int] = None

    @classmethod
    def ok(
        cls, message: str, *, booking_id: int | None = None, warning: str | None = None
    ) -> "ActionResult":
        return cls(True, message, booking_id=booking_id, warning=warning)

    @classmethod
    def reject(
        cls, error_kind: ErrorKind, message: str, *, booking_id: int | None = None
    ) -> "ActionResult":
        return cls(False, message, error_kind=error_kind, booking_id=booking_id)


ASSIGN_REJECTIONS: dict[AssignOutcome, tuple[ErrorKind, str]] = {
    AssignOutcome.ALREADY_TAKEN: (
        ErrorKind.ALREADY_TAKEN,
        "Booking was already accepted by another driver.",
    ),
    AssignOutcome.BOOKING_NOT_PENDING: (
        ErrorKind.INVALID_STATE,
        "Booking is no longer pending and cannot be accepted.",
    ),
    AssignOutcome.DRIVER_UNAVAILABLE: (
        ErrorKind.DRIVER_UNAVAILABLE,
        "Driver must be active, available and have a vehicle to accept bookings.",
    ),
}


def action_result_for(result: AssignResult) -> ActionResult:
    """Translate a guard outcome into the caller-facing result."""
    if result.assigned:
        return ActionResult.ok("Booking accepted.", booking_id=result.booking_id)
    error_kind, message = ASSIGN_REJECTIONS[result.outcome]
    return ActionResult.reject(error_kind, message, booking_id=result.booking_id)

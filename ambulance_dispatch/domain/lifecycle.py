"""
Driver-triggered booking transitions.

``plan_driver_action`` decides whether an action is allowed without
touching the store; the lifecycle service applies approved plans inside
a transaction.  Checks run in a fixed order: bound driver, source state,
cancellation reason, payment gates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .entities import payment_is_settled
from .enums import (
    BookingKind,
    BookingStatus,
    DriverAction,
    ErrorKind,
    PaymentType,
)

MAX_REASON_LENGTH = 255

ACTION_SOURCES: dict[DriverAction, frozenset[BookingStatus]] = {
    DriverAction.START: frozenset({BookingStatus.CONFIRMED}),
    DriverAction.ARRIVE: frozenset({BookingStatus.DISPATCHED}),
    DriverAction.DEPART: frozenset({BookingStatus.ARRIVED}),
    DriverAction.COMPLETE: frozenset(
        {BookingStatus.DISPATCHED, BookingStatus.ARRIVED, BookingStatus.ENROUTE}
    ),
    DriverAction.CANCEL: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.DISPATCHED}
    ),
}

ACTION_TARGETS: dict[DriverAction, BookingStatus] = {
    DriverAction.START: BookingStatus.DISPATCHED,
    DriverAction.ARRIVE: BookingStatus.ARRIVED,
    DriverAction.DEPART: BookingStatus.ENROUTE,
    DriverAction.COMPLETE: BookingStatus.COMPLETED,
    DriverAction.CANCEL: BookingStatus.CANCELLED,
}

SUCCESS_MESSAGES: dict[DriverAction, str] = {
    DriverAction.START: "Trip started.",
    DriverAction.ARRIVE: "Marked as arrived at pickup.",
    DriverAction.DEPART: "Departed for destination.",
    DriverAction.COMPLETE: "Trip completed.",
    DriverAction.CANCEL: "Booking cancelled.",
}

EMERGENCY_DEPART_WARNING = (
    "Trip may continue, but remind the patient to settle the payment."
)


@dataclass(frozen=True)
class TransitionPlan:
    action: DriverAction
    source: BookingStatus
    target: Optional[BookingStatus] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    warning: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.error_kind is None


def plan_driver_action(
    booking,
    action: DriverAction,
    driver_id: int,
    *,
    payment=None,
    reason: str | None = None,
) -> TransitionPlan:
    """Decide whether *driver_id* may perform *action* on *booking*."""
    source = BookingStatus(booking.status)

    def reject(kind: ErrorKind, message: str) -> TransitionPlan:
        return TransitionPlan(action, source, error_kind=kind, message=message)

    if booking.driver_id is None or booking.driver_id != driver_id:
        return reject(ErrorKind.WRONG_ACTOR, "This booking is not assigned to you.")

    if source not in ACTION_SOURCES[action]:
        return reject(
            ErrorKind.INVALID_STATE,
            f"Cannot {action.value} a booking in status {source.value}.",
        )

    warning = None
    kind = BookingKind(booking.kind)

    if action == DriverAction.CANCEL:
        if not reason or not reason.strip():
            return reject(ErrorKind.MISSING_REASON, "A cancellation reason is required.")
        if len(reason) > MAX_REASON_LENGTH:
            return reject(
                ErrorKind.MISSING_REASON,
                f"Cancellation reason must be at most {MAX_REASON_LENGTH} characters.",
            )

    elif action == DriverAction.DEPART:
        if kind == BookingKind.EMERGENCY and not payment_is_settled(payment):
            warning = EMERGENCY_DEPART_WARNING
        elif kind == BookingKind.SCHEDULED and not booking.is_downpayment_paid:
            return reject(
                ErrorKind.PAYMENT_REQUIRED,
                "The downpayment must be settled before departing.",
            )

    elif action == DriverAction.COMPLETE and source == BookingStatus.ARRIVED:
        if kind == BookingKind.EMERGENCY and not payment_is_settled(payment):
            return reject(
                ErrorKind.PAYMENT_REQUIRED,
                "Emergency bookings require full payment before completion.",
            )
        if kind == BookingKind.SCHEDULED and not payment_is_settled(
            payment, PaymentType.FINAL_PAYMENT
        ):
            return reject(
                ErrorKind.PAYMENT_REQUIRED,
                "Scheduled bookings require the final payment before completion.",
            )

    return TransitionPlan(
        action,
        source,
        target=ACTION_TARGETS[action],
        message=SUCCESS_MESSAGES[action],
        warning=warning,
    )

"""Domain enumerations and state-transition rules."""

import enum


class BookingKind(str, enum.Enum):
    EMERGENCY = "emergency"
    SCHEDULED = "scheduled"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISPATCHED = "dispatched"
    ARRIVED = "arrived"
    ENROUTE = "enroute"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PAYMENT_FAILED = "payment_failed"


class DriverStatus(str, enum.Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    OFF = "off"


class VehicleStatus(str, enum.Enum):
    AVAILABLE = "available"
    ON_DUTY = "on_duty"
    MAINTENANCE = "maintenance"
    UNAVAILABLE = "unavailable"


class PaymentType(str, enum.Enum):
    DOWNPAYMENT = "downpayment"
    FULL_PAYMENT = "full_payment"
    FINAL_PAYMENT = "final_payment"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class DriverAction(str, enum.Enum):
    START = "start"
    ARRIVE = "arrive"
    DEPART = "depart"
    COMPLETE = "complete"
    CANCEL = "cancel"


class AssignOutcome(str, enum.Enum):
    ASSIGNED = "assigned"
    ALREADY_TAKEN = "already_taken"
    DRIVER_UNAVAILABLE = "driver_unavailable"
    BOOKING_NOT_PENDING = "booking_not_pending"


class DispatchPhase(str, enum.Enum):
    NEARBY = "nearby"
    BROADCAST = "broadcast"


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    WRONG_ACTOR = "wrong_actor"
    INVALID_STATE = "invalid_state"
    PAYMENT_REQUIRED = "payment_required"
    MISSING_REASON = "missing_reason"
    ALREADY_TAKEN = "already_taken"
    DRIVER_UNAVAILABLE = "driver_unavailable"
    NOT_EMERGENCY = "not_emergency"
    LIVE_BOOKING = "live_booking"
    TRANSIENT = "transient"


# State machine: maps current status -> set of valid next statuses.
# pending -> cancelled and payment_failed -> cancelled are reserved for
# system cancellations; drivers can only cancel from confirmed / dispatched.
# payment_failed -> pending returns an unassigned booking to the pool once
# its payment settles.
BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.CONFIRMED,
        BookingStatus.DISPATCHED,
        BookingStatus.PAYMENT_FAILED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.CONFIRMED: {BookingStatus.DISPATCHED, BookingStatus.CANCELLED},
    BookingStatus.DISPATCHED: {
        BookingStatus.ARRIVED,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.ARRIVED: {BookingStatus.ENROUTE, BookingStatus.COMPLETED},
    BookingStatus.ENROUTE: {BookingStatus.COMPLETED},
    BookingStatus.PAYMENT_FAILED: {
        BookingStatus.PENDING,
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

# Statuses in which a driver is bound and working the booking.
LIVE_STATUSES = frozenset(
    {
        BookingStatus.CONFIRMED,
        BookingStatus.DISPATCHED,
        BookingStatus.ARRIVED,
        BookingStatus.ENROUTE,
    }
)

"""
Typed trigger events.

The lifecycle state machine and the assignment guard produce these; the
status synchronizer consumes them inside the transaction and the
notification publisher receives them after commit.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import ClassVar, Optional

from .entities import utcnow
from .enums import BookingStatus


@dataclass(frozen=True)
class DispatchEvent:
    name: ClassVar[str] = "event"

    def to_payload(self) -> dict:
        payload = {"event": self.name}
        for key, value in asdict(self).items():
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, BookingStatus):
                value = value.value
            payload[key] = value
        return payload


@dataclass(frozen=True)
class BookingStatusChanged(DispatchEvent):
    name: ClassVar[str] = "booking_status_changed"

    booking_id: int
    old_status: Optional[BookingStatus]
    new_status: BookingStatus
    driver_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class DriverAssigned(DispatchEvent):
    name: ClassVar[str] = "driver_assigned"

    booking_id: int
    driver_id: int
    vehicle_id: int
    source: str = "driver"
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class UnassignedEscalation(DispatchEvent):
    name: ClassVar[str] = "unassigned_escalation"

    booking_id: int
    attempts: int
    occurred_at: datetime = field(default_factory=utcnow)

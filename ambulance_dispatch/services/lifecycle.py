"""
Booking Lifecycle
=================

Applies transitions to persisted bookings:

* driver actions -- accept, accept_emergency (through the assignment
  guard) and start / arrive / depart / complete / cancel (planned by
  ``plan_driver_action``);
* payment events reported by the payment collaborator;
* system cancellation of scheduled bookings whose downpayment deadline
  has passed, or whose payment failed again after a first failure.

Every method is one unit of work: lock the booking, decide, write,
hand the transition event to the synchronizer on the same session,
commit, then publish.  Expected domain conditions come back as
``ActionResult`` rejections with the transaction rolled back; only
infrastructure failures raise.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ambulance_dispatch.domain.entities import ensure_transition, utcnow
from ambulance_dispatch.domain.enums import (
    BookingKind,
    BookingStatus,
    DriverAction,
    ErrorKind,
    PaymentStatus,
    PaymentType,
)
from ambulance_dispatch.domain.events import BookingStatusChanged
from ambulance_dispatch.domain.lifecycle import plan_driver_action
from ambulance_dispatch.domain.results import ActionResult, action_result_for
from ambulance_dispatch.infrastructure.models import BookingModel
from ambulance_dispatch.infrastructure.repositories import (
    BookingRepository,
    DriverRepository,
    PaymentRepository,
)
from ambulance_dispatch.services.assignment import AssignmentGuard
from ambulance_dispatch.services.events import EventBus

logger = logging.getLogger(__name__)

OVERDUE_DOWNPAYMENT_REASON = "Cancelled due to overdue downpayment"
FAILED_PAYMENT_RETRY_REASON = "Cancelled after failed payment retry"


class BookingLifecycle:
    def __init__(
        self,
        bus: EventBus,
        guard: AssignmentGuard,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.bus = bus
        self.guard = guard
        self.clock = clock

    # ── Accepting ─────────────────────────────────────────────────────

    async def accept(
        self, session: AsyncSession, booking_id: int, driver_id: int
    ) -> ActionResult:
        result = await self.guard.try_assign(
            session, booking_id, driver_id, target=BookingStatus.CONFIRMED
        )
        return action_result_for(result)

    async def accept_emergency(
        self, session: AsyncSession, booking_id: int, driver_id: int
    ) -> ActionResult:
        """Manual pick-up of an emergency booking; races the scheduler."""
        booking = await BookingRepository(session).get_by_id(booking_id)
        if booking is None:
            return ActionResult.reject(ErrorKind.NOT_FOUND, "Booking not found.")
        if booking.kind != BookingKind.EMERGENCY:
            return ActionResult.reject(
                ErrorKind.NOT_EMERGENCY,
                "This booking is not an emergency booking.",
                booking_id=booking_id,
            )

        result = await self.guard.try_assign(
            session,
            booking_id,
            driver_id,
            target=BookingStatus.DISPATCHED,
            source="driver_emergency_accept",
        )
        if result.assigned:
            return ActionResult.ok(
                "Emergency booking accepted.", booking_id=booking_id
            )
        return action_result_for(result)

    # ── Driver actions ────────────────────────────────────────────────

    async def start(self, session, booking_id: int, driver_id: int) -> ActionResult:
        return await self.perform(session, DriverAction.START, booking_id, driver_id)

    async def arrive(self, session, booking_id: int, driver_id: int) -> ActionResult:
        return await self.perform(session, DriverAction.ARRIVE, booking_id, driver_id)

    async def depart(self, session, booking_id: int, driver_id: int) -> ActionResult:
        return await self.perform(session, DriverAction.DEPART, booking_id, driver_id)

    async def complete(self, session, booking_id: int, driver_id: int) -> ActionResult:
        return await self.perform(
            session, DriverAction.COMPLETE, booking_id, driver_id
        )

    async def cancel(
        self, session, booking_id: int, driver_id: int, reason: str | None
    ) -> ActionResult:
        return await self.perform(
            session, DriverAction.CANCEL, booking_id, driver_id, reason=reason
        )

    async def perform(
        self,
        session: AsyncSession,
        action: DriverAction,
        booking_id: int,
        driver_id: int,
        *,
        reason: str | None = None,
    ) -> ActionResult:
        bookings = BookingRepository(session)
        try:
            booking = await bookings.get_for_update(booking_id)
            if booking is None:
                await session.rollback()
                return ActionResult.reject(ErrorKind.NOT_FOUND, "Booking not found.")

            payment = await PaymentRepository(session).get_for_booking(booking_id)
            plan = plan_driver_action(
                booking, action, driver_id, payment=payment, reason=reason
            )
            if not plan.allowed:
                await session.rollback()
                logger.info(
                    "Rejected %s on booking %s by driver %s: %s",
                    action.value, booking_id, driver_id, plan.error_kind.value,
                )
                return ActionResult.reject(
                    plan.error_kind, plan.message, booking_id=booking_id
                )

            now = self.clock()
            if action in (DriverAction.START, DriverAction.ARRIVE):
                if booking.pickup_time is None:
                    booking.pickup_time = now
            elif action == DriverAction.COMPLETE:
                booking.completion_time = now
                driver = await DriverRepository(session).get_for_update(driver_id)
                driver.total_trips = (driver.total_trips or 0) + 1
            elif action == DriverAction.CANCEL:
                booking.cancellation_reason = reason.strip()
                booking.cancelled_by = f"driver:{driver_id}"

            event = self._transition(booking, plan.target, now)
            await self.bus.apply(session, event)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        if plan.warning:
            logger.warning(
                "Booking %s %s with warning: %s", booking_id, action.value, plan.warning
            )
        await self.bus.publish([event])
        return ActionResult.ok(plan.message, booking_id=booking_id, warning=plan.warning)

    # ── Payment events ────────────────────────────────────────────────

    async def record_payment(
        self,
        session: AsyncSession,
        booking_id: int,
        *,
        payment_type: PaymentType,
        status: PaymentStatus,
        amount: float | None = None,
        reference: str | None = None,
    ) -> ActionResult:
        """Store the collaborator's payment event and move the booking if due."""
        event: Optional[BookingStatusChanged] = None
        try:
            booking = await BookingRepository(session).get_for_update(booking_id)
            if booking is None:
                await session.rollback()
                return ActionResult.reject(ErrorKind.NOT_FOUND, "Booking not found.")

            now = self.clock()
            await PaymentRepository(session).upsert(
                booking_id,
                payment_type=payment_type,
                status=status,
                amount=amount,
                reference=reference,
                settled_at=now if status == PaymentStatus.PAID else None,
            )

            if status == PaymentStatus.PAID:
                booking.is_downpayment_paid = True
                if payment_type != PaymentType.DOWNPAYMENT:
                    booking.is_fully_paid = True
                if booking.status == BookingStatus.PAYMENT_FAILED:
                    # Without a bound driver the booking goes back to the
                    # pool so it can still be accepted.
                    target = (
                        BookingStatus.CONFIRMED
                        if booking.driver_id is not None
                        else BookingStatus.PENDING
                    )
                    event = self._transition(booking, target, now)
            elif status == PaymentStatus.FAILED:
                if booking.status == BookingStatus.PAYMENT_FAILED:
                    booking.cancellation_reason = FAILED_PAYMENT_RETRY_REASON
                    booking.cancelled_by = "system"
                    event = self._transition(booking, BookingStatus.CANCELLED, now)
                elif booking.status == BookingStatus.PENDING:
                    if booking.kind == BookingKind.EMERGENCY:
                        # Dispatch keeps running; payment is settled later.
                        logger.warning(
                            "Payment failed for emergency booking %s; "
                            "dispatch continues",
                            booking_id,
                        )
                    else:
                        event = self._transition(
                            booking, BookingStatus.PAYMENT_FAILED, now
                        )

            if event is not None:
                await self.bus.apply(session, event)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(
            "Recorded %s %s payment for booking %s",
            status.value, payment_type.value, booking_id,
        )
        if event is not None:
            await self.bus.publish([event])
        return ActionResult.ok("Payment recorded.", booking_id=booking_id)

    # ── System cancellations ──────────────────────────────────────────

    async def cancel_overdue_downpayments(self, session: AsyncSession) -> int:
        """Cancel unpaid scheduled bookings past their downpayment deadline."""
        now = self.clock()
        events: list[BookingStatusChanged] = []
        try:
            overdue = await BookingRepository(
                session
            ).get_overdue_downpayments_for_update(now)
            for booking in overdue:
                booking.cancellation_reason = OVERDUE_DOWNPAYMENT_REASON
                booking.cancelled_by = "system"
                event = self._transition(booking, BookingStatus.CANCELLED, now)
                await self.bus.apply(session, event)
                events.append(event)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        for event in events:
            logger.info(
                "Auto-cancelled booking %s due to overdue downpayment", event.booking_id
            )
        await self.bus.publish(events)
        return len(events)

    # ── Internals ─────────────────────────────────────────────────────

    @staticmethod
    def _transition(
        booking: BookingModel, target: BookingStatus, now: datetime
    ) -> BookingStatusChanged:
        old = BookingStatus(booking.status)
        ensure_transition(old, target)
        booking.status = target
        return BookingStatusChanged(
            booking_id=booking.id,
            old_status=old,
            new_status=target,
            driver_id=booking.driver_id,
            vehicle_id=booking.vehicle_id,
            occurred_at=now,
        )

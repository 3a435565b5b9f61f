"""
Emergency Dispatch Scheduler
============================

Polls the delayed queue every ``DISPATCH_POLL_INTERVAL_SECONDS`` and runs
one attempt per due booking.

Attempt
-------
1. Re-read the booking (row lock).  Not pending, already bound or
   already escalated -> no-op; this replaces explicit cancellation.
2. Bump the durable attempt counter (and stamp the start time on the
   first attempt) and commit, so any worker can resume the task.
3. Derive the phase from elapsed time and search for a candidate:
   nearest eligible driver while nearby, random eligible driver during
   broadcast, nothing past the total window.
4. Claim through the assignment guard with target ``dispatched``.
   ``already_taken`` / ``booking_not_pending`` -> stop quietly;
   ``driver_unavailable`` -> treated as "no candidate".
5. No candidate: re-queue after the retry delay while attempts and time
   remain, else escalate once.

Unexpected errors during search or claim are logged and cost one
attempt; they never end the retry sequence.  A fault anywhere else in
the attempt (re-read, counter commit, re-queue) puts the booking back on
the queue after the retry delay.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import random
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ambulance_dispatch.config import settings
from ambulance_dispatch.domain.dispatch import DispatchTask, select_candidate
from ambulance_dispatch.domain.entities import Candidate, Location, utcnow
from ambulance_dispatch.domain.enums import (
    AssignOutcome,
    BookingKind,
    BookingStatus,
    DispatchPhase,
)
from ambulance_dispatch.domain.events import UnassignedEscalation
from ambulance_dispatch.infrastructure.database import async_session_factory
from ambulance_dispatch.infrastructure.repositories import (
    BookingRepository,
    DriverRepository,
)
from ambulance_dispatch.infrastructure.task_queue import DispatchQueue
from ambulance_dispatch.services.assignment import AssignmentGuard
from ambulance_dispatch.services.events import EventBus
from ambulance_dispatch.services.factory import default_services

logger = logging.getLogger(__name__)


class DispatchOutcome(str, enum.Enum):
    ASSIGNED = "assigned"
    SKIPPED = "skipped"
    STOPPED = "stopped"
    RESCHEDULED = "rescheduled"
    ESCALATED = "escalated"


class EmergencyDispatcher:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        queue: DispatchQueue,
        guard: AssignmentGuard,
        bus: EventBus,
        *,
        nearby_window: float = settings.dispatch_nearby_window_seconds,
        total_window: float = settings.dispatch_total_window_seconds,
        max_attempts: int = settings.dispatch_max_attempts,
        retry_delay: float = settings.dispatch_retry_delay_seconds,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
    ):
        self.session_factory = session_factory
        self.queue = queue
        self.guard = guard
        self.bus = bus
        self.nearby_window = nearby_window
        self.total_window = total_window
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.clock = clock
        self.rng = rng or random.Random()

    async def run_due(self, limit: int = 50) -> list[DispatchOutcome]:
        booking_ids = await self.queue.claim_due(limit)
        if not booking_ids:
            return []
        results = await asyncio.gather(
            *(self.run_attempt(booking_id) for booking_id in booking_ids),
            return_exceptions=True,
        )
        outcomes: list[DispatchOutcome] = []
        for booking_id, result in zip(booking_ids, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Dispatch attempt for booking %s crashed",
                    booking_id, exc_info=result,
                )
                continue
            outcomes.append(result)
        return outcomes

    async def run_attempt(self, booking_id: int) -> DispatchOutcome:
        try:
            return await self._attempt(booking_id)
        except Exception:
            logger.exception(
                "Dispatch attempt for booking %s failed; retrying in %.0fs",
                booking_id, self.retry_delay,
            )
        # The id was already claimed off the queue; put it back or it is lost.
        try:
            await self.queue.schedule(booking_id, self.retry_delay)
        except Exception:
            logger.exception(
                "Could not re-queue booking %s; left for startup recovery",
                booking_id,
            )
        return DispatchOutcome.RESCHEDULED

    async def _attempt(self, booking_id: int) -> DispatchOutcome:
        now = self.clock()
        async with self.session_factory() as session:
            bookings = BookingRepository(session)
            booking = await bookings.get_for_update(booking_id)
            if (
                booking is None
                or booking.kind != BookingKind.EMERGENCY
                or booking.status != BookingStatus.PENDING
                or booking.driver_id is not None
                or booking.dispatch_escalated_at is not None
            ):
                logger.info(
                    "Dispatch skipped for booking %s: no longer awaiting a driver",
                    booking_id,
                )
                return DispatchOutcome.SKIPPED

            task = DispatchTask.for_booking(booking, now).next_attempt()
            booking.dispatch_attempts = task.attempt
            booking.dispatch_started_at = task.started_at
            pickup = None
            if booking.pickup_lat is not None and booking.pickup_lng is not None:
                pickup = Location(booking.pickup_lat, booking.pickup_lng)
            await session.commit()

            phase = task.phase(now, self.nearby_window)
            try:
                candidate = None
                if task.elapsed(now) <= self.total_window:
                    candidate = await self._find_candidate(session, task, phase, pickup)

                if candidate is not None:
                    result = await self.guard.try_assign(
                        session,
                        booking_id,
                        candidate.driver_id,
                        target=BookingStatus.DISPATCHED,
                        source=f"scheduler:{phase.value}",
                    )
                    if result.assigned:
                        logger.info(
                            "Emergency booking %s dispatched to driver %s "
                            "(phase=%s, attempt=%d, elapsed=%.1fs)",
                            booking_id, candidate.driver_id, phase.value,
                            task.attempt, task.elapsed(now),
                        )
                        return DispatchOutcome.ASSIGNED
                    if result.outcome in (
                        AssignOutcome.ALREADY_TAKEN,
                        AssignOutcome.BOOKING_NOT_PENDING,
                    ):
                        return DispatchOutcome.STOPPED
            except Exception:
                logger.exception(
                    "Dispatch attempt %d for booking %s failed", task.attempt, booking_id
                )
                await session.rollback()

            return await self._retry_or_escalate(session, task, now)

    async def recover(self) -> int:
        """Re-queue unfinished emergency dispatches, e.g. after a restart."""
        async with self.session_factory() as session:
            pending = await BookingRepository(session).get_unassigned_emergencies()
            booking_ids = [b.id for b in pending]
        requeued = 0
        for booking_id in booking_ids:
            if await self.queue.schedule(booking_id, only_if_absent=True):
                requeued += 1
        if requeued:
            logger.info("Recovered %d emergency dispatch task(s)", requeued)
        return requeued

    # ── Internals ─────────────────────────────────────────────────────

    async def _find_candidate(
        self,
        session: AsyncSession,
        task: DispatchTask,
        phase: DispatchPhase,
        pickup: Optional[Location],
    ) -> Optional[Candidate]:
        drivers = await DriverRepository(session).get_eligible()
        candidates = [Candidate.from_driver(d) for d in drivers]
        choice = select_candidate(candidates, phase, pickup, self.rng)
        logger.info(
            "Booking %s attempt %d (%s): %d eligible driver(s), candidate %s",
            task.booking_id, task.attempt, phase.value, len(candidates),
            choice.driver_id if choice else None,
        )
        return choice

    async def _retry_or_escalate(
        self, session: AsyncSession, task: DispatchTask, now: datetime
    ) -> DispatchOutcome:
        if task.attempt < self.max_attempts and task.elapsed(now) < self.total_window:
            await self.queue.schedule(task.booking_id, self.retry_delay)
            logger.info(
                "No driver for booking %s on attempt %d; retrying in %.0fs",
                task.booking_id, task.attempt, self.retry_delay,
            )
            return DispatchOutcome.RESCHEDULED

        escalated = await BookingRepository(session).mark_escalated(task.booking_id, now)
        await session.commit()
        if escalated:
            logger.warning(
                "No driver available for emergency booking %s after %d attempt(s)",
                task.booking_id, task.attempt,
            )
            await self.bus.publish(
                [UnassignedEscalation(task.booking_id, task.attempt, occurred_at=now)]
            )
        return DispatchOutcome.ESCALATED


# ── Background loop ───────────────────────────────────────────────────

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


async def build_dispatcher() -> EmergencyDispatcher:
    services = await default_services()
    return EmergencyDispatcher(
        async_session_factory, services.queue, services.guard, services.bus
    )


async def start_dispatch_loop() -> None:
    global _task, _stop_event
    dispatcher = await build_dispatcher()
    try:
        await dispatcher.recover()
    except Exception:
        logger.exception("Dispatch recovery failed; continuing with live queue")
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(dispatcher))
    logger.info(
        "Dispatch worker started (poll=%.1fs)", settings.dispatch_poll_interval_seconds
    )


async def stop_dispatch_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Dispatch worker stopped")


async def _loop(dispatcher: EmergencyDispatcher) -> None:
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await dispatcher.run_due()
        except Exception:
            logger.exception("Unhandled error in dispatch poll")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.dispatch_poll_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass

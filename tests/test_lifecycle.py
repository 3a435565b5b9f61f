"""Booking lifecycle tests: driver actions, payment gates and cancellation."""

from datetime import timedelta

import pytest

from ambulance_dispatch.domain.enums import (
    BookingKind,
    BookingStatus,
    DriverStatus,
    ErrorKind,
    PaymentStatus,
    PaymentType,
    VehicleStatus,
)
from ambulance_dispatch.domain.lifecycle import EMERGENCY_DEPART_WARNING
from ambulance_dispatch.infrastructure.repositories import PaymentRepository
from ambulance_dispatch.services.lifecycle import (
    FAILED_PAYMENT_RETRY_REASON,
    OVERDUE_DOWNPAYMENT_REASON,
)
from tests.conftest import add_booking, add_driver, assign


async def arrived_emergency(db_session, services):
    driver, vehicle = await add_driver(db_session)
    booking = await add_booking(db_session, kind=BookingKind.EMERGENCY)
    await assign(db_session, services, booking, driver, BookingStatus.DISPATCHED)
    assert (await services.lifecycle.arrive(db_session, booking.id, driver.id)).success
    return booking, driver, vehicle


# ── Happy paths ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_accept_confirms_pending_booking(db_session, services):
    driver, _ = await add_driver(db_session)
    booking = await add_booking(db_session)

    result = await services.lifecycle.accept(db_session, booking.id, driver.id)

    assert result.success
    assert result.message == "Booking accepted."
    await db_session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_scheduled_booking_full_trip(db_session, services, publisher, clock):
    driver, vehicle = await add_driver(db_session)
    booking = await add_booking(db_session, is_downpayment_paid=True)
    lifecycle = services.lifecycle

    assert (await lifecycle.accept(db_session, booking.id, driver.id)).success
    assert (await lifecycle.start(db_session, booking.id, driver.id)).success
    assert (await lifecycle.arrive(db_session, booking.id, driver.id)).success
    assert (await lifecycle.depart(db_session, booking.id, driver.id)).success
    result = await lifecycle.complete(db_session, booking.id, driver.id)

    assert result.success
    for obj in (booking, driver, vehicle):
        await db_session.refresh(obj)
    assert booking.status == BookingStatus.COMPLETED
    assert booking.pickup_time is not None
    assert booking.completion_time is not None
    assert driver.status == DriverStatus.AVAILABLE
    assert driver.current_booking_id is None
    assert driver.total_trips == 1
    assert vehicle.status == VehicleStatus.AVAILABLE
    statuses = [
        e.new_status for e in publisher.named("booking_status_changed")
    ]
    assert statuses == [
        BookingStatus.CONFIRMED,
        BookingStatus.DISPATCHED,
        BookingStatus.ARRIVED,
        BookingStatus.ENROUTE,
        BookingStatus.COMPLETED,
    ]


# ── Payment gates ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_emergency_complete_requires_payment(db_session, services):
    booking, driver, vehicle = await arrived_emergency(db_session, services)

    rejected = await services.lifecycle.complete(db_session, booking.id, driver.id)

    assert not rejected.success
    assert rejected.error_kind == ErrorKind.PAYMENT_REQUIRED
    for obj in (booking, driver, vehicle):
        await db_session.refresh(obj)
    assert booking.status == BookingStatus.ARRIVED
    assert driver.status == DriverStatus.BUSY
    assert vehicle.status == VehicleStatus.ON_DUTY


@pytest.mark.asyncio
async def test_emergency_complete_with_payment_frees_resources(db_session, services):
    booking, driver, vehicle = await arrived_emergency(db_session, services)
    paid = await services.lifecycle.record_payment(
        db_session,
        booking.id,
        payment_type=PaymentType.FULL_PAYMENT,
        status=PaymentStatus.PAID,
        amount=350.0,
    )
    assert paid.success

    result = await services.lifecycle.complete(db_session, booking.id, driver.id)

    assert result.success
    for obj in (booking, driver, vehicle):
        await db_session.refresh(obj)
    assert booking.status == BookingStatus.COMPLETED
    assert driver.status == DriverStatus.AVAILABLE
    assert driver.current_booking_id is None
    assert vehicle.status == VehicleStatus.AVAILABLE


@pytest.mark.asyncio
async def test_emergency_depart_unpaid_succeeds_with_warning(db_session, services):
    booking, driver, _ = await arrived_emergency(db_session, services)

    result = await services.lifecycle.depart(db_session, booking.id, driver.id)

    assert result.success
    assert result.warning == EMERGENCY_DEPART_WARNING
    await db_session.refresh(booking)
    assert booking.status == BookingStatus.ENROUTE


@pytest.mark.asyncio
async def test_scheduled_depart_requires_downpayment(db_session, services):
    driver, _ = await add_driver(db_session)
    booking = await add_booking(db_session)
    await assign(db_session, services, booking, driver)
    await services.lifecycle.start(db_session, booking.id, driver.id)
    await services.lifecycle.arrive(db_session, booking.id, driver.id)

    rejected = await services.lifecycle.depart(db_session, booking.id, driver.id)
    assert rejected.error_kind == ErrorKind.PAYMENT_REQUIRED

    await services.lifecycle.record_payment(
        db_session,
        booking.id,
        payment_type=PaymentType.DOWNPAYMENT,
        status=PaymentStatus.PAID,
    )
    assert (await services.lifecycle.depart(db_session, booking.id, driver.id)).success


# ── Rejections ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_non_adjacent_transition_rejected_without_change(db_session, services):
    driver, _ = await add_driver(db_session)
    booking = await add_booking(db_session)
    await assign(db_session, services, booking, driver)

    result = await services.lifecycle.depart(db_session, booking.id, driver.id)

    assert result.error_kind == ErrorKind.INVALID_STATE
    await db_session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_other_driver_cannot_act(db_session, services):
    d1, _ = await add_driver(db_session, name="d1")
    d2, _ = await add_driver(db_session, name="d2")
    booking = await add_booking(db_session)
    await assign(db_session, services, booking, d1)

    result = await services.lifecycle.start(db_session, booking.id, d2.id)

    assert result.error_kind == ErrorKind.WRONG_ACTOR


@pytest.mark.asyncio
async def test_unknown_booking_not_found(db_session, services):
    result = await services.lifecycle.start(db_session, 404, 1)
    assert result.error_kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_emergency_accept_rejects_scheduled_booking(db_session, services):
    driver, _ = await add_driver(db_session)
    booking = await add_booking(db_session)

    result = await services.lifecycle.accept_emergency(db_session, booking.id, driver.id)

    assert result.error_kind == ErrorKind.NOT_EMERGENCY


# ── Cancellation ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_cancel_frees_driver_and_vehicle(db_session, services, publisher):
    driver, vehicle = await add_driver(db_session)
    booking = await add_booking(db_session, kind=BookingKind.EMERGENCY)
    await assign(db_session, services, booking, driver, BookingStatus.DISPATCHED)

    result = await services.lifecycle.cancel(
        db_session, booking.id, driver.id, "  Vehicle breakdown  "
    )

    assert result.success
    for obj in (booking, driver, vehicle):
        await db_session.refresh(obj)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancellation_reason == "Vehicle breakdown"
    assert booking.cancelled_by == f"driver:{driver.id}"
    assert driver.status == DriverStatus.AVAILABLE
    assert driver.current_booking_id is None
    assert vehicle.status == VehicleStatus.AVAILABLE

    events_before = len(publisher.events)
    again = await services.lifecycle.cancel(
        db_session, booking.id, driver.id, "Vehicle breakdown"
    )
    assert not again.success
    assert again.error_kind == ErrorKind.INVALID_STATE
    assert len(publisher.events) == events_before
    await db_session.refresh(driver)
    assert driver.status == DriverStatus.AVAILABLE


@pytest.mark.asyncio
async def test_cancel_without_reason_changes_nothing(db_session, services):
    driver, _ = await add_driver(db_session)
    booking = await add_booking(db_session)
    await assign(db_session, services, booking, driver)

    result = await services.lifecycle.cancel(db_session, booking.id, driver.id, "  ")

    assert result.error_kind == ErrorKind.MISSING_REASON
    await db_session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_freed_vehicle_in_maintenance_keeps_status(db_session, services):
    driver, vehicle = await add_driver(db_session)
    booking = await add_booking(db_session, kind=BookingKind.EMERGENCY)
    await assign(db_session, services, booking, driver, BookingStatus.DISPATCHED)
    await db_session.refresh(vehicle)
    vehicle.status = VehicleStatus.MAINTENANCE
    await db_session.commit()

    await services.lifecycle.cancel(db_session, booking.id, driver.id, "Engine fault")

    await db_session.refresh(vehicle)
    assert vehicle.status == VehicleStatus.MAINTENANCE


# ── Payment events ────────────────────────────────────────────────────


async def fail_payment(lifecycle, session, booking_id):
    return await lifecycle.record_payment(
        session,
        booking_id,
        payment_type=PaymentType.DOWNPAYMENT,
        status=PaymentStatus.FAILED,
    )


@pytest.mark.asyncio
async def test_failed_payment_then_settlement(db_session, services):
    driver, _ = await add_driver(db_session)
    booking = await add_booking(db_session)
    lifecycle = services.lifecycle

    await fail_payment(lifecycle, db_session, booking.id)
    await db_session.refresh(booking)
    assert booking.status == BookingStatus.PAYMENT_FAILED

    await lifecycle.record_payment(
        db_session,
        booking.id,
        payment_type=PaymentType.DOWNPAYMENT,
        status=PaymentStatus.PAID,
        reference="TX-1",
    )
    await db_session.refresh(booking)
    assert booking.status == BookingStatus.PENDING
    assert booking.driver_id is None
    assert booking.is_downpayment_paid
    assert not booking.is_fully_paid
    payment = await PaymentRepository(db_session).get_for_booking(booking.id)
    await db_session.refresh(payment)
    assert payment.status == PaymentStatus.PAID
    assert payment.reference == "TX-1"

    accepted = await lifecycle.accept(db_session, booking.id, driver.id)
    assert accepted.success
    await db_session.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.driver_id == driver.id


@pytest.mark.asyncio
async def test_failed_payment_retry_cancels_booking(db_session, services, publisher):
    booking = await add_booking(db_session)

    await fail_payment(services.lifecycle, db_session, booking.id)
    await fail_payment(services.lifecycle, db_session, booking.id)

    await db_session.refresh(booking)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancelled_by == "system"
    assert booking.cancellation_reason == FAILED_PAYMENT_RETRY_REASON
    changes = publisher.named("booking_status_changed")
    assert [e.new_status for e in changes] == [
        BookingStatus.PAYMENT_FAILED,
        BookingStatus.CANCELLED,
    ]


@pytest.mark.asyncio
async def test_failed_payment_keeps_emergency_pending(db_session, services, publisher):
    booking = await add_booking(db_session, kind=BookingKind.EMERGENCY)

    result = await fail_payment(services.lifecycle, db_session, booking.id)

    assert result.success
    await db_session.refresh(booking)
    assert booking.status == BookingStatus.PENDING
    assert publisher.named("booking_status_changed") == []


@pytest.mark.asyncio
async def test_overdue_sweep_cancels_payment_failed_booking(db_session, services, clock):
    booking = await add_booking(
        db_session, dp_payment_deadline=clock.now - timedelta(minutes=5)
    )
    await fail_payment(services.lifecycle, db_session, booking.id)

    assert await services.lifecycle.cancel_overdue_downpayments(db_session) == 1

    await db_session.refresh(booking)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancellation_reason == OVERDUE_DOWNPAYMENT_REASON


@pytest.mark.asyncio
async def test_payment_for_unknown_booking(db_session, services):
    result = await services.lifecycle.record_payment(
        db_session, 999, payment_type=PaymentType.FULL_PAYMENT, status=PaymentStatus.PAID
    )
    assert result.error_kind == ErrorKind.NOT_FOUND


# ── Overdue downpayments ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_overdue_downpayments_are_cancelled(db_session, services, clock, publisher):
    overdue = await add_booking(
        db_session, dp_payment_deadline=clock.now - timedelta(hours=1)
    )
    not_due = await add_booking(
        db_session, dp_payment_deadline=clock.now + timedelta(hours=1)
    )
    paid = await add_booking(
        db_session,
        dp_payment_deadline=clock.now - timedelta(hours=1),
        is_downpayment_paid=True,
    )

    cancelled = await services.lifecycle.cancel_overdue_downpayments(db_session)

    assert cancelled == 1
    for obj in (overdue, not_due, paid):
        await db_session.refresh(obj)
    assert overdue.status == BookingStatus.CANCELLED
    assert overdue.cancellation_reason == OVERDUE_DOWNPAYMENT_REASON
    assert overdue.cancelled_by == "system"
    assert not_due.status == BookingStatus.PENDING
    assert paid.status == BookingStatus.PENDING
    assert [e.booking_id for e in publisher.named("booking_status_changed")] == [
        overdue.id
    ]

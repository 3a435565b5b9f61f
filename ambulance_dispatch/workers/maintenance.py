"""
Background Maintenance Worker
=============================

Runs every ``MAINTENANCE_INTERVAL_SECONDS`` (default 60 s) and cancels
scheduled bookings whose downpayment deadline passed while still pending.

A Redis distributed lock keeps the sweep single-instance across API
processes; the row locks taken by the lifecycle keep it safe against a
driver accepting the same booking mid-sweep.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from ambulance_dispatch.config import settings
from ambulance_dispatch.infrastructure.database import async_session_factory
from ambulance_dispatch.infrastructure.locks import DistributedLock
from ambulance_dispatch.infrastructure.redis_client import get_redis
from ambulance_dispatch.services.factory import default_services
from ambulance_dispatch.services.lifecycle import BookingLifecycle

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


async def run_maintenance_cycle(
    lifecycle: BookingLifecycle,
    lock: DistributedLock,
    session_factory: async_sessionmaker = async_session_factory,
) -> int:
    """Run one sweep.  Returns the number of bookings cancelled."""
    if not await lock.acquire():
        logger.debug("Maintenance lock held by another worker - skipping cycle")
        return 0
    try:
        async with session_factory() as session:
            cancelled = await lifecycle.cancel_overdue_downpayments(session)
    finally:
        await lock.release()
    if cancelled:
        logger.info("Maintenance cycle cancelled %d overdue booking(s)", cancelled)
    return cancelled


# ── Public API ────────────────────────────────────────────────────────


async def start_maintenance_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Maintenance worker started (interval=%ds)",
        settings.maintenance_interval_seconds,
    )


async def stop_maintenance_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Maintenance worker stopped")


async def _loop() -> None:
    assert _stop_event is not None
    services = await default_services()
    redis = await get_redis()
    while not _stop_event.is_set():
        try:
            lock = DistributedLock(
                redis, "maintenance", ttl_seconds=settings.maintenance_interval_seconds
            )
            await run_maintenance_cycle(services.lifecycle, lock)
        except Exception:
            logger.exception("Unhandled error in maintenance cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.maintenance_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass

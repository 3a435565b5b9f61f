"""
Phased Emergency Dispatch
=========================

1. **Nearby phase**    -- while elapsed <= 30 s: the eligible driver
   closest to the pickup point (Haversine).  Without a pickup point the
   most recently active driver is used instead.
2. **Broadcast phase** -- while 30 s < elapsed <= 90 s: any eligible driver,
   chosen uniformly at random so equidistant or stale-location drivers are
   not starved.
3. Past the total window no search is performed.

The phase is a pure function of elapsed time.  The task record carried
between attempts is ``DispatchTask``; it is persisted on the booking row
so any worker can resume it.

Complexity: O(n) per search over n eligible drivers.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Sequence

from .distance import haversine_km
from .entities import Candidate, Location, as_utc
from .enums import DispatchPhase


def phase_for(elapsed_seconds: float, nearby_window: float = 30.0) -> DispatchPhase:
    if elapsed_seconds <= nearby_window:
        return DispatchPhase.NEARBY
    return DispatchPhase.BROADCAST


@dataclass(frozen=True)
class DispatchTask:
    booking_id: int
    attempt: int
    started_at: datetime

    @classmethod
    def for_booking(cls, booking, now: datetime) -> "DispatchTask":
        """Rebuild the task from the booking's durable dispatch columns."""
        return cls(
            booking_id=booking.id,
            attempt=booking.dispatch_attempts or 0,
            started_at=as_utc(booking.dispatch_started_at) or now,
        )

    def next_attempt(self) -> "DispatchTask":
        return replace(self, attempt=self.attempt + 1)

    def elapsed(self, now: datetime) -> float:
        return (now - self.started_at).total_seconds()

    def phase(self, now: datetime, nearby_window: float = 30.0) -> DispatchPhase:
        return phase_for(self.elapsed(now), nearby_window)


# ── Candidate selection ───────────────────────────────────────────────


def nearest(
    candidates: Sequence[Candidate], pickup: Location
) -> Optional[Candidate]:
    """Closest candidate to *pickup*; candidates without a location go last."""
    if not candidates:
        return None

    def key(c: Candidate) -> tuple[int, float]:
        if c.location is None:
            return (1, 0.0)
        return (
            0,
            haversine_km(
                pickup.latitude, pickup.longitude,
                c.location.latitude, c.location.longitude,
            ),
        )

    return min(candidates, key=key)


def most_recently_active(candidates: Sequence[Candidate]) -> Optional[Candidate]:
    if not candidates:
        return None
    known = [c for c in candidates if c.last_active_at is not None]
    if not known:
        return candidates[0]
    return max(known, key=lambda c: c.last_active_at)


def pick_random(
    candidates: Sequence[Candidate], rng: random.Random | None = None
) -> Optional[Candidate]:
    if not candidates:
        return None
    return (rng or random).choice(list(candidates))


def select_candidate(
    candidates: Sequence[Candidate],
    phase: DispatchPhase,
    pickup: Optional[Location],
    rng: random.Random | None = None,
) -> Optional[Candidate]:
    if phase == DispatchPhase.BROADCAST:
        return pick_random(candidates, rng)
    if pickup is None:
        return most_recently_active(candidates)
    return nearest(candidates, pickup)

"""Unit tests for dispatch phases, the task record and candidate selection."""

import random
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from ambulance_dispatch.domain.dispatch import (
    DispatchTask,
    most_recently_active,
    nearest,
    phase_for,
    pick_random,
    select_candidate,
)
from ambulance_dispatch.domain.entities import Candidate, Location
from ambulance_dispatch.domain.enums import DispatchPhase

T0 = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
PICKUP = Location(-6.2, 106.8)

# ~1.2 km and ~3.4 km north of the pickup
NEAR = Candidate(1, 11, Location(-6.189208, 106.8))
FAR = Candidate(2, 12, Location(-6.169423, 106.8))


class TestPhase:
    def test_nearby_until_window(self):
        assert phase_for(0) == DispatchPhase.NEARBY
        assert phase_for(29) == DispatchPhase.NEARBY
        assert phase_for(30) == DispatchPhase.NEARBY

    def test_broadcast_after_window(self):
        assert phase_for(31) == DispatchPhase.BROADCAST
        assert phase_for(89) == DispatchPhase.BROADCAST

    def test_custom_window(self):
        assert phase_for(11, nearby_window=10) == DispatchPhase.BROADCAST


class TestDispatchTask:
    def test_first_attempt_starts_now(self):
        booking = SimpleNamespace(id=7, dispatch_attempts=0, dispatch_started_at=None)
        task = DispatchTask.for_booking(booking, T0).next_attempt()
        assert task.attempt == 1
        assert task.started_at == T0

    def test_resumes_from_naive_stored_start(self):
        booking = SimpleNamespace(
            id=7, dispatch_attempts=3, dispatch_started_at=datetime(2026, 10, 19, 8, 0)
        )
        now = T0 + timedelta(seconds=31)
        task = DispatchTask.for_booking(booking, now)
        assert task.attempt == 3
        assert task.elapsed(now) == 31
        assert task.phase(now) == DispatchPhase.BROADCAST


class TestSelection:
    def test_nearest_prefers_closer_driver(self):
        assert nearest([FAR, NEAR], PICKUP) == NEAR

    def test_nearest_puts_unknown_location_last(self):
        unknown = Candidate(3, 13)
        assert nearest([unknown, FAR], PICKUP) == FAR

    def test_most_recently_active(self):
        old = Candidate(1, 11, last_active_at=T0)
        new = Candidate(2, 12, last_active_at=T0 + timedelta(minutes=5))
        assert most_recently_active([old, new]) == new

    def test_empty_pool(self):
        assert nearest([], PICKUP) is None
        assert pick_random([]) is None
        assert select_candidate([], DispatchPhase.NEARBY, PICKUP) is None

    def test_nearby_phase_ranks_by_distance(self):
        for _ in range(5):
            assert select_candidate([FAR, NEAR], DispatchPhase.NEARBY, PICKUP) == NEAR

    def test_nearby_without_pickup_uses_recent_activity(self):
        a = Candidate(1, 11, NEAR.location, last_active_at=T0)
        b = Candidate(2, 12, FAR.location, last_active_at=T0 + timedelta(seconds=1))
        assert select_candidate([a, b], DispatchPhase.NEARBY, None) == b

    def test_broadcast_phase_is_random(self):
        rng = random.Random(4)
        picks = {
            select_candidate([NEAR, FAR], DispatchPhase.BROADCAST, PICKUP, rng).driver_id
            for _ in range(50)
        }
        assert picks == {1, 2}

# tests/conftest.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import pytest

from protosched.config import SchedulerConfig
from protosched.runtime.scheduler import Scheduler
from protosched.runtime.ticks import FrameSignal, PhaseCycle
from protosched.runtime.timers import ManualClock

FRAME = 1 / 60


@pytest.fixture
def cycle():
    """Three-phase frame with the heartbeat in the middle."""
    return PhaseCycle(("pre", "heartbeat", "post"), "heartbeat")


@pytest.fixture
def signal(cycle):
    return FrameSignal(cycle)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def faults():
    """Collects every ExecutorFault reported by the scheduler."""
    return []


@pytest.fixture
def scheduler(signal, clock, faults):
    """A started scheduler on a manual clock; the first tick is a heartbeat."""
    sched = Scheduler(
        SchedulerConfig(preallocate=2),
        clock=clock,
        tick_source=signal,
        fault_handler=faults.append,
    )
    sched.start()
    yield sched
    if sched.active:
        sched.shutdown()


@pytest.fixture
def tick(scheduler, signal):
    """Fire exactly the phase the dispatch loop is waiting for, ``count`` times."""

    def _tick(count=1, dt=FRAME):
        for _ in range(count):
            signal.fire(scheduler.phase, dt)

    return _tick


@pytest.fixture
def heartbeat(scheduler, tick, cycle):
    """Tick until the heartbeat phase has been processed."""

    def _heartbeat():
        while scheduler.phase != cycle.heartbeat:
            tick()
        tick()

    return _heartbeat


@pytest.fixture
def settle(tick):
    """Tick until ``process`` is terminal, failing after ``limit`` ticks."""

    def _settle(process, limit=100):
        for _ in range(limit):
            if not process.status.is_pending:
                return process.status
            tick()
        if process.status.is_pending:
            pytest.fail(f"{process!r} still pending after {limit} ticks")
        return process.status

    return _settle


@pytest.fixture
def trace():
    return []


# tests/unit/runtime/test_scheduler.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import logging

import pytest

from protosched.config import SchedulerConfig
from protosched.core.errors import ConfigurationError, ExecutorFault
from protosched.core.process import Process, ProcessStatus
from protosched.runtime.scheduler import Scheduler, SchedulerStats
from protosched.runtime.ticks import FrameSignal, PhaseCycle
from protosched.runtime.timers import ManualClock


# -----------------------------------------------------------------------------
# CONFIGURATION AND LIFECYCLE
# -----------------------------------------------------------------------------
def test_config_validation():
    with pytest.raises(ConfigurationError):
        SchedulerConfig(preallocate=-1)
    with pytest.raises(ConfigurationError):
        SchedulerConfig(preallocate="4")
    with pytest.raises(ConfigurationError):
        SchedulerConfig(preallocate=True)


def test_unknown_start_phase_rejected(signal):
    with pytest.raises(ConfigurationError):
        Scheduler(SchedulerConfig(start_phase="nope"), tick_source=signal)


def test_start_phase_defaults_to_heartbeat(signal):
    assert Scheduler(tick_source=signal).phase == "heartbeat"
    assert Scheduler(SchedulerConfig(start_phase="pre"), tick_source=signal).phase == "pre"


def test_default_collaborators():
    sched = Scheduler()
    assert isinstance(sched.tick_source, FrameSignal)
    assert sched.clock.now() >= 0
    assert not sched.active


def test_start_preallocates(scheduler):
    stats = scheduler.stats()
    assert stats.allocated == 2
    assert stats.idle == 2
    assert stats.fast_allocated == 2
    assert stats.fast_idle == 2


def test_start_override_preallocation(signal, clock):
    sched = Scheduler(tick_source=signal, clock=clock).start(preallocate=5)
    assert sched.stats().allocated == 5
    sched.shutdown()


def test_start_twice_is_reported(scheduler, caplog):
    with caplog.at_level(logging.WARNING):
        assert scheduler.start() is scheduler
    assert "already active" in caplog.text


def test_shutdown_twice_is_reported(scheduler, caplog):
    scheduler.shutdown()
    with caplog.at_level(logging.WARNING):
        scheduler.shutdown()
    assert "not active" in caplog.text
    assert scheduler.stats() == SchedulerStats()


def test_shutdown_stops_dispatch(scheduler, signal, trace):
    scheduler.defer(trace.append, 1)
    scheduler.shutdown()
    signal.run_cycles(3)
    assert trace == []
    assert signal.listener_count("heartbeat") == 0


def test_restart_after_shutdown(scheduler, signal, trace):
    scheduler.shutdown()
    scheduler.start()
    scheduler.defer(trace.append, "again")
    signal.run_cycles(2)
    assert trace == ["again"]


def test_operations_require_active_scheduler(signal, caplog):
    sched = Scheduler(tick_source=signal)
    with caplog.at_level(logging.WARNING):
        assert sched.spawn(print) is None
        assert sched.defer(print) is None
        assert sched.delay(1, print) is None
        assert sched.fast_spawn(print) is None
    assert caplog.text.count("scheduler is not active") == 4


# -----------------------------------------------------------------------------
# SPAWNING
# -----------------------------------------------------------------------------
def test_create_is_ready(scheduler, trace):
    process = scheduler.create(trace.append)
    assert scheduler.status(process) is ProcessStatus.READY
    assert trace == []


def test_spawn_runs_immediately(scheduler):
    process = scheduler.spawn(lambda a, b: (a * b, None), 3, 4)
    assert process.status is ProcessStatus.DONE
    assert process.result == (12, None)
    assert process.args == (3, 4)


def test_spawn_generator_stays_active(scheduler):
    def body(x):
        y = yield
        return x + y[0]

    process = scheduler.spawn(body, 1)
    assert process.status is ProcessStatus.ACTIVE
    assert process.context is not None
    assert scheduler.resume(process, 41) is process
    assert process.result == (42,)


def test_fast_spawn_runs_immediately(scheduler, trace):
    assert scheduler.fast_spawn(trace.append, "fast") is None
    assert trace == ["fast"]


def test_back_to_back_spawns_reuse_one_context(signal, clock):
    sched = Scheduler(SchedulerConfig(preallocate=0), clock=clock, tick_source=signal).start()
    for value in range(5):
        sched.spawn(lambda v: v, value)
    assert sched.stats().allocated == 1
    sched.shutdown()


def test_suspended_processes_hold_their_contexts(scheduler):
    def body():
        yield

    processes = [scheduler.spawn(body) for _ in range(4)]
    stats = scheduler.stats()
    assert stats.allocated == 4
    assert stats.running == 4
    assert stats.idle == 0
    for process in processes:
        scheduler.resume(process)
    assert scheduler.stats().idle == 4


def test_wrap_spawns(scheduler):
    factory = scheduler.wrap(lambda x: x * 2)
    assert factory(21).result == (42,)


# -----------------------------------------------------------------------------
# DEFER AND DELAY
# -----------------------------------------------------------------------------
def test_defer_runs_on_next_tick(scheduler, tick, trace):
    process = scheduler.defer(trace.append, "deferred")
    assert process.status is ProcessStatus.READY
    assert trace == []
    tick()
    assert trace == ["deferred"]
    assert process.status is ProcessStatus.DONE


def test_fast_defer_runs_on_next_tick(scheduler, tick, trace):
    scheduler.fast_defer(trace.append, "fast")
    assert trace == []
    tick()
    assert trace == ["fast"]


def test_deferred_queue_is_fifo_across_kinds(scheduler, tick, trace):
    scheduler.defer(trace.append, 1)
    scheduler.fast_defer(trace.append, 2)
    scheduler.defer(trace.append, 3)
    tick()
    assert trace == [1, 2, 3]


def test_work_deferred_during_drain_waits_a_tick(scheduler, tick, trace):
    def first():
        trace.append("first")
        scheduler.defer(trace.append, "second")

    scheduler.defer(first)
    tick()
    assert trace == ["first"]
    tick()
    assert trace == ["first", "second"]


def test_defer_existing_process_with_args(scheduler, tick, trace):
    process = scheduler.create(trace.append)
    assert scheduler.defer(process, "hello") is process
    tick()
    assert trace == ["hello"]


def test_defer_twice_is_reported(scheduler, tick, trace, caplog):
    process = scheduler.defer(trace.append, 1)
    with caplog.at_level(logging.WARNING):
        assert scheduler.defer(process) is None
    assert "already scheduled" in caplog.text
    tick()
    assert trace == [1]


def test_defer_terminal_process_is_reported(scheduler, caplog):
    process = scheduler.spawn(len, "abc")
    with caplog.at_level(logging.WARNING):
        assert scheduler.defer(process) is None
    assert "DONE" in caplog.text


def test_defer_rejects_non_callables(scheduler, caplog):
    with caplog.at_level(logging.WARNING):
        assert scheduler.defer(42) is None
    assert "neither a process nor an executor" in caplog.text


def test_zero_delay_waits_for_heartbeat(scheduler, tick, trace):
    assert scheduler.phase == "heartbeat"
    process = scheduler.delay(0, trace.append, "late")
    assert trace == []
    assert process.status is ProcessStatus.READY
    tick()
    assert trace == ["late"]
    assert process.status is ProcessStatus.DONE


def test_delay_waits_for_clock(scheduler, clock, heartbeat, tick, trace):
    process = scheduler.delay(1.0, trace.append, "woke")
    assert process.wake_time == pytest.approx(1.0)
    heartbeat()
    tick(3)
    assert trace == []

    clock.advance(1.0)
    heartbeat()
    tick()
    assert trace == ["woke"]


def test_delayed_entries_run_in_wake_order(scheduler, clock, heartbeat, tick, trace):
    scheduler.delay(2.0, trace.append, "two")
    scheduler.fast_delay(1.0, trace.append, "one")
    scheduler.delay(1.5, trace.append, "one and a half")
    clock.advance(2.0)
    heartbeat()
    tick()
    assert trace == ["one", "one and a half", "two"]


def test_delay_only_promotes_on_heartbeat(scheduler, clock, tick, trace):
    tick()  # consume the first heartbeat
    scheduler.delay(0, trace.append, "x")
    tick()  # post
    tick()  # pre
    assert trace == []
    tick()  # heartbeat
    assert trace == ["x"]


def test_invalid_delay_is_reported(scheduler, caplog):
    with caplog.at_level(logging.WARNING):
        assert scheduler.delay(-1, print) is None
        assert scheduler.delay("soon", print) is None
        assert scheduler.fast_delay(float("nan"), print) is None
    assert caplog.text.count("invalid delay") == 3


# -----------------------------------------------------------------------------
# RESUME
# -----------------------------------------------------------------------------
def test_resume_starts_ready_process(scheduler, trace):
    process = scheduler.create(trace.append)
    scheduler.resume(process, "now")
    assert trace == ["now"]
    assert process.status is ProcessStatus.DONE


def test_resume_ready_uses_pending_args(scheduler, trace):
    process = scheduler.create(trace.append)
    process.args = ("pending",)
    scheduler.resume(process)
    assert trace == ["pending"]


def test_resume_queued_process_runs_once(scheduler, tick, trace):
    process = scheduler.defer(trace.append, "once")
    scheduler.resume(process)
    tick()
    assert trace == ["once"]


def test_resume_terminated_is_reported(scheduler, caplog):
    process = scheduler.spawn(len, "")
    with caplog.at_level(logging.WARNING):
        assert scheduler.resume(process) is None
    assert "terminated" in caplog.text


def test_resume_running_process_is_reported(scheduler, caplog):
    holder = {}

    def body():
        holder["result"] = scheduler.resume(holder["process"])

    holder["process"] = scheduler.create(body)
    with caplog.at_level(logging.WARNING):
        scheduler.resume(holder["process"])
    assert holder["result"] is None
    assert "already running" in caplog.text


# -----------------------------------------------------------------------------
# CHAINING
# -----------------------------------------------------------------------------
def test_push_onto_ready_attaches(scheduler):
    head = scheduler.create(len)
    tail = scheduler.push(head, str)
    assert head.next is tail
    assert tail.status is ProcessStatus.READY


def test_push_onto_done_spawns_with_result(scheduler):
    head = scheduler.spawn(lambda: (2, 3))
    tail = scheduler.push(head, lambda a, b: a + b)
    assert tail.status is ProcessStatus.DONE
    assert tail.result == (5,)


def test_push_onto_cancelled_returns_cancelled_stub(scheduler, trace):
    head = scheduler.create(len)
    scheduler.cancel(head)
    tail = scheduler.push(head, trace.append)
    assert tail.status is ProcessStatus.CANCELLED
    assert trace == []


def test_push_twice_is_reported(scheduler, caplog):
    head = scheduler.create(len)
    scheduler.push(head, str)
    with caplog.at_level(logging.WARNING):
        assert scheduler.push(head, repr) is None
    assert "already has a successor" in caplog.text


def test_continuation_is_deferred(scheduler, tick, trace):
    def head():
        yield
        return "a", "b"

    process = scheduler.spawn(head)
    tail = scheduler.push(process, lambda *values: trace.append(values))
    scheduler.resume(process)
    assert process.status is ProcessStatus.DONE
    assert trace == []
    assert tail.status is ProcessStatus.READY
    tick()
    assert trace == [("a", "b")]


# -----------------------------------------------------------------------------
# EXECUTOR FAULTS
# -----------------------------------------------------------------------------
def test_fault_is_reported_and_process_cancelled(scheduler, faults):
    def explode():
        raise RuntimeError("boom")

    process = scheduler.spawn(explode)
    assert process.status is ProcessStatus.CANCELLED
    assert process.context is None
    assert len(faults) == 1
    assert isinstance(faults[0], ExecutorFault)
    assert faults[0].process is process
    assert isinstance(faults[0].error, RuntimeError)


def test_faulted_context_is_not_recycled(scheduler):
    before = scheduler.stats().allocated
    scheduler.spawn(lambda: 1 / 0)
    stats = scheduler.stats()
    assert stats.allocated == before - 1
    assert stats.running == 0


def test_fault_in_dispatch_does_not_stop_the_loop(scheduler, tick, faults, trace):
    scheduler.defer(lambda: {}["missing"])
    scheduler.defer(trace.append, "after")
    tick()
    assert trace == ["after"]
    assert isinstance(faults[0].error, KeyError)


def test_fault_in_fast_process(scheduler, faults):
    scheduler.fast_spawn(int, "not a number")
    assert isinstance(faults[0].error, ValueError)
    assert faults[0].process.executor is int


def test_default_fault_handler_logs(signal, clock, caplog):
    sched = Scheduler(tick_source=signal, clock=clock).start(preallocate=0)
    with caplog.at_level(logging.ERROR):
        sched.spawn(lambda: 1 / 0)
    assert "ZeroDivisionError" in caplog.text
    sched.shutdown()


def test_raising_fault_handler_propagates_to_host(signal, clock):
    def strict(fault):
        raise fault

    sched = Scheduler(tick_source=signal, clock=clock, fault_handler=strict).start()
    sched.defer(lambda: 1 / 0)
    with pytest.raises(ExecutorFault):
        signal.fire(sched.phase, 0.1)
    sched.shutdown()


# -----------------------------------------------------------------------------
# SHUTDOWN AND INTROSPECTION
# -----------------------------------------------------------------------------
def test_shutdown_cancels_running_and_queued(scheduler, trace):
    def body():
        try:
            yield
        finally:
            trace.append("closed")

    running = scheduler.spawn(body)
    queued = scheduler.defer(len, "x")
    delayed = scheduler.delay(5, len, "y")
    scheduler.shutdown()
    assert running.status is ProcessStatus.CANCELLED
    assert running.context is None
    assert queued.status is ProcessStatus.CANCELLED
    assert delayed.status is ProcessStatus.CANCELLED
    assert trace == ["closed"]


def test_shutdown_from_inside_a_process(scheduler, signal, trace):
    def body():
        scheduler.shutdown()
        trace.append("after shutdown")
        yield
        trace.append("never")

    process = scheduler.spawn(body)
    assert process.status is ProcessStatus.CANCELLED
    assert trace == ["after shutdown"]
    signal.run_cycles(2)
    assert not scheduler.active


def test_stats_count_queues(scheduler):
    scheduler.defer(len, "a")
    scheduler.fast_defer(len, "b")
    scheduler.delay(1, len, "c")
    stats = scheduler.stats()
    assert stats.deferred == 2
    assert stats.delayed == 1


def test_debug_log(scheduler, caplog):
    with caplog.at_level(logging.INFO, logger="protosched.runtime.scheduler"):
        stats = scheduler.debug_log()
    assert stats.allocated == 2
    assert "allocated contexts : 2" in caplog.text


def test_single_phase_cycle(clock, trace):
    signal = FrameSignal(PhaseCycle(("only",), "only"))
    sched = Scheduler(tick_source=signal, clock=clock).start()
    sched.delay(0.1, trace.append, "x")
    signal.fire("only", 0.1)
    assert trace == []
    clock.advance(0.1)
    signal.fire("only", 0.1)
    assert trace == ["x"]
    sched.shutdown()


def test_due_work_starts_on_the_heartbeat(scheduler, clock, heartbeat, signal, trace):
    heartbeat()
    scheduler.delay(0.5, lambda: trace.append(scheduler.phase))
    scheduler.fast_delay(0.5, lambda: trace.append("fast"))
    clock.advance(1.0)
    for phase in ("post", "pre", "heartbeat"):
        signal.fire(phase, 0.0)
    # the phase index advances only after the tick, so the heartbeat is still current
    assert trace == ["heartbeat", "fast"]


def test_work_deferred_by_delayed_entry_waits_a_tick(scheduler, tick, trace):
    def woke():
        trace.append("woke")
        scheduler.defer(trace.append, "deferred")

    scheduler.delay(0, woke)
    tick()  # heartbeat
    assert trace == ["woke"]
    tick()
    assert trace == ["woke", "deferred"]


def test_restart_from_inside_fast_process(scheduler, trace):
    def restart():
        scheduler.shutdown()
        scheduler.start()

    scheduler.fast_spawn(restart)
    scheduler.fast_spawn(trace.append, 1)
    assert trace == [1]
    stats = scheduler.stats()
    assert stats.fast_allocated == 2
    assert stats.fast_idle == 2


def test_restart_from_inside_managed_process(scheduler, trace):
    def restart():
        scheduler.shutdown()
        scheduler.start()

    process = scheduler.spawn(restart)
    assert process.status is ProcessStatus.CANCELLED
    scheduler.spawn(trace.append, 2)
    assert trace == [2]
    assert scheduler.stats().allocated == 2

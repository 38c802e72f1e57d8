# protosched/runtime/scheduler.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from numbers import Real
from typing import Any, Generator, List, Optional, Set, Union

from protosched.config import SchedulerConfig
from protosched.core.errors import ConfigurationError, ExecutorFault
from protosched.core.process import FastProcess, Parent, Process, ProcessStatus
from protosched.interfaces.protocols import Clock, TickSource
from protosched.interfaces.types import Executor, Factory, FaultHandler, Values
from protosched.runtime.context import ExecutionContext, Suspend, Waiter
from protosched.runtime.event_queue import DeferredQueue, DelayedQueue
from protosched.runtime.pool import ContextPool
from protosched.runtime.ticks import FrameSignal
from protosched.runtime.timers import MonotonicClock

logger = logging.getLogger(__name__)


def _log_fault(fault: ExecutorFault) -> None:
    logger.error("%s", fault, exc_info=fault.error)


def _is_duration(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value) and value >= 0


@dataclass(frozen=True)
class SchedulerStats:
    """Snapshot of pool, queue and running-context counters."""

    allocated: int = 0
    idle: int = 0
    fast_allocated: int = 0
    fast_idle: int = 0
    running: int = 0
    fast_running: int = 0
    deferred: int = 0
    delayed: int = 0


class Scheduler:
    """
    Cooperative process scheduler.

    Processes run on pooled generator-based contexts. A dispatch loop driven
    by the tick source drains the deferred queue on every tick and, on the
    heartbeat phase, starts every due entry of the delayed queue in the same
    tick. Execution is single-threaded: all mutation happens inside the
    dispatch loop or inside a context's own driver step, so nothing here
    takes a lock.
    """

    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        clock: Optional[Clock] = None,
        tick_source: Optional[TickSource] = None,
        fault_handler: Optional[FaultHandler] = None,
    ) -> None:
        """
        :param config: Static settings; defaults to ``SchedulerConfig()``.
        :param clock: Time source for delays; defaults to a monotonic clock.
        :param tick_source: Host frame phases; defaults to a ``FrameSignal``.
        :param fault_handler: Receives an ``ExecutorFault`` whenever an
            executor raises. Defaults to logging the fault.
        """
        self._config = config or SchedulerConfig()
        self._clock = clock or MonotonicClock()
        self._tick_source = tick_source or FrameSignal()
        self._fault_handler = fault_handler or _log_fault

        self._phases = tuple(self._tick_source.phases)
        self._heartbeat = self._tick_source.heartbeat
        if self._heartbeat not in self._phases:
            raise ConfigurationError("Heartbeat is not part of the tick source's cycle", {"phase": self._heartbeat})
        start_phase = self._config.start_phase
        if start_phase is None:
            start_phase = self._heartbeat
        if start_phase not in self._phases:
            raise ConfigurationError("Start phase is not part of the tick source's cycle", {"phase": start_phase})
        self._start_index = self._phases.index(start_phase)
        self._pindex = self._start_index

        self._active = False
        self._generation = 0
        self._pool: Optional[ContextPool] = None
        self._fast_pool: Optional[ContextPool] = None
        self._deferred = DeferredQueue()
        self._delayed = DelayedQueue()
        self._running: Set[ExecutionContext] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def active(self) -> bool:
        return self._active

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def tick_source(self) -> TickSource:
        return self._tick_source

    @property
    def phase(self) -> Any:
        """The phase the dispatch loop is waiting for."""
        return self._phases[self._pindex]

    def start(self, preallocate: Optional[int] = None) -> "Scheduler":
        """
        Allocate the context pools and start waiting for ticks.

        :param preallocate: Contexts to create up front in each pool,
            overriding the configured amount.
        """
        if self._active:
            logger.warning("cannot start; scheduler is already active")
            return self
        if preallocate is None:
            preallocate = self._config.preallocate
        elif isinstance(preallocate, bool) or not isinstance(preallocate, int) or preallocate < 0:
            logger.warning("invalid preallocation %r; using %d", preallocate, self._config.preallocate)
            preallocate = self._config.preallocate

        self._generation += 1
        self._pool = ContextPool(lambda: ExecutionContext(self))
        self._fast_pool = ContextPool(lambda: ExecutionContext(self, fast=True))
        self._pool.preallocate(preallocate)
        self._fast_pool.preallocate(preallocate)
        self._deferred = DeferredQueue()
        self._delayed = DelayedQueue()
        self._running = set()

        self._active = True
        self._pindex = self._start_index
        self._tick_source.next_tick(self._phases[self._pindex], self._on_tick)
        logger.debug("scheduler started with %d preallocated contexts per pool", preallocate)
        return self

    def shutdown(self) -> "Scheduler":
        """
        Stop the dispatch loop, destroy every context and drop all queued work.
        Processes that were running or queued end up CANCELLED.
        """
        if not self._active:
            logger.warning("cannot shut down; scheduler is not active")
            return self
        self._active = False
        self._generation += 1
        self._tick_source.disconnect(self._phases[self._pindex], self._on_tick)

        for context in list(self._running):
            process = context.process
            if isinstance(process, Process) and process.status.is_pending:
                process.status = ProcessStatus.CANCELLED
                process.context = None
                process.awaiters = []
            context.teardown()
        for entry in list(self._deferred) + list(self._delayed):
            if isinstance(entry, Process) and entry.status is ProcessStatus.READY:
                entry.status = ProcessStatus.CANCELLED
                entry.queued = False
                entry.awaiters = []

        for pool in (self._pool, self._fast_pool):
            for context in pool.drain():
                context.close()
        self._deferred.clear()
        self._delayed.clear()
        self._running = set()
        self._pool = None
        self._fast_pool = None
        self._pindex = self._start_index
        logger.debug("scheduler shut down")
        return self

    # ------------------------------------------------------------------
    # Dispatch loop
    # ------------------------------------------------------------------
    def _on_tick(self, dt: float) -> None:
        if not self._active:
            return
        generation = self._generation
        phase = self._phases[self._pindex]
        try:
            self._drain_deferred()
            if phase == self._heartbeat and self._active and generation == self._generation:
                self._promote_delayed()
        finally:
            if self._active and generation == self._generation:
                self._pindex = (self._pindex + 1) % len(self._phases)
                self._tick_source.next_tick(self._phases[self._pindex], self._on_tick)

    def _drain_deferred(self) -> None:
        self._run_batch(self._deferred.swap())

    def _promote_delayed(self) -> None:
        # Due entries start within this heartbeat; work deferred during
        # this tick stays queued for the next one.
        self._run_batch(self._delayed.pop_due(self._clock.now()))

    def _run_batch(self, batch: List[Union[Process, FastProcess]]) -> None:
        for index, entry in enumerate(batch):
            if not self._active:
                return
            try:
                if isinstance(entry, FastProcess):
                    self._start_fast(entry, entry.args)
                else:
                    entry.queued = False
                    if entry.status is ProcessStatus.READY:
                        self._start(entry, entry.args or ())
            except BaseException:
                self._deferred.requeue(batch[index + 1 :])
                raise

    def _start(self, process: Process, args: Values) -> None:
        process.args = args
        context = self._pool.acquire()
        self._running.add(context)
        context.start(process, args)

    def _start_fast(self, entry: FastProcess, args: Values) -> None:
        context = self._fast_pool.acquire()
        self._running.add(context)
        context.start(entry, args)

    # ------------------------------------------------------------------
    # Context callbacks
    # ------------------------------------------------------------------
    def _release(self, context: ExecutionContext) -> None:
        self._running.discard(context)
        if context.condemned or context.closed or context.generation != self._generation:
            return
        pool = self._fast_pool if context.fast else self._pool
        if pool is not None:
            pool.release(context)

    def _context_destroyed(self, context: ExecutionContext) -> None:
        self._running.discard(context)
        if context.generation != self._generation:
            return
        pool = self._fast_pool if context.fast else self._pool
        if pool is not None:
            pool.discard(context)

    def _context_faulted(self, context: ExecutionContext, error: Exception) -> None:
        process, context.process = context.process, None
        context.closed = True
        if context.waiter is not None:
            context.waiter.detach()
            context.waiter = None
        self._context_destroyed(context)
        if isinstance(process, Process):
            process.context = None
            if process.status.is_pending:
                self._cancel_chain(process)
        self._report_fault(process, error)

    def _report_fault(self, process: Optional[Union[Process, FastProcess]], error: BaseException) -> None:
        self._fault_handler(ExecutorFault(process, error))

    def _enqueue_successor(self, process: Process, values: Values) -> None:
        if not self._active or process.status is not ProcessStatus.READY:
            return
        process.args = values
        process.queued = True
        self._deferred.push(process)

    # ------------------------------------------------------------------
    # Process creation
    # ------------------------------------------------------------------
    def _require_active(self, operation: str) -> bool:
        if not self._active:
            logger.warning("[%s]: scheduler is not active", operation)
            return False
        return True

    def _as_process(self, target: Union[Executor, Process], args: Values, operation: str) -> Optional[Process]:
        if isinstance(target, Process):
            if target.status is not ProcessStatus.READY:
                logger.warning("[%s]: cannot schedule a process that is %s", operation, target.status.name)
                return None
            if target.queued:
                logger.warning("[%s]: process is already scheduled: %r", operation, target)
                return None
            if args:
                target.args = args
            return target
        if callable(target):
            return Process(target, args)
        logger.warning("[%s]: %r is neither a process nor an executor", operation, target)
        return None

    def create(self, executor: Executor) -> Process:
        """Allocate a READY process that can be started later."""
        return Process(executor)

    def spawn(self, executor: Executor, *args: Any) -> Optional[Process]:
        """Allocate a process and run it immediately."""
        if not self._require_active("spawn"):
            return None
        process = Process(executor, args)
        self._start(process, args)
        return process

    def fast_spawn(self, executor: Executor, *args: Any) -> None:
        """Run an unmanaged executor immediately."""
        if not self._require_active("fast_spawn"):
            return None
        self._start_fast(FastProcess(executor, args), args)
        return None

    def defer(self, target: Union[Executor, Process], *args: Any) -> Optional[Process]:
        """Schedule a process to run on the next tick."""
        if not self._require_active("defer"):
            return None
        process = self._as_process(target, args, "defer")
        if process is None:
            return None
        process.queued = True
        self._deferred.push(process)
        return process

    def fast_defer(self, executor: Executor, *args: Any) -> None:
        """Schedule an unmanaged executor to run on the next tick."""
        if not self._require_active("fast_defer"):
            return None
        self._deferred.push(FastProcess(executor, args))
        return None

    def delay(self, seconds: float, target: Union[Executor, Process], *args: Any) -> Optional[Process]:
        """
        Schedule a process to run on the first heartbeat at or after
        ``now + seconds``.
        """
        if not self._require_active("delay"):
            return None
        if not _is_duration(seconds):
            logger.warning("[delay]: invalid delay %r", seconds)
            return None
        process = self._as_process(target, args, "delay")
        if process is None:
            return None
        process.wake_time = self._clock.now() + seconds
        process.queued = True
        self._delayed.push(process.wake_time, process)
        return process

    def fast_delay(self, seconds: float, executor: Executor, *args: Any) -> None:
        """Schedule an unmanaged executor on the first heartbeat at or after ``now + seconds``."""
        if not self._require_active("fast_delay"):
            return None
        if not _is_duration(seconds):
            logger.warning("[fast_delay]: invalid delay %r", seconds)
            return None
        self._delayed.push(self._clock.now() + seconds, FastProcess(executor, args))
        return None

    def resume(self, process: Process, *args: Any) -> Optional[Process]:
        """
        Start a READY process now, or resume an ACTIVE process suspended at an
        explicit ``yield``; ``args`` become the value of that ``yield``.
        """
        if not self._require_active("resume"):
            return None
        if process.status is ProcessStatus.READY:
            self._start(process, args if args else (process.args or ()))
            return process
        if process.status is ProcessStatus.ACTIVE:
            context = process.context
            if context.executing:
                logger.warning("[resume]: process is already running: %r", process)
                return None
            if context.waiter is not None:
                logger.warning("[resume]: process is suspended by the scheduler: %r", process)
                return None
            context.resume(args)
            return process
        logger.warning("[resume]: cannot start or resume a terminated process: %r", process)
        return None

    def wrap(self, executor: Executor) -> Factory:
        """Return a factory that spawns ``executor`` with the factory's arguments."""

        def factory(*args: Any) -> Optional[Process]:
            return self.spawn(executor, *args)

        return factory

    def push(self, process: Process, executor: Executor) -> Optional[Process]:
        """
        Chain ``executor`` after ``process``; it receives the process's result
        as its arguments. Returns the continuation.
        """
        if process.status is ProcessStatus.DONE:
            return self.spawn(executor, *process.result)
        if process.status is ProcessStatus.CANCELLED:
            stub = Process(executor)
            stub.status = ProcessStatus.CANCELLED
            return stub
        if process.next is not None:
            logger.warning("[push]: process already has a successor: %r", process)
            return None
        process.next = Process(executor)
        return process.next

    def status(self, process: Process) -> ProcessStatus:
        return process.status

    # ------------------------------------------------------------------
    # Await / cancel
    # ------------------------------------------------------------------
    def wait(self, process: Process, timeout: Optional[float] = None) -> Generator[Any, Any, Optional[Values]]:
        """
        Suspend the calling process until ``process`` finishes or ``timeout``
        seconds pass. Use with ``yield from``.

        Returns ``(ProcessStatus.DONE, *result)`` on completion and
        ``(ProcessStatus.CANCELLED,)`` on cancellation or timeout. A process
        that is already terminal answers without suspending.
        """
        if timeout is not None and not _is_duration(timeout):
            logger.warning("[wait]: invalid timeout %r", timeout)
            return None
        if process.status.is_pending:
            values = yield Suspend(lambda context: self._attach_waiter(context, process, timeout))
            return values
        if process.status is ProcessStatus.DONE:
            return (ProcessStatus.DONE, *process.result)
        return (ProcessStatus.CANCELLED,)

    def get(self, process: Process, timeout: Optional[float] = None) -> Generator[Any, Any, Values]:
        """Like ``wait`` but returns only the result values."""
        values = yield from self.wait(process, timeout)
        if not values:
            return ()
        return tuple(values[1:])

    def _attach_waiter(self, context: ExecutionContext, process: Process, timeout: Optional[float]) -> None:
        waiter = Waiter(context, process)
        if process.context is context:
            logger.warning("[wait]: a process cannot wait for itself: %r", process)
            waiter.settle((ProcessStatus.CANCELLED,))
            return
        if not process.status.is_pending:
            waiter.settle(self._outcome(process))
            return
        process.awaiters.append(waiter)
        if timeout is not None and self._active:
            self._delayed.push(self._clock.now() + timeout, FastProcess(waiter.expire))

    @staticmethod
    def _outcome(process: Process) -> Values:
        if process.status is ProcessStatus.DONE:
            return (ProcessStatus.DONE, *process.result)
        return (ProcessStatus.CANCELLED,)

    def step(self) -> Generator[Any, Any, float]:
        """Suspend the calling process until the next tick; returns elapsed time."""
        started = self._clock.now()
        yield Suspend(self._attach_tick)
        return self._clock.now() - started

    def _attach_tick(self, context: ExecutionContext) -> None:
        waiter = Waiter(context)
        if self._active:
            self._deferred.push(FastProcess(waiter.settle, ((),)))

    def sleep(self, seconds: float) -> Generator[Any, Any, float]:
        """
        Suspend the calling process until the first heartbeat at or after
        ``now + seconds``; returns elapsed time.
        """
        if not _is_duration(seconds):
            logger.warning("[sleep]: invalid duration %r", seconds)
            return 0.0
        started = self._clock.now()
        yield Suspend(lambda context: self._attach_sleep(context, seconds))
        return self._clock.now() - started

    def _attach_sleep(self, context: ExecutionContext, seconds: float) -> None:
        waiter = Waiter(context)
        if self._active:
            self._delayed.push(self._clock.now() + seconds, FastProcess(waiter.settle, ((),)))

    def cancel(self, process: Process) -> None:
        """
        Prevent or stop the execution of ``process``. Awaiters are resumed
        with a cancelled outcome on the next tick; successors and children are
        cancelled too. Cancelling a terminated process is a reported no-op.
        """
        if not process.status.is_pending:
            logger.warning("[cancel]: cannot cancel a terminated process: %r", process)
            return None
        self._cancel_chain(process)
        return None

    def _cancel_chain(self, process: Optional[Process]) -> None:
        while process is not None and process.status.is_pending:
            self._abandon(process)
            process = process.next

    def _abandon(self, process: Process) -> None:
        context = process.context
        process.status = ProcessStatus.CANCELLED
        process.context = None
        waiters, process.awaiters = process.awaiters, []
        for waiter in waiters:
            if self._active:
                self._deferred.push(FastProcess(waiter.settle, ((ProcessStatus.CANCELLED,),)))
            else:
                waiter.detach()
        if isinstance(process, Parent):
            for child in process.children:
                if child.status.is_pending:
                    self._cancel_chain(child)
        if context is not None:
            context.teardown()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def stats(self) -> SchedulerStats:
        if not self._active:
            return SchedulerStats()
        fast_running = sum(1 for context in self._running if context.fast)
        return SchedulerStats(
            allocated=self._pool.allocated,
            idle=self._pool.idle,
            fast_allocated=self._fast_pool.allocated,
            fast_idle=self._fast_pool.idle,
            running=len(self._running) - fast_running,
            fast_running=fast_running,
            deferred=len(self._deferred),
            delayed=len(self._delayed),
        )

    def debug_log(self) -> SchedulerStats:
        """Log the current counters at INFO level and return them."""
        stats = self.stats()
        logger.info("allocated contexts : %d", stats.allocated)
        logger.info("idle contexts : %d", stats.idle)
        logger.info("allocated fast contexts : %d", stats.fast_allocated)
        logger.info("idle fast contexts : %d", stats.fast_idle)
        logger.info("running processes : %d", stats.running)
        logger.info("running fast processes : %d", stats.fast_running)
        logger.info("deferred entries : %d", stats.deferred)
        logger.info("delayed entries : %d", stats.delayed)
        return stats

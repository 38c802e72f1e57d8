# protosched/runtime/context.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Generator, Optional, Union

from protosched.core.process import FastProcess, Process, ProcessStatus, run_executor
from protosched.interfaces.types import Values

if TYPE_CHECKING:
    from protosched.runtime.scheduler import Scheduler

logger = logging.getLogger(__name__)

# Only holders of this token can hand work to an idle context.
_PROCEED = object()
_IDLE = object()


class Suspend:
    """
    Yielded by the scheduler's suspending operations. Once the executor has
    yielded, the context calls ``attach`` with itself so the scheduler can
    register the wake-up against the right context.
    """

    __slots__ = ("attach",)

    def __init__(self, attach: Callable[["ExecutionContext"], None]) -> None:
        self.attach = attach


class Waiter:
    """
    A scheduler-managed suspension of one context. Several wake-ups may race
    for it (completion, cancellation, timeout, tick); the first to settle wins
    and the rest become no-ops.
    """

    __slots__ = ("context", "target", "settled")

    def __init__(self, context: "ExecutionContext", target: Optional[Process] = None) -> None:
        self.context = context
        self.target = target
        self.settled = False
        context.waiter = self

    def settle(self, values: Values) -> bool:
        """Resume the suspended context with ``values`` unless already settled."""
        if self.settled:
            return False
        self.settled = True
        context = self.context
        if context.waiter is not self:
            return False
        context.waiter = None
        return context.resume(values)

    def expire(self) -> None:
        """Timeout path: drop the registration and resume with a cancelled outcome."""
        if self.settled:
            return
        self._unregister()
        self.settle((ProcessStatus.CANCELLED,))

    def detach(self) -> None:
        self.settled = True
        self._unregister()

    def _unregister(self) -> None:
        if self.target is not None and self in self.target.awaiters:
            self.target.awaiters.remove(self)


class ExecutionContext:
    """
    A reusable, suspendable execution unit. Its body is a fixed driver loop
    that idles until handed a process, runs it to completion (suspending as
    often as the executor does), reports completion and returns itself to
    its pool.
    """

    def __init__(self, scheduler: "Scheduler", fast: bool = False) -> None:
        self._scheduler = scheduler
        self.generation = scheduler._generation
        self.fast = fast
        self.process: Optional[Union[Process, FastProcess]] = None
        self.waiter: Optional[Waiter] = None
        self.executing = False
        self.condemned = False
        self.closed = False
        self._gen = self._drive_fast() if fast else self._drive()
        next(self._gen)

    @property
    def idle(self) -> bool:
        return self.process is None and not self.closed

    def start(self, process: Union[Process, FastProcess], args: Values) -> None:
        self._send((_PROCEED, process, args))

    def resume(self, values: Values) -> bool:
        """
        Resume a suspended context with ``values``. Returns False when the
        context is closed or already running.
        """
        if self.closed:
            return False
        if self.executing:
            logger.warning("cannot resume a context that is already running: %r", self.process)
            return False
        self._send(values)
        return True

    def teardown(self) -> None:
        """
        Destroy this context. A context that is on the call stack is condemned
        instead and closed as soon as control returns to it.
        """
        if self.executing:
            self.condemned = True
            return
        self.close()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.waiter is not None:
            self.waiter.detach()
            self.waiter = None
        process, self.process = self.process, None
        try:
            self._gen.close()
        except Exception as exc:
            self._scheduler._context_destroyed(self)
            self._scheduler._report_fault(process, exc)
            return
        self._scheduler._context_destroyed(self)

    def _send(self, message: Any) -> None:
        self.executing = True
        try:
            request = self._gen.send(message)
        except StopIteration:
            # The driver only returns when its process was cancelled mid-run.
            self.executing = False
            self.closed = True
            self.process = None
            self._scheduler._context_destroyed(self)
            return
        except Exception as exc:
            self.executing = False
            self._scheduler._context_faulted(self, exc)
            return
        self.executing = False
        if self.condemned:
            self.close()
        elif isinstance(request, Suspend):
            request.attach(self)

    def _drive(self) -> Generator[Any, Any, None]:
        scheduler = self._scheduler
        while True:
            message = yield _IDLE
            if not isinstance(message, tuple) or not message or message[0] is not _PROCEED:
                continue
            _, process, args = message

            self.process = process
            process.status = ProcessStatus.ACTIVE
            process.context = self
            process.queued = False

            values = yield from run_executor(process.executor, args)
            if process.status is not ProcessStatus.ACTIVE:
                return

            process.status = ProcessStatus.DONE
            process.context = None
            process.result = values

            waiters, process.awaiters = process.awaiters, []
            for waiter in waiters:
                waiter.settle((ProcessStatus.DONE, *values))

            if process.next is not None:
                scheduler._enqueue_successor(process.next, values)

            group = process.group
            if group is not None:
                group.notify(process)

            self.process = None
            scheduler._release(self)

    def _drive_fast(self) -> Generator[Any, Any, None]:
        scheduler = self._scheduler
        while True:
            message = yield _IDLE
            if not isinstance(message, tuple) or not message or message[0] is not _PROCEED:
                continue
            _, entry, args = message

            self.process = entry
            yield from run_executor(entry.executor, args)

            self.process = None
            scheduler._release(self)

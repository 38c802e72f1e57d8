# protosched/core/composition.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Composed executors: sequential chains, retries and protected calls.

Each factory returns a callable that takes the initial arguments and hands
back a process; the composition itself is an ordinary executor run by the
scheduler, with no special support from the dispatch loop.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Generator, Iterable, Optional

from protosched.core.process import Process, run_executor
from protosched.interfaces.types import ErrorHandler, Executor, Factory, Values

if TYPE_CHECKING:
    from protosched.runtime.scheduler import Scheduler

logger = logging.getLogger(__name__)


def chain_factory(scheduler: "Scheduler", executors: Iterable[Executor]) -> Factory:
    """
    Build a factory that runs ``executors`` as a linked chain of processes,
    each stage receiving the previous stage's result as its arguments.

    The factory spawns the first stage and returns the last one, whose
    result is the result of the whole chain.
    """
    stages = list(executors)
    if not stages:
        logger.warning("[chain_factory]: a chain needs at least one executor")

    def factory(*args: Any) -> Optional[Process]:
        if not stages:
            return None
        tail = scheduler.spawn(stages[0], *args)
        for executor in stages[1:]:
            if tail is None:
                return None
            tail = scheduler.push(tail, executor)
        return tail

    return factory


def retry_factory(
    scheduler: "Scheduler",
    count: int,
    executor: Executor,
    delay: Optional[float] = None,
) -> Factory:
    """
    Build a factory that runs ``executor`` up to ``count`` times.

    An attempt succeeds when its first return value is truthy. Between failed
    attempts the process sleeps ``delay`` seconds when a delay is given. The
    process result is the last attempt's full result, successful or not.
    """
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        logger.warning("[retry_factory]: invalid attempt count %r; using 1", count)
        count = 1

    def retry(*args: Any) -> Generator[Any, Any, Values]:
        values: Values = ()
        for attempt in range(count):
            values = yield from run_executor(executor, args)
            if values and values[0]:
                break
            if delay is not None and attempt + 1 < count:
                yield from scheduler.sleep(delay)
        return values

    return scheduler.wrap(retry)


def protected_call_factory(
    scheduler: "Scheduler",
    executor: Executor,
    error_handler: Optional[ErrorHandler] = None,
) -> Factory:
    """
    Build a factory that runs ``executor`` and contains its failures.

    The result is ``(True, *values)`` on success. On failure it is
    ``(False, error)``, or ``(False, *handler_values)`` when an error handler
    was given; the handler is called with the exception.
    """

    def protected(*args: Any) -> Generator[Any, Any, Values]:
        try:
            values = yield from run_executor(executor, args)
        except Exception as error:
            if error_handler is None:
                return (False, error)
            handled = yield from run_executor(error_handler, (error,))
            return (False, *handled)
        return (True, *values)

    return scheduler.wrap(protected)

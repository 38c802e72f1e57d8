# protosched/core/process.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import inspect
import weakref
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Dict, Generator, List, Optional

from protosched.interfaces.types import Executor, UpdateHook, Values

if TYPE_CHECKING:
    from protosched.runtime.context import ExecutionContext, Waiter


class ProcessStatus(Enum):
    """Defines the possible states of a managed process.

    READY -> ACTIVE -> {DONE | CANCELLED}; READY -> CANCELLED.
    No transition leaves DONE or CANCELLED.
    """

    READY = auto()  # Created, not started
    ACTIVE = auto()  # Occupying a context
    DONE = auto()  # Ran to completion, result captured
    CANCELLED = auto()  # Cancelled, timed out or faulted

    @property
    def is_pending(self) -> bool:
        return self is ProcessStatus.READY or self is ProcessStatus.ACTIVE


def pack_values(value: Any) -> Values:
    """
    Normalise an executor's return value into a value sequence.

    ``None`` means no values, a tuple is taken as-is (``None`` gaps and all),
    anything else is a single value.
    """
    if value is None:
        return ()
    if isinstance(value, tuple):
        return value
    return (value,)


def run_executor(executor: Executor, args: Values) -> Generator[Any, Any, Values]:
    """
    Invoke an executor, delegating to it when it is a generator function, and
    return its packed result.
    """
    value = executor(*args)
    if inspect.isgenerator(value):
        value = yield from value
    return pack_values(value)


@dataclass(eq=False)
class Process:
    """
    A managed, awaitable, cancellable unit of scheduled work.

    ``context`` is set only while ACTIVE and ``result`` only once DONE.
    ``args`` is ``None`` until arguments are supplied; ``()`` is an explicit
    empty argument list.
    """

    executor: Executor
    args: Optional[Values] = None
    status: ProcessStatus = ProcessStatus.READY
    context: Optional["ExecutionContext"] = None
    result: Optional[Values] = None
    awaiters: List["Waiter"] = field(default_factory=list)
    next: Optional["Process"] = None
    parent: Optional["weakref.ReferenceType[Parent]"] = None
    wake_time: Optional[float] = None
    queued: bool = False

    @property
    def group(self) -> Optional["Parent"]:
        """The parent group this process reports to, if it is still alive."""
        return self.parent() if self.parent is not None else None

    def __repr__(self) -> str:
        name = getattr(self.executor, "__qualname__", repr(self.executor))
        return f"<{type(self).__name__} {name} {self.status.name}>"


@dataclass(eq=False, repr=False)
class Parent(Process):
    """
    A process that owns an ordered group of child processes.

    Children keep a weak back-reference; every child completion is reported
    through ``update(parent, child)``.
    """

    update: Optional[UpdateHook] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    children: List[Process] = field(default_factory=list)

    def adopt(self, executor: Executor) -> Process:
        """Create a READY child bound to this group."""
        child = Process(executor, parent=weakref.ref(self))
        self.children.append(child)
        return child

    def notify(self, child: Process) -> None:
        if self.update is not None:
            self.update(self, child)


@dataclass(eq=False)
class FastProcess:
    """
    Fire-and-forget unit of work: executor and arguments only. No status,
    result, awaiters or cancellation.
    """

    executor: Executor
    args: Values = ()

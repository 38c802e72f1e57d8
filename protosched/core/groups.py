# protosched/core/groups.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Dict, Generator, Iterable, Optional

from protosched.core.process import Parent, Process, ProcessStatus
from protosched.interfaces.types import Executor, Factory, UpdateHook, Values

if TYPE_CHECKING:
    from protosched.runtime.scheduler import Scheduler

logger = logging.getLogger(__name__)


class GroupSignal(Enum):
    """Values a parent is resumed with by its group."""

    DONE = auto()  # Completion threshold reached


def parent(
    scheduler: "Scheduler",
    executor: Executor,
    update: Optional[UpdateHook],
    fields: Optional[Dict[str, Any]],
    children: Iterable[Executor],
    *args: Any,
) -> Optional[Parent]:
    """
    Spawn a parent process together with one child per executor.

    The parent starts first and is called as ``executor(parent, *args)``.
    Children are then started in order with ``args``; each child that
    completes is reported through ``update(parent, child)``.

    :param fields: Initial per-group state, copied into ``parent.fields``.
    """
    if not scheduler.active:
        logger.warning("[parent]: scheduler is not active")
        return None
    group = Parent(executor, update=update, fields=dict(fields or {}))
    for child_executor in children:
        group.adopt(child_executor)

    if scheduler.resume(group, group, *args) is None:
        return None
    for child in group.children:
        if child.status is ProcessStatus.READY:
            scheduler.resume(child, *args)
    return group


def all_factory(
    scheduler: "Scheduler",
    executors: Iterable[Executor],
    count: Optional[int] = None,
) -> Factory:
    """
    Build a factory whose parent completes once ``count`` children (default:
    all of them) have completed. Children still pending at that point are
    cancelled. The parent's result holds the completed children's results in
    completion order.
    """
    executors = list(executors)
    total = len(executors)
    if count is None:
        need = total
    else:
        need = max(0, min(count, total))

    def count_completion(group: Parent, child: Process) -> None:
        fields = group.fields
        fields["completed"].append(child)
        if len(fields["completed"]) >= fields["need"] and fields["parked"]:
            if group.status is ProcessStatus.ACTIVE:
                scheduler.resume(group, GroupSignal.DONE)

    def gather(group: Parent, *args: Any) -> Generator[Any, Any, Values]:
        fields = group.fields
        while len(fields["completed"]) < fields["need"]:
            fields["parked"] = True
            yield
            fields["parked"] = False
        for child in group.children:
            if child.status.is_pending:
                scheduler.cancel(child)
        return tuple(child.result for child in fields["completed"])

    def factory(*args: Any) -> Optional[Parent]:
        fields = {"need": need, "completed": [], "parked": False}
        return parent(scheduler, gather, count_completion, fields, executors, *args)

    return factory

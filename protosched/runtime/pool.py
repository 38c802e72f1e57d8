# protosched/runtime/pool.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import Callable, List, Optional

from protosched.runtime.context import ExecutionContext


class ContextPool:
    """
    Grow-on-demand pool of idle execution contexts.

    The most recently released context is kept in a warm slot and handed
    out first, so back-to-back spawns reuse it without touching the list.
    """

    def __init__(self, factory: Callable[[], ExecutionContext]) -> None:
        """
        :param factory: Creates a new, primed context when the pool is empty.
        """
        self._factory = factory
        self._idle: List[ExecutionContext] = []
        self._warm: Optional[ExecutionContext] = None
        self._allocated = 0

    @property
    def allocated(self) -> int:
        """Contexts created by this pool and not yet destroyed."""
        return self._allocated

    @property
    def idle(self) -> int:
        """Contexts currently waiting in the pool."""
        return len(self._idle) + (1 if self._warm is not None else 0)

    def acquire(self) -> ExecutionContext:
        context = self._warm
        if context is not None:
            self._warm = None
            return context
        if self._idle:
            return self._idle.pop()
        self._allocated += 1
        return self._factory()

    def release(self, context: ExecutionContext) -> None:
        if self._warm is not None:
            self._idle.append(self._warm)
        self._warm = context

    def discard(self, context: ExecutionContext) -> None:
        """Account for a context that was destroyed instead of released."""
        self._allocated = max(0, self._allocated - 1)

    def preallocate(self, count: int) -> None:
        for _ in range(count):
            self._idle.append(self._factory())
            self._allocated += 1

    def drain(self) -> List[ExecutionContext]:
        """Remove and return every idle context."""
        contexts = self._idle
        if self._warm is not None:
            contexts.append(self._warm)
        self._idle = []
        self._warm = None
        self._allocated = max(0, self._allocated - len(contexts))
        return contexts

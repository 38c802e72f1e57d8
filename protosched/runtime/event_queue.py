# protosched/runtime/event_queue.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import itertools
from typing import List, Sequence, Tuple, Union

from protosched.core.process import FastProcess, Process

Entry = Union[Process, FastProcess]


class DeferredQueue:
    """
    FIFO of work eligible on the very next tick. Draining swaps the backing
    list for an empty one, so work deferred during a drain waits for the
    following tick.
    """

    def __init__(self) -> None:
        self._entries: List[Entry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def push(self, entry: Entry) -> None:
        self._entries.append(entry)

    def swap(self) -> List[Entry]:
        """Take every queued entry, leaving a fresh empty queue behind."""
        entries, self._entries = self._entries, []
        return entries

    def requeue(self, entries: Sequence[Entry]) -> None:
        """Put unprocessed entries back at the front, preserving order."""
        if entries:
            self._entries[:0] = entries

    def clear(self) -> None:
        self._entries.clear()


class DelayedQueue:
    """
    Work waiting for an absolute wake time.

    Entries are appended in arrival order; an insertion that breaks the
    ordering only sets a dirty flag, and the list is re-sorted once before
    the next scan. Equal wake times keep arrival order.
    """

    def __init__(self) -> None:
        self._entries: List[Tuple[float, int, Entry]] = []
        self._counter = itertools.count()
        self._dirty = False

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return (entry for _, _, entry in self._entries)

    @property
    def dirty(self) -> bool:
        return self._dirty

    def push(self, wake_time: float, entry: Entry) -> None:
        if self._entries and wake_time < self._entries[-1][0]:
            self._dirty = True
        self._entries.append((wake_time, next(self._counter), entry))

    def pop_due(self, now: float) -> List[Entry]:
        """
        Remove and return, in wake order, every entry whose wake time is at
        or before ``now``.
        """
        if self._dirty:
            self._entries.sort()
            self._dirty = False
        count = 0
        for wake_time, _, _ in self._entries:
            if wake_time > now:
                break
            count += 1
        due = [entry for _, _, entry in self._entries[:count]]
        del self._entries[:count]
        return due

    def clear(self) -> None:
        self._entries.clear()
        self._dirty = False

# protosched/runtime/timers.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import time


class MonotonicClock:
    """
    Production clock backed by ``time.monotonic``.
    """

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """
    Virtual clock for tests and simulations. Time only moves when told to.
    """

    def __init__(self, start: float = 0.0) -> None:
        """
        :param start: Initial reading of the clock.
        """
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        """
        Move the clock forward and return the new reading.

        :param seconds: Non-negative amount of time to add.
        """
        if seconds < 0:
            raise ValueError("A clock cannot move backwards")
        self._now += seconds
        return self._now

    def set(self, value: float) -> None:
        if value < self._now:
            raise ValueError("A clock cannot move backwards")
        self._now = float(value)

# protosched/runtime/ticks.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Tuple

from protosched.core.errors import ConfigurationError
from protosched.interfaces.types import Phase, TickCallback


@dataclass(frozen=True)
class PhaseCycle:
    """
    Ordered, cyclically repeating phases of a host frame, one of which is the
    heartbeat.
    """

    phases: Tuple[Phase, ...]
    heartbeat: Phase

    def __post_init__(self) -> None:
        phases = tuple(self.phases)
        object.__setattr__(self, "phases", phases)
        if not phases:
            raise ConfigurationError("A phase cycle needs at least one phase")
        if len(set(phases)) != len(phases):
            raise ConfigurationError("Phase names must be unique", {"phases": phases})
        if self.heartbeat not in phases:
            raise ConfigurationError(
                "Heartbeat must be one of the cycle's phases",
                {"heartbeat": self.heartbeat, "phases": phases},
            )

    def __len__(self) -> int:
        return len(self.phases)

    def index(self, phase: Phase) -> int:
        try:
            return self.phases.index(phase)
        except ValueError:
            raise ConfigurationError("Unknown phase", {"phase": phase}) from None


DEFAULT_CYCLE = PhaseCycle(("pre_simulation", "heartbeat", "post_simulation"), "heartbeat")


class FrameSignal:
    """
    In-process tick source. The host calls ``fire`` for each phase of its
    frame (or ``run_cycle`` for a whole frame); listeners registered for that
    phase are called once with the elapsed time.
    """

    def __init__(self, cycle: PhaseCycle = DEFAULT_CYCLE) -> None:
        self._cycle = cycle
        self._listeners: Dict[Phase, List[TickCallback]] = defaultdict(list)

    @property
    def cycle(self) -> PhaseCycle:
        return self._cycle

    @property
    def phases(self) -> Tuple[Phase, ...]:
        return self._cycle.phases

    @property
    def heartbeat(self) -> Phase:
        return self._cycle.heartbeat

    def next_tick(self, phase: Phase, callback: TickCallback) -> None:
        self._listeners[phase].append(callback)

    def disconnect(self, phase: Phase, callback: TickCallback) -> None:
        listeners = self._listeners.get(phase)
        if listeners and callback in listeners:
            listeners.remove(callback)

    def listener_count(self, phase: Phase) -> int:
        return len(self._listeners.get(phase, ()))

    def fire(self, phase: Phase, dt: float) -> None:
        """
        Deliver one tick of ``phase``. Listeners that register during delivery
        wait for the next firing.
        """
        listeners = self._listeners.pop(phase, None)
        if not listeners:
            return
        for callback in listeners:
            callback(dt)

    def run_cycle(self, dt: float = 1 / 60) -> None:
        """Fire every phase once, in cycle order."""
        for phase in self._cycle.phases:
            self.fire(phase, dt)

    def run_cycles(self, count: int, dt: float = 1 / 60) -> None:
        for _ in range(count):
            self.run_cycle(dt)

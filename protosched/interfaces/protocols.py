# protosched/interfaces/protocols.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
from typing import Protocol, Sequence, runtime_checkable

from protosched.interfaces.types import Phase, TickCallback


@runtime_checkable
class Clock(Protocol):
    """
    Clock protocol for type checking.

    Methods:
        now(): Returns the current time in seconds.

    Runtime Invariants:
    - Successive calls never go backwards.
    - Resolution is fine enough that two delays requested on the same tick
      with different offsets resolve to different wake times.
    """

    def now(self) -> float:
        """Get the current time in seconds."""
        ...


@runtime_checkable
class TickSource(Protocol):
    """
    Tick source protocol, supplied by the host environment.

    The host fires an ordered, cyclically repeating sequence of phases. One
    of them is the heartbeat. A listener asks for the next firing of a
    single phase and is called once, with the elapsed time, when it fires.

    Runtime Invariants:
    - Phases fire in the order given by ``phases``, cyclically.
    - ``heartbeat`` is a member of ``phases``.
    - A registered callback is invoked at most once.
    """

    @property
    def phases(self) -> Sequence[Phase]:
        """Ordered phase identities for one full cycle."""
        ...

    @property
    def heartbeat(self) -> Phase:
        """The distinguished phase used for clock sampling."""
        ...

    def next_tick(self, phase: Phase, callback: TickCallback) -> None:
        """
        Register a one-shot callback for the next firing of ``phase``.
        """
        ...

    def disconnect(self, phase: Phase, callback: TickCallback) -> None:
        """
        Remove a callback registered with ``next_tick`` if it has not fired yet.
        """
        ...

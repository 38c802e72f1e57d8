"""protosched: cooperative process scheduler

Spawn, defer, delay, await, chain and cancel units of work ("processes")
on pooled, reusable generator contexts, driven by a host's frame ticks.

Responsibilities:
    - Context pooling for managed and fast (fire-and-forget) processes
    - Process state machine (READY -> ACTIVE -> DONE | CANCELLED)
    - Per-tick dispatch of deferred work, heartbeat promotion of delayed work
    - Await with timeout, cascading cancellation
    - Composition: chains, retries, protected calls, child groups

Interactions:
    - Host environment through the TickSource and Clock protocols
    - Logging system for misuse diagnostics and executor faults

Cross-cutting Concerns:
    Concurrency:
        - Single logical thread of control; no locks
        - Suspension only at explicit yields, waits and tick boundaries

    Error Handling:
        - Misuse is logged, never raised
        - Executor faults are reported to an injectable fault handler
"""

from protosched.config import SchedulerConfig
from protosched.core.composition import chain_factory, protected_call_factory, retry_factory
from protosched.core.errors import ConfigurationError, ExecutorFault, SchedulerError
from protosched.core.groups import GroupSignal, all_factory, parent
from protosched.core.process import FastProcess, Parent, Process, ProcessStatus
from protosched.runtime.scheduler import Scheduler, SchedulerStats
from protosched.runtime.ticks import DEFAULT_CYCLE, FrameSignal, PhaseCycle
from protosched.runtime.timers import ManualClock, MonotonicClock

__version__ = "0.1.0"

__all__ = [
    "Scheduler",
    "SchedulerConfig",
    "SchedulerStats",
    "Process",
    "Parent",
    "FastProcess",
    "ProcessStatus",
    "GroupSignal",
    "chain_factory",
    "retry_factory",
    "protected_call_factory",
    "parent",
    "all_factory",
    "SchedulerError",
    "ConfigurationError",
    "ExecutorFault",
    "PhaseCycle",
    "FrameSignal",
    "DEFAULT_CYCLE",
    "ManualClock",
    "MonotonicClock",
]

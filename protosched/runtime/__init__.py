"""
Runtime package: contexts, pools, queues, clocks, ticks and the scheduler.

Architecture:
- Generator-based execution contexts with fixed driver loops
- Two context pools, one per process kind
- Deferred (next tick) and delayed (heartbeat at or after a time) queues
- Dispatch loop driven by an injected tick source

Cross-cutting:
- Single-threaded cooperative execution, no locking
- Fault reporting through the scheduler's fault handler
"""

from .scheduler import Scheduler, SchedulerStats

__all__ = ["Scheduler", "SchedulerStats"]

"""
Core package: process records, errors and composition.

Architecture:
- Process and FastProcess records with the process state machine
- Parent groups with weak child back-references
- Composed executors built only from scheduler primitives

Cross-cutting:
- Misuse reported through logging
- Executor faults wrapped in ExecutorFault
"""

from .errors import ConfigurationError, ExecutorFault, SchedulerError
from .process import FastProcess, Parent, Process, ProcessStatus, pack_values, run_executor

__all__ = [
    "ConfigurationError",
    "ExecutorFault",
    "SchedulerError",
    "FastProcess",
    "Parent",
    "Process",
    "ProcessStatus",
    "pack_values",
    "run_executor",
]

# protosched/core/errors.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from protosched.core.process import FastProcess, Process


class SchedulerError(Exception):
    """
    Base exception class for errors raised by the process scheduler.

    Misuse of the scheduler (wrong process state for an operation) is never
    raised; it is reported through the module loggers instead.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ConfigurationError(SchedulerError, ValueError):
    """
    Raised when scheduler or phase-cycle configuration is invalid.
    """


class ExecutorFault(SchedulerError):
    """
    Wraps an exception raised by a user-supplied executor. Handed to the
    scheduler's fault handler; the wrapped exception is the ``__cause__``.
    """

    def __init__(self, process: "Optional[Process | FastProcess]", error: BaseException) -> None:
        executor = getattr(process, "executor", None)
        name = getattr(executor, "__qualname__", repr(executor))
        super().__init__(
            f"Executor {name} failed: {error!r}",
            {"error_type": type(error).__name__},
        )
        self.process = process
        self.error = error
        self.__cause__ = error

# protosched/config.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from dataclasses import dataclass
from typing import Optional

from protosched.core.errors import ConfigurationError
from protosched.interfaces.types import Phase


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Static scheduler settings.

    :param preallocate: Contexts created up front in each pool on ``start()``.
    :param start_phase: Phase the dispatch loop waits for first. Defaults to
        the tick source's heartbeat.
    """

    preallocate: int = 16
    start_phase: Optional[Phase] = None

    def __post_init__(self) -> None:
        if isinstance(self.preallocate, bool) or not isinstance(self.preallocate, int):
            raise ConfigurationError("preallocate must be an integer", {"preallocate": self.preallocate})
        if self.preallocate < 0:
            raise ConfigurationError("preallocate must be non-negative", {"preallocate": self.preallocate})

# protosched/runtime/async_support.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Generator, Optional

from protosched.core.process import Process, ProcessStatus
from protosched.interfaces.types import Values
from protosched.runtime.ticks import FrameSignal

if TYPE_CHECKING:
    from protosched.runtime.scheduler import Scheduler

logger = logging.getLogger(__name__)


class AsyncFrameDriver:
    """
    Drives a ``FrameSignal`` from an asyncio event loop, acting as the host
    frame provider: every frame fires each phase in order with the time
    elapsed since that phase last fired.
    """

    def __init__(self, signal: FrameSignal, frame_interval: float = 1 / 60) -> None:
        """
        :param signal: The tick source to fire.
        :param frame_interval: Seconds to sleep between frames.
        """
        if frame_interval < 0:
            raise ValueError("frame_interval must be non-negative")
        self._signal = signal
        self._frame_interval = frame_interval
        self._running = False
        self._frames = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def frames(self) -> int:
        """Frames fired since the driver was created."""
        return self._frames

    async def run(self, frames: Optional[int] = None) -> None:
        """
        Fire frames until ``stop()`` is called or ``frames`` frames have run.
        """
        loop = asyncio.get_running_loop()
        last_fired = {phase: loop.time() for phase in self._signal.phases}
        self._running = True
        fired = 0
        try:
            while self._running and (frames is None or fired < frames):
                for phase in self._signal.phases:
                    now = loop.time()
                    self._signal.fire(phase, now - last_fired[phase])
                    last_fired[phase] = now
                fired += 1
                self._frames += 1
                await asyncio.sleep(self._frame_interval)
        finally:
            self._running = False

    def stop(self) -> None:
        """Stop after the current frame."""
        self._running = False


async def wait_async(scheduler: "Scheduler", process: Process, timeout: Optional[float] = None) -> Values:
    """
    Await a scheduler process from asyncio code. Resolves to the same
    ``(outcome, *values)`` tuple as ``Scheduler.wait``; requires the tick
    source to keep firing while the process is pending.
    """
    if not process.status.is_pending:
        if process.status is ProcessStatus.DONE:
            return (ProcessStatus.DONE, *process.result)
        return (ProcessStatus.CANCELLED,)

    future: asyncio.Future = asyncio.get_running_loop().create_future()

    def watch() -> Generator[Any, Any, None]:
        values = yield from scheduler.wait(process, timeout)
        if not future.done():
            future.set_result(values if values is not None else (ProcessStatus.CANCELLED,))

    watcher = scheduler.spawn(watch)
    if watcher is None:
        logger.warning("[wait_async]: could not start a watcher for %r", process)
        return (ProcessStatus.CANCELLED,)
    return await future

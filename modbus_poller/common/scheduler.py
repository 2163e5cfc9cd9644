"""
Interval Scheduler

ScheduledLoop fires an async callback every `interval` seconds on a
fixed schedule: the time spent in the callback does not push later
runs back.

- First run one full interval after start(), never immediately
- Missed intervals are dropped, not queued
- A failing callback is logged and the loop keeps going

Usage:
    timer = ScheduledLoop(30.0, save_snapshot, name="boiler1.save")
    timer.start()
    ...
    timer.stop()
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from .logging_setup import get_service_logger

logger = get_service_logger("scheduler")


@dataclass
class LoopStats:
    """Execution counters of one ScheduledLoop"""
    executions: int = 0
    skipped: int = 0
    errors: int = 0
    last_duration: float = 0.0


class ScheduledLoop:
    """
    Fixed-rate timer owning its own asyncio task.

    start() and stop() are synchronous and idempotent, so callers
    can use them from plain methods.
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "unnamed",
    ):
        if interval_seconds <= 0:
            raise ValueError(f"Interval must be positive, got {interval_seconds}")

        self.interval = interval_seconds
        self.callback = callback
        self.name = name
        self.stats = LoopStats()

        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """
        Start the timer. No-op if already running.

        Raises:
            RuntimeError: called outside a running event loop
        """
        if self.is_running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"timer:{self.name}")

    def stop(self) -> None:
        """Cancel the timer. Safe to call repeatedly."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _advance(self, next_run: float, now: float) -> float:
        """Move past `now` on the original grid, counting dropped slots"""
        missed = max(0, int((now - next_run) // self.interval))
        if missed > 0:
            self.stats.skipped += missed
            logger.warning(
                f"Timer '{self.name}' dropped {missed} intervals "
                f"(callback took {self.stats.last_duration:.3f}s)"
            )
        return next_run + (missed + 1) * self.interval

    async def _fire(self) -> None:
        started = time.monotonic()
        try:
            await self.callback()
        except Exception as e:
            self.stats.errors += 1
            logger.error(f"Timer '{self.name}' callback error: {e}")
        else:
            self.stats.executions += 1
        finally:
            self.stats.last_duration = time.monotonic() - started

    async def _run(self) -> None:
        next_run = time.monotonic() + self.interval
        while True:
            delay = next_run - time.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
            await self._fire()
            next_run = self._advance(next_run, time.monotonic())

    @property
    def skipped_count(self) -> int:
        return self.stats.skipped

    @property
    def execution_count(self) -> int:
        return self.stats.executions

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "interval_s": self.interval,
            "execution_count": self.stats.executions,
            "skipped_count": self.stats.skipped,
            "error_count": self.stats.errors,
            "last_execution_s": round(self.stats.last_duration, 3),
        }

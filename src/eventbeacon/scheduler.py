"""
Fixed-interval tick scheduler.

Ticks never overlap: the next tick starts only after the previous callback
has returned. A tick that overruns the interval delays the next one instead
of stacking up.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[Any]]


class PeriodicTimer:
    """Runs an async callback every ``interval_s`` seconds, single-flight."""

    def __init__(
        self,
        interval_s: float,
        callback: TickCallback,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_s <= 0:
            raise ValueError(f"interval_s must be > 0, got {interval_s}")
        self._interval_s = interval_s
        self._callback = callback
        self._clock = clock
        self._stop_event = asyncio.Event()
        self._running = False
        self._ticks = 0
        self._failures = 0

    @property
    def interval_s(self) -> float:
        return self._interval_s

    @property
    def ticks(self) -> int:
        """Number of ticks completed (including failed ones)."""
        return self._ticks

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def running(self) -> bool:
        return self._running

    async def run_once(self) -> None:
        """Fire a single tick. Callback exceptions are logged, not raised."""
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            self._failures += 1
            logger.exception("Tick failed")
        finally:
            self._ticks += 1

    async def run(self, *, max_ticks: int | None = None) -> None:
        """
        Tick until stop() is called (or max_ticks ticks have run).

        The first tick fires immediately.
        """
        if self._running:
            raise RuntimeError("PeriodicTimer is already running")
        self._running = True
        self._stop_event.clear()
        logger.info("Timer started", extra={"interval_s": self._interval_s})

        try:
            while not self._stop_event.is_set():
                started = self._clock()
                await self.run_once()

                if max_ticks is not None and self._ticks >= max_ticks:
                    break

                elapsed = self._clock() - started
                delay = max(0.0, self._interval_s - elapsed)
                if elapsed > self._interval_s:
                    logger.warning(
                        "Tick overran interval",
                        extra={"elapsed_s": round(elapsed, 3), "interval_s": self._interval_s},
                    )
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("Timer stopped", extra={"ticks": self._ticks})

    def stop(self) -> None:
        """Request the loop to exit; wakes a sleeping timer immediately."""
        self._stop_event.set()

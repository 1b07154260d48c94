"""
Tests for PeriodicTimer.
"""

from __future__ import annotations

import asyncio

import pytest

from eventbeacon.scheduler import PeriodicTimer


class TestPeriodicTimer:
    def test_rejects_non_positive_interval(self) -> None:
        with pytest.raises(ValueError, match="interval_s"):
            PeriodicTimer(0, lambda: asyncio.sleep(0))

    @pytest.mark.asyncio
    async def test_run_once_counts_tick(self) -> None:
        calls = []

        async def callback() -> None:
            calls.append(1)

        timer = PeriodicTimer(60, callback)
        await timer.run_once()

        assert calls == [1]
        assert timer.ticks == 1
        assert timer.failures == 0

    @pytest.mark.asyncio
    async def test_callback_error_is_contained(self) -> None:
        async def callback() -> None:
            raise RuntimeError("boom")

        timer = PeriodicTimer(60, callback)
        await timer.run_once()

        assert timer.ticks == 1
        assert timer.failures == 1

    @pytest.mark.asyncio
    async def test_run_stops_after_max_ticks(self) -> None:
        calls = []

        async def callback() -> None:
            calls.append(1)

        timer = PeriodicTimer(0.01, callback)
        await timer.run(max_ticks=3)

        assert len(calls) == 3
        assert not timer.running

    @pytest.mark.asyncio
    async def test_ticks_never_overlap(self) -> None:
        active = 0
        max_active = 0

        async def callback() -> None:
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.02)  # Longer than the interval
            active -= 1

        timer = PeriodicTimer(0.005, callback)
        await timer.run(max_ticks=4)

        assert max_active == 1
        assert timer.ticks == 4

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_loop(self) -> None:
        calls = []

        async def callback() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first tick fails")

        timer = PeriodicTimer(0.01, callback)
        await timer.run(max_ticks=3)

        assert len(calls) == 3
        assert timer.failures == 1

    @pytest.mark.asyncio
    async def test_stop_wakes_sleeping_timer(self) -> None:
        async def callback() -> None:
            pass

        timer = PeriodicTimer(3600, callback)
        task = asyncio.create_task(timer.run())
        await asyncio.sleep(0.01)
        assert timer.running

        timer.stop()
        await asyncio.wait_for(task, timeout=1.0)

        assert timer.ticks == 1
        assert not timer.running

    @pytest.mark.asyncio
    async def test_cannot_run_twice(self) -> None:
        async def callback() -> None:
            pass

        timer = PeriodicTimer(3600, callback)
        task = asyncio.create_task(timer.run())
        await asyncio.sleep(0.01)

        with pytest.raises(RuntimeError, match="already running"):
            await timer.run()

        timer.stop()
        await task

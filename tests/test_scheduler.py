"""Tests for the midnight quota scheduler"""
import asyncio
from datetime import datetime

import pytest

from snapfeed.utils.scheduler import run_quota_scheduler, seconds_until_next_midnight


def test_seconds_until_next_midnight():
    assert seconds_until_next_midnight(datetime(2026, 3, 14, 22, 0, 0)) == 7200.0
    assert seconds_until_next_midnight(datetime(2026, 3, 14, 23, 59, 30)) == 30.0


def test_exactly_midnight_waits_a_full_day():
    assert seconds_until_next_midnight(datetime(2026, 3, 14, 0, 0, 0)) == 86400.0


def test_month_boundary():
    assert seconds_until_next_midnight(datetime(2026, 2, 28, 23, 0, 0)) == 3600.0


class _FakeSleep:
    """Records requested delays and cancels the loop after ``cycles`` sleeps"""

    def __init__(self, cycles: int):
        self.cycles = cycles
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if len(self.delays) > self.cycles:
            raise asyncio.CancelledError()


def _run(sweep, sleep, clock=lambda: datetime(2026, 3, 14, 23, 59, 0)):
    async def main():
        with pytest.raises(asyncio.CancelledError):
            await run_quota_scheduler(sweep, clock=clock, sleep=sleep)

    asyncio.run(main())


def test_runs_sweep_after_each_sleep():
    calls = []
    sleep = _FakeSleep(cycles=2)

    _run(lambda: calls.append("swept"), sleep)

    assert calls == ["swept", "swept"]
    # 60 s to midnight plus the wake slack
    assert sleep.delays == [61.0, 61.0, 61.0]


def test_failing_sweep_does_not_stop_scheduler():
    calls = []

    def sweep():
        calls.append("attempt")
        raise RuntimeError("database unavailable")

    _run(sweep, _FakeSleep(cycles=3))

    assert len(calls) == 3


def test_cancellation_while_sleeping():
    calls = []

    async def main():
        task = asyncio.create_task(run_quota_scheduler(lambda: calls.append("swept")))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return task

    task = asyncio.run(main())

    assert task.cancelled()
    assert calls == []

"""Background task that runs the quota sweep every local midnight"""
import asyncio
from datetime import datetime, time, timedelta
from typing import Any, Awaitable, Callable, Optional

from snapfeed.utils.logger import logger

# Wake a moment after midnight so date.today() already reports the new day
_WAKE_SLACK_SECONDS = 1.0


def seconds_until_next_midnight(now: Optional[datetime] = None) -> float:
    now = now or datetime.now()
    next_midnight = datetime.combine(now.date() + timedelta(days=1), time.min)
    return (next_midnight - now).total_seconds()


async def run_quota_scheduler(
    sweep: Callable[[], Any],
    *,
    clock: Callable[[], datetime] = datetime.now,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Sleep until the next local midnight, run ``sweep`` in a worker thread, repeat.

    The delay is recomputed every cycle, so DST shifts and slow sweeps do not
    drift the schedule. Stops only when the task is cancelled; a failing
    sweep is logged and the next night's run still happens.
    """
    logger.info("Quota replenishment scheduler started")
    try:
        while True:
            delay = seconds_until_next_midnight(clock()) + _WAKE_SLACK_SECONDS
            await sleep(delay)
            try:
                await asyncio.to_thread(sweep)
            except Exception:
                logger.error("Quota replenishment sweep failed", exc_info=True)
    except asyncio.CancelledError:
        logger.info("Quota replenishment scheduler stopped")
        raise

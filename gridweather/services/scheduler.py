import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


def today_in(tz_name: str) -> Callable[[], date]:
    zone = ZoneInfo(tz_name)
    return lambda: datetime.now(zone).date()


def seconds_until(now: datetime, hour: int, minute: int = 0) -> float:
    """Seconds from ``now`` to the next wall-clock hour:minute in now's zone."""
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    if now.tzinfo is not None:
        # same-zone subtraction ignores DST shifts
        return (target.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds()
    return (target - now).total_seconds()


async def run_daily(
    name: str,
    job: Callable[[], Awaitable[object]],
    hour: int,
    minute: int = 0,
    tz_name: str = "Europe/Vienna",
    clock: Optional[Callable[[], datetime]] = None,
) -> None:
    zone = ZoneInfo(tz_name)
    clock = clock or (lambda: datetime.now(zone))

    while True:
        delay = seconds_until(clock(), hour, minute)
        logger.info("Next %s run in %.0fs (%02d:%02d %s)", name, delay, hour, minute, tz_name)
        await asyncio.sleep(delay)
        logger.info("Scheduled %s triggered at %s", name, clock().isoformat())
        try:
            await job()
        except Exception:
            logger.exception("Error in scheduled task %s", name)
        logger.info("Scheduled %s finished at %s", name, clock().isoformat())

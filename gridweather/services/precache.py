import asyncio
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Awaitable, Callable, Sequence

from gridweather.errors import ProviderFailure, WeatherDataNotFoundError
from gridweather.models import PopulationCenter
from gridweather.services.catalog import PopulationCenterCatalog
from gridweather.services.weather import TieredWeatherCache

logger = logging.getLogger(__name__)


@dataclass
class PreCacheSummary:
    trigger: str
    day: date
    successes: int = 0
    failures: int = 0


class PreCacheScheduler:
    """Warms both cache levels for the catalog's named points, one at a time."""

    def __init__(
        self,
        weather: TieredWeatherCache,
        catalog: PopulationCenterCatalog,
        pacing_seconds: float = 0.25,
        today: Callable[[], date] = date.today,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.weather = weather
        self.catalog = catalog
        self.pacing_seconds = pacing_seconds
        self.today = today
        self._sleep = sleep

    def target_date(self) -> date:
        return self.today() - timedelta(days=1)

    async def warm_catalog(self, trigger_label: str) -> PreCacheSummary:
        try:
            centers = self.catalog.all_centers()
        except Exception as exc:
            logger.error("[%s] Catalog unavailable, skipping pre-cache: %s", trigger_label, exc)
            return PreCacheSummary(trigger=trigger_label, day=self.target_date())
        return await self.warm_points(centers, trigger_label)

    async def warm_points(self, centers: Sequence[PopulationCenter], trigger_label: str) -> PreCacheSummary:
        summary = PreCacheSummary(trigger=trigger_label, day=self.target_date())
        logger.info("[%s] Pre-caching weather data for %d points on %s", trigger_label, len(centers), summary.day)

        for index, center in enumerate(centers):
            if index and self.pacing_seconds > 0:
                await self._sleep(self.pacing_seconds)

            logger.debug(
                "[%s] Pre-caching %s (lat=%s, lon=%s) on %s",
                trigger_label, center.display_name, center.latitude, center.longitude, summary.day,
            )
            try:
                await self.weather.get_weather(center.latitude, center.longitude, summary.day, center.display_name)
            except WeatherDataNotFoundError as exc:
                logger.warning("[%s] Weather data not found for %s: %s", trigger_label, center.display_name, exc)
                summary.failures += 1
            except ProviderFailure as exc:
                logger.error("[%s] Provider error pre-caching %s: %s", trigger_label, center.display_name, exc)
                summary.failures += 1
            except Exception as exc:
                logger.error(
                    "[%s] Unexpected error pre-caching %s: %s", trigger_label, center.display_name, exc, exc_info=True
                )
                summary.failures += 1
            else:
                logger.info("[%s] Pre-cached data for %s", trigger_label, center.display_name)
                summary.successes += 1

        logger.info(
            "[%s] Pre-caching summary: %d successes, %d failures.", trigger_label, summary.successes, summary.failures
        )
        return summary

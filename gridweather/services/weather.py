import logging
import time
from datetime import date
from typing import Dict, Optional

from gridweather.errors import (
    MappingError,
    ProviderFailure,
    UnexpectedError,
    WeatherDataNotFoundError,
)
from gridweather.models import BoundingBox, GeoPoint, WeatherObservation, WeatherReport
from gridweather.services.cache import InMemoryStore, SingleFlight
from gridweather.services.grid import CoordinateGridMapper
from gridweather.services.provider import ProviderGateway
from gridweather.services.reconciler import FeatureReconciler

logger = logging.getLogger(__name__)


def point_key(lat: float, lon: float, day: date) -> str:
    return f"{lat}_{lon}_{day.isoformat()}"


def cell_key(cell_id: str, day: date) -> str:
    return f"{cell_id}_{day.isoformat()}"


class TieredWeatherCache:
    """
    Two-level weather cache.

    Level 1 is keyed by the exact query (lat, lon, date). Level 2 is keyed by
    (cell id, date), so every point that snaps to the same cell shares one
    provider call. Level-2 misses go through a single-flight so concurrent
    callers for one cell/date wait on a single fetch.
    """

    def __init__(
        self,
        mapper: CoordinateGridMapper,
        gateway: ProviderGateway,
        reconciler: FeatureReconciler,
        point_store=None,
        cell_store=None,
        point_ttl_seconds: Optional[float] = None,
        cell_ttl_seconds: Optional[float] = None,
        negative_ttl_seconds: float = 0.0,
        time_func=time.monotonic,
    ):
        self.mapper = mapper
        self.gateway = gateway
        self.reconciler = reconciler
        self.point_store = point_store if point_store is not None else InMemoryStore()
        self.cell_store = cell_store if cell_store is not None else InMemoryStore()
        self.point_ttl = point_ttl_seconds
        self.cell_ttl = cell_ttl_seconds
        self.negative_ttl = negative_ttl_seconds
        self._time_func = time_func
        self._misses: Dict[str, float] = {}
        self._flights = SingleFlight()

    async def get_weather(self, lat: float, lon: float, day: date, city_name: Optional[str] = None) -> WeatherReport:
        key = point_key(lat, lon, day)
        cached = self.point_store.get(key)
        if cached is not None:
            if city_name and city_name != cached.city_name:
                return cached.model_copy(update={"city_name": city_name})
            return cached

        logger.info("Point cache miss city=%s lat=%s lon=%s date=%s", city_name, lat, lon, day)
        try:
            cell = self.mapper.map_to_cell(lat, lon)
        except Exception as exc:
            logger.error("Error calculating grid cell for lat=%s lon=%s: %s", lat, lon, exc, exc_info=True)
            raise MappingError() from exc
        logger.debug("Mapped to grid cell %s center=(%s, %s)", cell.cell_id, cell.center.latitude, cell.center.longitude)

        observation = await self.get_or_fetch_cell(cell.cell_id, cell.bbox, day, cell.center)
        if observation is None:
            logger.warning("No weather data found for grid cell %s on %s", cell.cell_id, day)
            raise WeatherDataNotFoundError()

        report = WeatherReport(
            **observation.model_dump(),
            latitude=lat,
            longitude=lon,
            city_name=city_name,
        )
        self.point_store.set(key, report, self.point_ttl)
        return report

    async def get_or_fetch_cell(
        self, cell_id: str, bbox: BoundingBox, day: date, center: GeoPoint
    ) -> Optional[WeatherObservation]:
        key = cell_key(cell_id, day)
        cached = self.cell_store.get(key)
        if cached is not None:
            return cached
        if self._recent_miss(key):
            logger.debug("Recent miss for %s, skipping provider call", key)
            return None

        return await self._flights.do(key, lambda: self._fetch_cell(key, cell_id, bbox, day, center))

    async def _fetch_cell(
        self, key: str, cell_id: str, bbox: BoundingBox, day: date, center: GeoPoint
    ) -> Optional[WeatherObservation]:
        cached = self.cell_store.get(key)
        if cached is not None:
            return cached

        logger.info("Cell cache miss for %s, date %s. Calling provider.", cell_id, day)
        try:
            features = await self.gateway.fetch(bbox, day)
            if not features:
                logger.warning("Provider returned no features for %s, date %s", cell_id, day)
                self._remember_miss(key)
                return None

            observation = self.reconciler.extract_nearest(features, center.latitude, center.longitude)
            if observation is None:
                logger.warning("No usable feature in provider response for %s, date %s", cell_id, day)
                self._remember_miss(key)
                return None
        except ProviderFailure as exc:
            logger.error("Provider error while fetching %s: %s", key, exc)
            raise
        except Exception as exc:
            logger.error("Unexpected error fetching/processing %s: %s", key, exc, exc_info=True)
            raise UnexpectedError() from exc

        self.cell_store.set(key, observation, self.cell_ttl)
        logger.debug("Cached observation for %s", key)
        return observation

    def _remember_miss(self, key: str) -> None:
        if self.negative_ttl <= 0:
            return
        now = self._time_func()
        for stale in [k for k, expires_at in self._misses.items() if expires_at < now]:
            del self._misses[stale]
        self._misses[key] = now + self.negative_ttl

    def _recent_miss(self, key: str) -> bool:
        expires_at = self._misses.get(key)
        if expires_at is None:
            return False
        if expires_at < self._time_func():
            del self._misses[key]
            return False
        return True

    def peek(self, lat: float, lon: float, day: date) -> Optional[WeatherReport]:
        """Level-1 read only; never calls the provider."""
        return self.point_store.get(point_key(lat, lon, day))

    def clear(self) -> None:
        self.point_store.clear()
        self.cell_store.clear()
        self._misses.clear()

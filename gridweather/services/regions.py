import asyncio
import logging
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence

from gridweather.errors import UnknownRegionError
from gridweather.models import BoundingBox, GridCell, GridTemperature, Region, WeatherReport
from gridweather.services.grid import CoordinateGridMapper
from gridweather.services.weather import TieredWeatherCache

logger = logging.getLogger(__name__)

# Austrian federal states, approximate extents
AUSTRIAN_STATES: Dict[str, BoundingBox] = {
    "Niederösterreich": BoundingBox(min_lat=47.4, min_lon=14.4, max_lat=48.7, max_lon=17.2),
    "Wien": BoundingBox(min_lat=48.1, min_lon=16.2, max_lat=48.3, max_lon=16.6),
    "Burgenland": BoundingBox(min_lat=46.7, min_lon=16.0, max_lat=48.1, max_lon=17.2),
    "Steiermark": BoundingBox(min_lat=46.6, min_lon=13.6, max_lat=47.9, max_lon=16.2),
    "Oberösterreich": BoundingBox(min_lat=47.4, min_lon=12.7, max_lat=48.8, max_lon=14.9),
    "Salzburg": BoundingBox(min_lat=46.8, min_lon=12.5, max_lat=47.9, max_lon=13.8),
    "Kärnten": BoundingBox(min_lat=46.4, min_lon=12.6, max_lat=47.2, max_lon=15.0),
    "Tirol": BoundingBox(min_lat=46.6, min_lon=10.0, max_lat=47.8, max_lon=13.0),
    "Vorarlberg": BoundingBox(min_lat=46.8, min_lon=9.5, max_lat=47.6, max_lon=10.3),
}


def default_regions(resolution_degrees: float) -> List[Region]:
    return [
        Region(name=name, bbox=bbox, resolution_degrees=resolution_degrees)
        for name, bbox in AUSTRIAN_STATES.items()
    ]


def cell_temperature(report: WeatherReport) -> Optional[float]:
    if report.min_temp is not None and report.max_temp is not None:
        return (report.min_temp + report.max_temp) / 2.0
    if report.max_temp is not None:
        return report.max_temp
    return report.min_temp


class RegionalGridPopulator:
    """Pre-populates coarse temperature grids for a fixed catalog of regions."""

    def __init__(
        self,
        weather: TieredWeatherCache,
        mapper: CoordinateGridMapper,
        regions: Sequence[Region],
        max_workers: int = 4,
        today: Callable[[], date] = date.today,
    ):
        self.weather = weather
        self.mapper = mapper
        self.regions: Dict[str, Region] = {r.name: r for r in regions}
        self.max_workers = max_workers
        self.today = today
        self._grids: Dict[str, List[GridTemperature]] = {}

    def region(self, name: str) -> Region:
        try:
            return self.regions[name]
        except KeyError:
            raise UnknownRegionError(name) from None

    def region_names(self) -> List[str]:
        return list(self.regions)

    def cells_for(self, region: Region) -> List[GridCell]:
        bbox, step = region.bbox, region.resolution_degrees
        if bbox.max_lat - bbox.min_lat < step and bbox.max_lon - bbox.min_lon < step:
            centroid = bbox.centroid()
            logger.info("Region %s smaller than one grid step, using centroid %s", region.name, centroid)
            return [self.mapper.map_to_cell(centroid.latitude, centroid.longitude)]
        return self.mapper.generate_grid(bbox, step)

    async def populate_region(self, name: str) -> List[GridTemperature]:
        region = self.region(name)
        day = self.today()
        points: List[GridTemperature] = []

        for cell in self.cells_for(region):
            lat, lon = cell.center.latitude, cell.center.longitude
            try:
                report = await self.weather.get_weather(lat, lon, day)
            except Exception as exc:
                logger.warning(
                    "Could not fetch temperature for %s cell=%s date=%s: %s", name, cell.cell_id, day, exc
                )
                continue

            temperature = cell_temperature(report)
            if temperature is None:
                logger.debug("No temperature for %s cell=%s date=%s", name, cell.cell_id, day)
                continue
            points.append(GridTemperature(latitude=lat, longitude=lon, temperature=temperature))

        self._grids[name] = points
        logger.info("Populated region %s with %d points for %s", name, len(points), day)
        return points

    async def populate_all_regions(self) -> None:
        logger.info("Populating temperature grids for %d regions", len(self.regions))
        semaphore = asyncio.Semaphore(self.max_workers)

        async def _run(name: str) -> None:
            async with semaphore:
                try:
                    await self.populate_region(name)
                except Exception:
                    logger.exception("Failed to load temperature grid for region %s", name)

        await asyncio.gather(*(_run(name) for name in self.regions))
        logger.info("Temperature grid population completed")

    async def refresh(self) -> None:
        logger.info("Refreshing temperature grids")
        self.evict_all()
        await self.populate_all_regions()

    def evict_all(self) -> None:
        self._grids.clear()

    def get_regional_grid(self, name: str) -> List[GridTemperature]:
        self.region(name)
        return list(self._grids.get(name, []))

    def get_all_regional_grids(self) -> List[GridTemperature]:
        points: List[GridTemperature] = []
        for name in self.regions:
            points.extend(self._grids.get(name, []))
        return points

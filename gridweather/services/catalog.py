import asyncio
import csv
import logging
import os
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Set

from pydantic import ValidationError

from gridweather.errors import CatalogParseError
from gridweather.models import BoundingBox, PopulationCenter

logger = logging.getLogger(__name__)

COLUMNS = 7


def load_population_centers(path: Path) -> List[PopulationCenter]:
    """
    Read ``displayName,lat,lon,minLat,minLon,maxLat,maxLon`` rows (with a
    header line). Every bad row is collected and reported together in one
    CatalogParseError.
    """
    if not path.exists():
        raise FileNotFoundError(f"Catalog file not found at path: {path}")

    centers: List[PopulationCenter] = []
    seen: Set[str] = set()
    errors: List[str] = []

    with path.open(newline="", encoding="utf-8") as fh:
        reader = csv.reader(fh)
        next(reader, None)
        for row_number, row in enumerate(reader, start=2):
            if not row or not any(cell.strip() for cell in row):
                continue
            if len(row) < COLUMNS:
                errors.append(f"Invalid line at row {row_number}: Not enough columns")
                continue
            name = row[0].strip()
            try:
                lat, lon, min_lat, min_lon, max_lat, max_lon = (float(v) for v in row[1:COLUMNS])
                bbox = BoundingBox(min_lat=min_lat, min_lon=min_lon, max_lat=max_lat, max_lon=max_lon)
            except ValidationError as exc:
                errors.append(f"Invalid bounding box at row {row_number}: {exc.errors()[0]['msg']}")
                continue
            except ValueError as exc:
                errors.append(f"Invalid number format at row {row_number}: {exc}")
                continue

            key = f"{name.lower()}_{lat}_{lon}"
            if key in seen:
                errors.append(f"Duplicate at row {row_number}: {key}")
                continue
            seen.add(key)
            centers.append(PopulationCenter(display_name=name, latitude=lat, longitude=lon, bbox=bbox))

    if errors:
        raise CatalogParseError(errors)
    return centers


def _same_point(a: PopulationCenter, b: PopulationCenter) -> bool:
    return (
        a.display_name.lower() == b.display_name.lower()
        and a.latitude == b.latitude
        and a.longitude == b.longitude
    )


class PopulationCenterCatalog:
    """Named points warmed daily; reloaded when the CSV file changes."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._centers: List[PopulationCenter] = []
        self._last_error: Optional[CatalogParseError] = None

    def load(self) -> List[PopulationCenter]:
        try:
            self._centers = load_population_centers(self.path)
        except CatalogParseError as exc:
            self._last_error = exc
            logger.error("Failed to load catalog %s: %s", self.path, exc.errors)
        except OSError as exc:
            logger.error("Failed to load catalog %s: %s", self.path, exc)
        else:
            self._last_error = None
            logger.info("Loaded %d population centers from %s", len(self._centers), self.path)
        return list(self._centers)

    def all_centers(self) -> List[PopulationCenter]:
        if self._last_error is not None:
            raise self._last_error
        return list(self._centers)

    def refresh(self) -> List[PopulationCenter]:
        """Reload the file and return the centers that were not present before."""
        try:
            new_centers = load_population_centers(self.path)
        except CatalogParseError as exc:
            self._last_error = exc
            raise

        added = [c for c in new_centers if not any(_same_point(old, c) for old in self._centers)]
        self._centers = new_centers
        self._last_error = None
        logger.info("Catalog reloaded: %d centers, %d new", len(new_centers), len(added))
        return added


class CatalogWatcher:
    """Polls the catalog file's mtime and hands newly added centers to ``on_added``."""

    def __init__(
        self,
        catalog: PopulationCenterCatalog,
        on_added: Callable[[List[PopulationCenter]], Awaitable[object]],
        poll_seconds: float = 5.0,
    ):
        self.catalog = catalog
        self.on_added = on_added
        self.poll_seconds = poll_seconds
        self._mtime: Optional[float] = self._current_mtime()

    def _current_mtime(self) -> Optional[float]:
        try:
            return os.stat(self.catalog.path).st_mtime
        except OSError:
            return None

    async def check_once(self) -> bool:
        mtime = self._current_mtime()
        if mtime is None or mtime == self._mtime:
            return False
        self._mtime = mtime
        logger.info("Detected change in catalog file %s", self.catalog.path)
        try:
            added = self.catalog.refresh()
        except CatalogParseError as exc:
            logger.error("Catalog parsing error: %s", exc.errors)
            return True
        except OSError as exc:
            logger.error("Catalog reload failed: %s", exc)
            return True
        if added:
            await self.on_added(added)
        return True

    async def run(self) -> None:
        logger.info("Watching for changes in %s", self.catalog.path)
        while True:
            await asyncio.sleep(self.poll_seconds)
            try:
                await self.check_once()
            except Exception:
                logger.exception("Catalog watcher iteration failed")

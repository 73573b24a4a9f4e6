import logging
import math
from typing import Dict, List

from gridweather.models import BoundingBox, GeoPoint, GridCell

logger = logging.getLogger(__name__)

METERS_PER_DEGREE_LATITUDE = 111_132.954
METERS_PER_DEGREE_LONGITUDE_AT_EQUATOR = 111_319.488
DEFAULT_CELL_SIZE_METERS = 1000.0
DEFAULT_BUFFER_FACTOR = 1.1


def round_half_away(value: float) -> float:
    """Round to the nearest integer, ties away from zero (builtin round() is banker's)."""
    # + 0.0 folds -0.0 into 0.0 so both sides of an axis share one cell id
    return math.copysign(math.floor(abs(value) + 0.5), value) + 0.0


def meters_per_degree_longitude(latitude: float) -> float:
    meters = METERS_PER_DEGREE_LONGITUDE_AT_EQUATOR * math.cos(math.radians(latitude))
    # degenerate near the poles
    return max(meters, 1.0)


class CoordinateGridMapper:
    """
    Maps coordinates onto a fixed-size (default 1 km) grid.

    Each cell is identified by its snapped center. The cell's bounding box is
    widened by a buffer factor so the provider's own grid point for the target
    reliably falls inside the requested area.
    """

    def __init__(self, cell_size_meters: float = DEFAULT_CELL_SIZE_METERS, buffer_factor: float = DEFAULT_BUFFER_FACTOR):
        self.cell_size_meters = cell_size_meters
        self.buffer_factor = buffer_factor

    def lat_spacing(self) -> float:
        return self.cell_size_meters / METERS_PER_DEGREE_LATITUDE

    def lon_spacing(self, latitude: float) -> float:
        return self.cell_size_meters / meters_per_degree_longitude(latitude)

    def map_to_cell(self, lat: float, lon: float) -> GridCell:
        lat_step = self.lat_spacing()
        lon_step = self.lon_spacing(lat)

        center_lat = round_half_away(lat / lat_step) * lat_step
        center_lon = round_half_away(lon / lon_step) * lon_step

        cell_id = f"cell_{center_lat:.6f}_{center_lon:.6f}"

        # box extent uses the spacing at the snapped latitude
        half_lat = lat_step / 2.0 * self.buffer_factor
        half_lon = self.lon_spacing(center_lat) / 2.0 * self.buffer_factor

        bbox = BoundingBox(
            min_lat=center_lat - half_lat,
            min_lon=center_lon - half_lon,
            max_lat=center_lat + half_lat,
            max_lon=center_lon + half_lon,
        )
        return GridCell(
            cell_id=cell_id,
            center=GeoPoint(latitude=center_lat, longitude=center_lon),
            bbox=bbox,
        )

    def generate_grid(self, bbox: BoundingBox, resolution_degrees: float) -> List[GridCell]:
        """
        Walk ``bbox`` from its minimum corner every ``resolution_degrees`` in
        both axes and return the distinct cells hit. An axis narrower than one
        step is sampled at its midpoint, so a box smaller than one step maps to
        the single cell holding its centroid.
        """
        if resolution_degrees <= 0:
            raise ValueError(f"resolution must be positive, got {resolution_degrees}")

        logger.info("Generating grid for bbox=%s resolution=%s", bbox.to_api_string(), resolution_degrees)

        cells: Dict[str, GridCell] = {}
        for lat in _steps(bbox.min_lat, bbox.max_lat, resolution_degrees):
            for lon in _steps(bbox.min_lon, bbox.max_lon, resolution_degrees):
                cell = self.map_to_cell(lat, lon)
                cells.setdefault(cell.cell_id, cell)

        logger.info("Generated %d unique grid cells for bbox=%s", len(cells), bbox.to_api_string())
        return list(cells.values())


def _steps(lower: float, upper: float, step: float) -> List[float]:
    span = upper - lower
    if span < step:
        return [(lower + upper) / 2.0]
    # index times step, so no drift accumulates
    count = math.floor(span / step + 1e-9)
    return [lower + i * step for i in range(count + 1)]

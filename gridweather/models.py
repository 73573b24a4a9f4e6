from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Precipitation(str, Enum):
    NONE = "none"
    DRIZZLE = "drizzle"
    RAIN = "rain"
    SNOW = "snow"
    SLEET = "sleet"
    HAIL = "hail"
    FREEZING_RAIN = "freezing rain"
    FREEZING_DRIZZLE = "freezing drizzle"
    ICE_PELLETS = "ice pellets"
    GRAUPEL = "graupel"


class ParameterCode(str, Enum):
    MAX_TEMP = "TX"
    MIN_TEMP = "TN"
    PRECIPITATION = "RR"
    SUN_DURATION = "SA"


class GeoPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float

    @model_validator(mode="after")
    def _check_order(self) -> "BoundingBox":
        if self.min_lat > self.max_lat or self.min_lon > self.max_lon:
            raise ValueError(
                f"invalid bounding box: ({self.min_lat}, {self.min_lon}) is not below ({self.max_lat}, {self.max_lon})"
            )
        return self

    def to_api_string(self) -> str:
        """Render as minLat,minLon,maxLat,maxLon with six decimals."""
        return f"{self.min_lat:.6f},{self.min_lon:.6f},{self.max_lat:.6f},{self.max_lon:.6f}"

    def centroid(self) -> GeoPoint:
        return GeoPoint(
            latitude=(self.min_lat + self.max_lat) / 2.0,
            longitude=(self.min_lon + self.max_lon) / 2.0,
        )

    def contains(self, point: GeoPoint) -> bool:
        return (
            self.min_lat <= point.latitude <= self.max_lat
            and self.min_lon <= point.longitude <= self.max_lon
        )


class GridCell(BaseModel):
    model_config = ConfigDict(frozen=True)

    cell_id: str
    center: GeoPoint
    bbox: BoundingBox


class WeatherObservation(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_temp: Optional[float] = None
    max_temp: Optional[float] = None
    precip: Precipitation = Precipitation.NONE
    sun_duration: Optional[float] = None


class WeatherReport(WeatherObservation):
    latitude: float
    longitude: float
    city_name: Optional[str] = None


class GridTemperature(BaseModel):
    latitude: float
    longitude: float
    temperature: float


class Region(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    bbox: BoundingBox
    resolution_degrees: float = Field(gt=0)


class PopulationCenter(BaseModel):
    model_config = ConfigDict(frozen=True)

    display_name: str
    latitude: float
    longitude: float
    bbox: BoundingBox


# ── Provider response (GeoJSON feature collection) ───────────────────────────

class ProviderParameter(BaseModel):
    name: Optional[str] = None
    unit: Optional[str] = None
    data: Optional[List[Optional[float]]] = None


class ProviderGeometry(BaseModel):
    coordinates: Optional[List[float]] = None


class ProviderProperties(BaseModel):
    parameters: Optional[Dict[str, Optional[ProviderParameter]]] = None


class ProviderFeature(BaseModel):
    geometry: Optional[ProviderGeometry] = None
    properties: Optional[ProviderProperties] = None


class FeatureCollection(BaseModel):
    features: Optional[List[ProviderFeature]] = None

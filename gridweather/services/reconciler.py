import logging
from typing import Optional, Sequence

from gridweather.models import ParameterCode, Precipitation, ProviderFeature, WeatherObservation

logger = logging.getLogger(__name__)

DRIZZLE_MAX_MM = 5.0


def distance_squared(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    # flat-plane comparison, good enough within one cell
    d_lat = lat1 - lat2
    d_lon = lon1 - lon2
    return d_lat * d_lat + d_lon * d_lon


def classify_precipitation(amount_mm: Optional[float]) -> Precipitation:
    if amount_mm is None or amount_mm <= 0.0:
        return Precipitation.NONE
    if amount_mm > DRIZZLE_MAX_MM:
        return Precipitation.RAIN
    return Precipitation.DRIZZLE


class FeatureReconciler:
    """Picks the provider grid point that best represents a target coordinate."""

    def nearest_feature(
        self, features: Sequence[ProviderFeature], target_lat: float, target_lon: float
    ) -> Optional[ProviderFeature]:
        best: Optional[ProviderFeature] = None
        best_distance = float("inf")
        for feature in features:
            coords = feature.geometry.coordinates if feature.geometry else None
            if not coords or len(coords) < 2:
                continue
            # GeoJSON order is [lon, lat]
            d = distance_squared(coords[1], coords[0], target_lat, target_lon)
            if d < best_distance:
                best, best_distance = feature, d
        return best

    def parameter_value(self, feature: ProviderFeature, code: ParameterCode) -> Optional[float]:
        params = feature.properties.parameters if feature.properties else None
        if not params or code.value not in params:
            return None
        param = params[code.value]
        if param is None or not param.data:
            logger.warning("Parameter %s is present but has no data", code.value)
            return None
        return param.data[0]

    def extract(self, feature: ProviderFeature) -> WeatherObservation:
        return WeatherObservation(
            min_temp=self.parameter_value(feature, ParameterCode.MIN_TEMP),
            max_temp=self.parameter_value(feature, ParameterCode.MAX_TEMP),
            precip=classify_precipitation(self.parameter_value(feature, ParameterCode.PRECIPITATION)),
            sun_duration=self.parameter_value(feature, ParameterCode.SUN_DURATION),
        )

    def extract_nearest(
        self, features: Sequence[ProviderFeature], target_lat: float, target_lon: float
    ) -> Optional[WeatherObservation]:
        feature = self.nearest_feature(features, target_lat, target_lon)
        if feature is None:
            return None
        return self.extract(feature)

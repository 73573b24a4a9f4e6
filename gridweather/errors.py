from enum import Enum
from typing import List, Optional


class ErrorMessage(str, Enum):
    """User-safe messages; raw provider diagnostics never go in here."""

    VALIDATION_ERROR = "Invalid request parameters: {}"
    WEATHER_DATA_NOT_FOUND = "Weather data not found for the specified location and date."
    EXTERNAL_API_FAILURE = "Failed to retrieve weather data from the external service."
    EXTERNAL_API_TIMEOUT = "External weather service timed out."
    UNEXPECTED_ERROR = "An internal server error occurred."
    GRID_MAPPING_ERROR = "An error occurred during grid cell calculation."
    UNKNOWN_REGION = "Unknown region: {}"
    CATALOG_PARSE_ERROR = "Catalog parsing failed with {} errors."

    def format(self, *args) -> str:  # type: ignore[override]
        return self.value.format(*args)


class GridWeatherError(Exception):
    default_message = ErrorMessage.UNEXPECTED_ERROR

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message.value)

    @property
    def message(self) -> str:
        return str(self)


class WeatherDataNotFoundError(GridWeatherError):
    """No provider data exists for the resolved cell and date."""

    default_message = ErrorMessage.WEATHER_DATA_NOT_FOUND


class ProviderFailure(GridWeatherError):
    """Non-success status, transport error or unreadable provider response."""

    default_message = ErrorMessage.EXTERNAL_API_FAILURE


class ProviderTimeout(ProviderFailure):
    default_message = ErrorMessage.EXTERNAL_API_TIMEOUT


class MappingError(GridWeatherError):
    default_message = ErrorMessage.GRID_MAPPING_ERROR


class UnexpectedError(GridWeatherError):
    default_message = ErrorMessage.UNEXPECTED_ERROR


class UnknownRegionError(GridWeatherError):
    def __init__(self, region_name: str):
        super().__init__(ErrorMessage.UNKNOWN_REGION.format(region_name))
        self.region_name = region_name


class CatalogParseError(GridWeatherError):
    """Raised with every row-level problem found in the catalog file."""

    def __init__(self, errors: List[str]):
        super().__init__(ErrorMessage.CATALOG_PARSE_ERROR.format(len(errors)))
        self.errors = list(errors)

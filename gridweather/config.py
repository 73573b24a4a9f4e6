from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # App
    app_name: str = "gridweather"
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Provider
    provider_base_url: str = "https://dataset.api.hub.geosphere.at/v1/grid/historical/spartacus-v2-1d-1km"
    provider_timeout_seconds: float = 15.0
    provider_parameters: str = "TX,TN,RR,SA"

    # Grid
    cell_size_meters: float = 1000.0
    bbox_buffer_factor: float = 1.1

    # Cache tuning; a TTL of None never expires, 0 disables storing
    redis_url: Optional[str] = None
    point_cache_ttl_seconds: Optional[int] = None
    cell_cache_ttl_seconds: Optional[int] = None
    negative_cache_ttl_seconds: float = 0.0

    # Regional grids
    region_resolution_degrees: float = 1.0
    region_workers: int = 4

    # Pre-cache
    precache_pacing_seconds: float = 0.25
    catalog_csv_path: str = "data/population_centers.csv"
    catalog_poll_seconds: float = 5.0

    # Scheduling
    daily_job_hour: int = 10
    daily_job_minute: int = 0
    schedule_timezone: str = "Europe/Vienna"
    startup_jobs_enabled: bool = True

    @property
    def parameter_codes(self) -> list[str]:
        return [code.strip() for code in self.provider_parameters.split(",") if code.strip()]


settings = Settings()

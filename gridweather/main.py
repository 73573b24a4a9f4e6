import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from gridweather.config import settings
from gridweather.errors import (
    CatalogParseError,
    ErrorMessage,
    GridWeatherError,
    ProviderFailure,
    UnknownRegionError,
    WeatherDataNotFoundError,
)
from gridweather.logging_config import configure_logging
from gridweather.models import GridTemperature, WeatherObservation, WeatherReport
from gridweather.services.cache import build_store
from gridweather.services.catalog import CatalogWatcher, PopulationCenterCatalog
from gridweather.services.grid import CoordinateGridMapper
from gridweather.services.precache import PreCacheScheduler
from gridweather.services.provider import ProviderGateway
from gridweather.services.reconciler import FeatureReconciler
from gridweather.services.regions import RegionalGridPopulator, default_regions
from gridweather.services.scheduler import run_daily, today_in
from gridweather.services.weather import TieredWeatherCache

logger = logging.getLogger(__name__)

today = today_in(settings.schedule_timezone)
mapper = CoordinateGridMapper(settings.cell_size_meters, settings.bbox_buffer_factor)
gateway = ProviderGateway(
    settings.provider_base_url,
    timeout_seconds=settings.provider_timeout_seconds,
    parameters=settings.parameter_codes,
)
weather = TieredWeatherCache(
    mapper,
    gateway,
    FeatureReconciler(),
    point_store=build_store(settings.redis_url, "point", WeatherReport),
    cell_store=build_store(settings.redis_url, "cell", WeatherObservation),
    point_ttl_seconds=settings.point_cache_ttl_seconds,
    cell_ttl_seconds=settings.cell_cache_ttl_seconds,
    negative_ttl_seconds=settings.negative_cache_ttl_seconds,
)
catalog = PopulationCenterCatalog(Path(settings.catalog_csv_path))
regions = RegionalGridPopulator(
    weather,
    mapper,
    default_regions(settings.region_resolution_degrees),
    max_workers=settings.region_workers,
    today=today,
)
precache = PreCacheScheduler(weather, catalog, pacing_seconds=settings.precache_pacing_seconds, today=today)


def _background_jobs() -> List[asyncio.Task]:
    watcher = CatalogWatcher(
        catalog,
        lambda added: precache.warm_points(added, "CatalogReload"),
        poll_seconds=settings.catalog_poll_seconds,
    )
    hour, minute, tz = settings.daily_job_hour, settings.daily_job_minute, settings.schedule_timezone
    return [
        asyncio.create_task(regions.populate_all_regions(), name="regions-startup"),
        asyncio.create_task(precache.warm_catalog("Startup"), name="precache-startup"),
        asyncio.create_task(run_daily("regional refresh", regions.refresh, hour, minute, tz), name="regions-daily"),
        asyncio.create_task(
            run_daily("pre-cache", lambda: precache.warm_catalog("Scheduled"), hour, minute, tz),
            name="precache-daily",
        ),
        asyncio.create_task(watcher.run(), name="catalog-watcher"),
    ]


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings.log_level, settings.log_file)
    catalog.load()
    tasks = _background_jobs() if settings.startup_jobs_enabled else []
    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


app = FastAPI(title=settings.app_name, lifespan=lifespan)


@app.get("/health")
def health():
    return {"status": "ok", "service": settings.app_name}


@app.get("/")
def root():
    return JSONResponse({"service": settings.app_name, "docs": "/docs"})


# ── Point weather ────────────────────────────────────────────────────────────

@app.get("/dailyweather", response_model=WeatherReport)
async def daily_weather(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    actual_date: date = Query(..., description="ISO date, e.g. 2024-05-01"),
    city_name: Optional[str] = Query(None, min_length=1),
):
    return await _lookup_weather(latitude, longitude, actual_date, city_name)


@app.get("/dailyweather/cached", response_model=List[WeatherReport])
def cached_weather(actual_date: date = Query(...)):
    try:
        centers = catalog.all_centers()
    except CatalogParseError as exc:
        return JSONResponse(status_code=400, content={"message": "Catalog parsing error", "errors": exc.errors})

    results = []
    for center in centers:
        report = weather.peek(center.latitude, center.longitude, actual_date)
        if report is None:
            return Response(status_code=204)
        results.append(report.model_copy(update={"city_name": center.display_name}))
    return results


# ── Regional grids ───────────────────────────────────────────────────────────

@app.get("/grid", response_model=List[GridTemperature])
def all_grids():
    return regions.get_all_regional_grids()


@app.get("/grid/regions")
def region_names():
    return {"regions": regions.region_names()}


@app.get("/grid/{region_name}", response_model=List[GridTemperature])
def region_grid(region_name: str):
    try:
        return regions.get_regional_grid(region_name)
    except UnknownRegionError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


# ── Shared helpers ───────────────────────────────────────────────────────────

async def _lookup_weather(lat: float, lon: float, day: date, city_name: Optional[str]) -> WeatherReport:
    """Resolve weather for a point; 404 when the provider has no data, 503 on provider errors."""
    try:
        return await weather.get_weather(lat, lon, day, city_name)
    except WeatherDataNotFoundError as exc:
        logger.info("Data not found: %s", exc)
        raise HTTPException(status_code=404, detail=str(exc))
    except ProviderFailure as exc:
        logger.error("External API error: %s", exc)
        raise HTTPException(status_code=503, detail=ErrorMessage.EXTERNAL_API_FAILURE.value)
    except GridWeatherError as exc:
        logger.error("Weather lookup failed: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail=ErrorMessage.UNEXPECTED_ERROR.value)
    except Exception as exc:
        logger.error("An unexpected error occurred: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail=ErrorMessage.UNEXPECTED_ERROR.value)

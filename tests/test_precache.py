"""
Tests for catalog pre-caching. Sleep is injected so pacing is recorded
instead of waited on.
"""
import asyncio
from datetime import date
from unittest.mock import MagicMock

from gridweather.errors import CatalogParseError, ProviderFailure, WeatherDataNotFoundError
from gridweather.models import BoundingBox, PopulationCenter, WeatherReport
from gridweather.services.precache import PreCacheScheduler

TODAY = date(2024, 5, 2)


def _center(name, lat, lon):
    return PopulationCenter(
        display_name=name,
        latitude=lat,
        longitude=lon,
        bbox=BoundingBox(min_lat=lat - 0.1, min_lon=lon - 0.1, max_lat=lat + 0.1, max_lon=lon + 0.1),
    )


CENTERS = [
    _center("Wien", 48.2082, 16.3738),
    _center("Graz", 47.0707, 15.4395),
    _center("Linz", 48.3069, 14.2858),
    _center("Salzburg", 47.8095, 13.0550),
]


class RecordingWeather:
    def __init__(self, failures=None):
        self.failures = failures or {}
        self.calls = []

    async def get_weather(self, lat, lon, day, city_name=None):
        self.calls.append((city_name, day))
        error = self.failures.get(city_name)
        if error is not None:
            raise error
        return WeatherReport(latitude=lat, longitude=lon, city_name=city_name, max_temp=20.0)


def _scheduler(weather, centers=CENTERS):
    catalog = MagicMock()
    catalog.all_centers.return_value = list(centers)
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    scheduler = PreCacheScheduler(weather, catalog, pacing_seconds=0.25, today=lambda: TODAY, sleep=fake_sleep)
    return scheduler, sleeps


def test_target_date_is_yesterday():
    scheduler, _ = _scheduler(RecordingWeather())
    assert scheduler.target_date() == date(2024, 5, 1)


def test_warms_centers_in_order_for_yesterday():
    weather = RecordingWeather()
    scheduler, sleeps = _scheduler(weather)

    summary = asyncio.run(scheduler.warm_catalog("Startup"))

    assert [name for name, _ in weather.calls] == ["Wien", "Graz", "Linz", "Salzburg"]
    assert {day for _, day in weather.calls} == {date(2024, 5, 1)}
    assert summary.trigger == "Startup"
    assert summary.day == date(2024, 5, 1)
    assert summary.successes == 4
    assert summary.failures == 0


def test_pacing_only_between_items():
    scheduler, sleeps = _scheduler(RecordingWeather())
    asyncio.run(scheduler.warm_catalog("Scheduled"))
    assert sleeps == [0.25, 0.25, 0.25]


def test_single_item_is_not_paced():
    scheduler, sleeps = _scheduler(RecordingWeather(), centers=CENTERS[:1])
    asyncio.run(scheduler.warm_catalog("Scheduled"))
    assert sleeps == []


def test_failures_are_counted_and_loop_continues():
    weather = RecordingWeather(
        failures={
            "Graz": WeatherDataNotFoundError(),
            "Linz": ProviderFailure(),
            "Salzburg": RuntimeError("boom"),
        }
    )
    scheduler, _ = _scheduler(weather)

    summary = asyncio.run(scheduler.warm_catalog("Scheduled"))

    assert len(weather.calls) == 4
    assert summary.successes == 1
    assert summary.failures == 3


def test_unavailable_catalog_gives_empty_summary():
    weather = RecordingWeather()
    scheduler, _ = _scheduler(weather)
    scheduler.catalog.all_centers.side_effect = CatalogParseError(["Invalid line at row 3: Not enough columns"])

    summary = asyncio.run(scheduler.warm_catalog("Startup"))

    assert weather.calls == []
    assert summary.successes == 0
    assert summary.failures == 0


def test_warm_points_for_catalog_additions():
    weather = RecordingWeather()
    scheduler, _ = _scheduler(weather)

    summary = asyncio.run(scheduler.warm_points(CENTERS[2:], "CatalogReload"))

    assert [name for name, _ in weather.calls] == ["Linz", "Salzburg"]
    assert summary.trigger == "CatalogReload"
    assert summary.successes == 2
    scheduler.catalog.all_centers.assert_not_called()

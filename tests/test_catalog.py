"""
Tests for the population center CSV catalog and its file watcher.
"""
import asyncio
import os

import pytest

from gridweather.errors import CatalogParseError
from gridweather.services.catalog import CatalogWatcher, PopulationCenterCatalog, load_population_centers

HEADER = "displayName,lat,lon,minLat,minLon,maxLat,maxLon\n"
WIEN = "Wien,48.2082,16.3738,48.1182,16.1838,48.3225,16.5775\n"
GRAZ = "Graz,47.0707,15.4395,47.0207,15.3595,47.1207,15.5195\n"
LINZ = "Linz,48.3069,14.2858,48.2569,14.2058,48.3569,14.3658\n"


def _write(path, *rows):
    path.write_text(HEADER + "".join(rows), encoding="utf-8")
    return path


@pytest.fixture()
def csv_path(tmp_path):
    return _write(tmp_path / "centers.csv", WIEN, GRAZ)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def test_load_reads_rows(csv_path):
    centers = load_population_centers(csv_path)
    assert [c.display_name for c in centers] == ["Wien", "Graz"]
    assert centers[0].latitude == 48.2082
    assert centers[0].bbox.max_lon == 16.5775


def test_blank_lines_are_ignored(tmp_path):
    path = _write(tmp_path / "centers.csv", WIEN, "\n", GRAZ)
    assert len(load_population_centers(path)) == 2


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_population_centers(tmp_path / "missing.csv")


def test_row_errors_are_collected(tmp_path):
    path = _write(
        tmp_path / "centers.csv",
        WIEN,
        "Broken,48.0,16.0\n",
        "Words,abc,16.0,47.0,15.0,48.0,17.0\n",
        "Inverted,48.0,16.0,49.0,15.0,47.0,17.0\n",
        WIEN,
    )

    with pytest.raises(CatalogParseError) as excinfo:
        load_population_centers(path)

    errors = excinfo.value.errors
    assert len(errors) == 4
    assert errors[0] == "Invalid line at row 3: Not enough columns"
    assert errors[1].startswith("Invalid number format at row 4")
    assert errors[2].startswith("Invalid bounding box at row 5")
    assert errors[3].startswith("Duplicate at row 6")
    assert "4 errors" in str(excinfo.value)


def test_duplicates_ignore_name_case(tmp_path):
    path = _write(tmp_path / "centers.csv", WIEN, WIEN.replace("Wien", "WIEN", 1))
    with pytest.raises(CatalogParseError):
        load_population_centers(path)


# ---------------------------------------------------------------------------
# PopulationCenterCatalog
# ---------------------------------------------------------------------------

def test_catalog_load(csv_path):
    catalog = PopulationCenterCatalog(csv_path)
    assert len(catalog.load()) == 2
    assert len(catalog.all_centers()) == 2


def test_catalog_load_with_missing_file_is_empty(tmp_path):
    catalog = PopulationCenterCatalog(tmp_path / "missing.csv")
    assert catalog.load() == []
    assert catalog.all_centers() == []


def test_refresh_returns_only_new_centers(csv_path):
    catalog = PopulationCenterCatalog(csv_path)
    catalog.load()

    _write(csv_path, WIEN, GRAZ, LINZ)
    added = catalog.refresh()

    assert [c.display_name for c in added] == ["Linz"]
    assert len(catalog.all_centers()) == 3


def test_broken_refresh_makes_catalog_unavailable(csv_path):
    catalog = PopulationCenterCatalog(csv_path)
    catalog.load()

    _write(csv_path, WIEN, "Broken,48.0\n")
    with pytest.raises(CatalogParseError):
        catalog.refresh()
    with pytest.raises(CatalogParseError) as excinfo:
        catalog.all_centers()
    assert excinfo.value.errors == ["Invalid line at row 3: Not enough columns"]

    _write(csv_path, WIEN, GRAZ, LINZ)
    catalog.refresh()
    assert len(catalog.all_centers()) == 3


# ---------------------------------------------------------------------------
# CatalogWatcher
# ---------------------------------------------------------------------------

def _touch_later(path, seconds=10):
    stat = os.stat(path)
    os.utime(path, (stat.st_atime + seconds, stat.st_mtime + seconds))


def test_watcher_ignores_unchanged_file(csv_path):
    catalog = PopulationCenterCatalog(csv_path)
    catalog.load()
    added_batches = []

    async def on_added(added):
        added_batches.append(added)

    watcher = CatalogWatcher(catalog, on_added)
    assert asyncio.run(watcher.check_once()) is False
    assert added_batches == []


def test_watcher_hands_new_centers_to_callback(csv_path):
    catalog = PopulationCenterCatalog(csv_path)
    catalog.load()
    added_batches = []

    async def on_added(added):
        added_batches.append([c.display_name for c in added])

    watcher = CatalogWatcher(catalog, on_added)
    _write(csv_path, WIEN, GRAZ, LINZ)
    _touch_later(csv_path)

    assert asyncio.run(watcher.check_once()) is True
    assert added_batches == [["Linz"]]
    assert asyncio.run(watcher.check_once()) is False


def test_watcher_survives_parse_errors(csv_path):
    catalog = PopulationCenterCatalog(csv_path)
    catalog.load()
    added_batches = []

    async def on_added(added):
        added_batches.append(added)

    watcher = CatalogWatcher(catalog, on_added)
    _write(csv_path, "Broken\n")
    _touch_later(csv_path)

    assert asyncio.run(watcher.check_once()) is True
    assert added_batches == []
    with pytest.raises(CatalogParseError):
        catalog.all_centers()


def test_watcher_skips_callback_when_nothing_added(csv_path):
    catalog = PopulationCenterCatalog(csv_path)
    catalog.load()
    added_batches = []

    async def on_added(added):
        added_batches.append(added)

    watcher = CatalogWatcher(catalog, on_added)
    _write(csv_path, GRAZ)
    _touch_later(csv_path)

    assert asyncio.run(watcher.check_once()) is True
    assert added_batches == []
    assert [c.display_name for c in catalog.all_centers()] == ["Graz"]

"""
Shared test helpers. Background jobs are switched off so importing the app
never reaches the real provider.
"""
import asyncio
import os
from typing import List, Optional

import pytest

os.environ.setdefault("STARTUP_JOBS_ENABLED", "false")

from gridweather.models import ProviderFeature  # noqa: E402


def make_feature(lat: float, lon: float, tx=None, tn=None, rr=None, sa=None) -> ProviderFeature:
    params = {}
    for code, value in (("TX", tx), ("TN", tn), ("RR", rr), ("SA", sa)):
        if value is not None:
            params[code] = {"name": code, "unit": "", "data": [value]}
    return ProviderFeature.model_validate(
        {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [lon, lat]},
            "properties": {"parameters": params},
        }
    )


class FakeGateway:
    """Stands in for ProviderGateway; counts calls and can delay or fail."""

    def __init__(self, features: Optional[List[ProviderFeature]] = None, error: Optional[BaseException] = None, delay: float = 0.0):
        self.features = features if features is not None else []
        self.error = error
        self.delay = delay
        self.calls = 0
        self.requests = []

    async def fetch(self, bbox, day):
        self.calls += 1
        self.requests.append((bbox, day))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.features)


@pytest.fixture()
def feature_factory():
    return make_feature

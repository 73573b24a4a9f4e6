import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from gridweather.errors import ErrorMessage, ProviderFailure, ProviderTimeout
from gridweather.models import BoundingBox, FeatureCollection, ProviderFeature

logger = logging.getLogger(__name__)

DEFAULT_PARAMETERS = ("TX", "TN", "RR", "SA")
EMPTY_BODY = "[empty or unreadable body]"


class ProviderGateway:
    """Client for the gridded daily weather API, queried by bounding box and date."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 15.0,
        parameters: Sequence[str] = DEFAULT_PARAMETERS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout_seconds
        self.parameters = ",".join(parameters)
        self._transport = transport

    def build_params(self, bbox: BoundingBox, day: date) -> Dict[str, Any]:
        iso = day.isoformat()
        return {
            "start": iso,
            "end": iso,
            "bbox": bbox.to_api_string(),
            "parameters": self.parameters,
            "response_format": "geojson",
        }

    async def fetch(self, bbox: BoundingBox, day: date) -> List[ProviderFeature]:
        params = self.build_params(bbox, day)
        url = self.base_url
        logger.debug("Calling provider url=%s params=%s", url, params)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await asyncio.wait_for(client.get(url, params=params), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.error("Provider timed out after %.1fs url=%s bbox=%s", self.timeout, url, params["bbox"])
            raise ProviderTimeout() from exc
        except httpx.HTTPError as exc:
            logger.error("Provider transport error url=%s: %s", url, exc, exc_info=True)
            raise ProviderFailure() from exc

        if r.is_error:
            body = _read_body(r)
            logger.error("Provider error %s for %s: %s", r.status_code, r.url, body)
            raise ProviderFailure(ErrorMessage.EXTERNAL_API_FAILURE.value)

        try:
            collection = FeatureCollection.model_validate(r.json())
        except (ValueError, ValidationError) as exc:
            logger.error("Unreadable provider response from %s: %s", r.url, exc)
            raise ProviderFailure() from exc

        return collection.features or []


def _read_body(response: httpx.Response) -> str:
    try:
        text = response.text
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return EMPTY_BODY
    return text or EMPTY_BODY

from typing import Optional
import time

import httpx

from .config import EngineConfig
from .errors import ResolutionFailure
from .models import ResolvedLocation
from .tracing import CallTrace, record_call


class NominatimGeocoder:
    """Bare address -> coordinate lookup against OpenStreetMap Nominatim."""

    def __init__(self, config: EngineConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self._client = client

    async def geocode(self, address: str, trace: Optional[CallTrace] = None) -> ResolvedLocation:
        started = time.monotonic()
        params = {
            "q": address,
            "format": "jsonv2",
            "limit": 1,
            "addressdetails": 0,
        }
        headers = {"User-Agent": self.config.user_agent}
        try:
            if self._client is not None:
                resp = await self._client.get(f"{self.config.nominatim_base}/search", params=params, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.config.http_timeout_sec) as client:
                    resp = await client.get(f"{self.config.nominatim_base}/search", params=params, headers=headers)
        except httpx.HTTPError as e:
            record_call(trace, "nominatim", "geocode", started, ok=False, error=str(e))
            raise ResolutionFailure(f"Nominatim request failed: {e}") from e

        if resp.status_code != 200:
            record_call(trace, "nominatim", "geocode", started, ok=False, error=f"HTTP {resp.status_code}")
            raise ResolutionFailure(f"Nominatim error: {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            record_call(trace, "nominatim", "geocode", started, ok=False, error="invalid json")
            raise ResolutionFailure("Nominatim returned invalid JSON") from e
        if not data:
            record_call(trace, "nominatim", "geocode", started, ok=False, error="no results")
            raise ResolutionFailure(f"No results for '{address}'")

        first = data[0]
        try:
            lat = float(first["lat"])
            lng = float(first["lon"])
        except (TypeError, ValueError, KeyError) as e:
            record_call(trace, "nominatim", "geocode", started, ok=False, error="malformed result")
            raise ResolutionFailure("Nominatim response malformed") from e

        record_call(trace, "nominatim", "geocode", started)
        return ResolvedLocation(
            name=first.get("name") or address,
            address=first.get("display_name") or address,
            lat=lat,
            lng=lng,
        )

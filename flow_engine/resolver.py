"""
Location resolver: place name + context hint -> best-effort coordinates and address.

Uses the grounded generator call (a tool-using request, distinct from the
schema-constrained path). Every failure degrades to the (0, 0) sentinel.
"""
from collections import OrderedDict
from typing import Any, Optional, Tuple
import json
import logging
import time

from .errors import ResolutionFailure
from .generation import GeneratorPort, repair_json_text
from .geocoder import NominatimGeocoder
from .models import ResolvedLocation
from .prompts import build_resolve_prompt
from .tracing import CallTrace, record_call


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_resolution(text: Optional[str], query: str) -> ResolvedLocation:
    """Read a grounded answer. Unparseable text becomes the address of a sentinel result."""
    if not text or not text.strip():
        raise ResolutionFailure("Empty grounded response")
    payload: Any = None
    for candidate in (text, repair_json_text(text)):
        try:
            payload = json.loads(candidate)
            break
        except json.JSONDecodeError:
            continue
    if not isinstance(payload, dict):
        return ResolvedLocation.sentinel(query, address=text.strip())

    lat = _as_float(payload.get("lat"))
    lng = _as_float(payload.get("lng", payload.get("lon")))
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        lat, lng = 0.0, 0.0
    return ResolvedLocation(
        name=str(payload.get("name") or query),
        address=str(payload.get("address") or query),
        lat=lat,
        lng=lng,
    )


class LocationResolver:
    def __init__(
        self,
        generator: GeneratorPort,
        geocoder: Optional[NominatimGeocoder] = None,
        cache_size: int = 256,
    ) -> None:
        self.generator = generator
        self.geocoder = geocoder
        self.cache_size = cache_size
        self._cache: "OrderedDict[Tuple[str, str], ResolvedLocation]" = OrderedDict()

    async def resolve(
        self,
        query: str,
        context_hint: Optional[str] = None,
        trace: Optional[CallTrace] = None,
    ) -> ResolvedLocation:
        query = (query or "").strip()
        if not query:
            return ResolvedLocation.sentinel("")
        key = (query.casefold(), (context_hint or "").casefold())
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        try:
            result = await self._resolve_grounded(query, context_hint, trace)
        except Exception as e:
            logging.warning("Location resolve failed for %r: %s", query, e)
            result = ResolvedLocation.sentinel(query)

        if not result.is_resolved and self.geocoder is not None:
            result = await self._geocode_fallback(result, query, context_hint, trace)

        # Only cache real hits; a later attempt may succeed.
        if result.is_resolved:
            self._cache[key] = result
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return result

    async def _resolve_grounded(
        self, query: str, context_hint: Optional[str], trace: Optional[CallTrace]
    ) -> ResolvedLocation:
        started = time.monotonic()
        try:
            text = await self.generator.generate_grounded(build_resolve_prompt(query, context_hint))
            result = parse_resolution(text, query)
        except Exception as e:
            record_call(trace, "gemini", "resolve_location", started, ok=False, error=str(e), query=query)
            raise
        record_call(trace, "gemini", "resolve_location", started, query=query, resolved=result.is_resolved)
        return result

    async def _geocode_fallback(
        self,
        result: ResolvedLocation,
        query: str,
        context_hint: Optional[str],
        trace: Optional[CallTrace],
    ) -> ResolvedLocation:
        usable = result.address and result.address != query and len(result.address) <= 200
        lookup = result.address if usable else query
        if context_hint and context_hint.casefold() not in lookup.casefold():
            lookup = f"{lookup}, {context_hint}"
        try:
            hit = await self.geocoder.geocode(lookup, trace=trace)
        except Exception as e:
            logging.info("Geocode fallback missed for %r: %s", lookup, e)
            return result
        return ResolvedLocation(name=result.name, address=result.address or hit.address, lat=hit.lat, lng=hit.lng)

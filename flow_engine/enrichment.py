import asyncio
import logging
from typing import Optional

from .models import Itinerary, Location, ResolvedLocation, Stop
from .resolver import LocationResolver
from .tracing import CallTrace


async def _resolve_stop(
    stop: Stop,
    context_hint: Optional[str],
    resolver: LocationResolver,
    trace: Optional[CallTrace],
) -> Stop:
    try:
        hit = await resolver.resolve(stop.name, context_hint, trace=trace)
    except Exception as e:
        logging.warning("Enrichment lookup failed for %r: %s", stop.name, e)
        hit = ResolvedLocation.sentinel(stop.name)
    address = stop.location.address or hit.address or stop.name
    if hit.is_resolved:
        address = hit.address or address
    return stop.model_copy(update={"location": Location(lat=hit.lat, lng=hit.lng, address=address)})


def _with_address(stop: Stop) -> Stop:
    if stop.location.address:
        return stop
    return stop.model_copy(update={"location": stop.location.model_copy(update={"address": stop.name})})


async def enrich(
    itinerary: Itinerary,
    context_hint: Optional[str],
    resolver: LocationResolver,
    trace: Optional[CallTrace] = None,
) -> Itinerary:
    """Resolve every stop still at the (0, 0) sentinel, concurrently.

    Stops that already carry coordinates pass through untouched. Returns a new
    itinerary; every stop has a non-empty address afterwards.
    """
    pending = [i for i, s in enumerate(itinerary.stops) if not s.location.is_resolved]
    results = await asyncio.gather(
        *(_resolve_stop(itinerary.stops[i], context_hint, resolver, trace) for i in pending)
    )
    stops = list(itinerary.stops)
    for i, stop in zip(pending, results):
        stops[i] = stop
    stops = [_with_address(s) for s in stops]
    return itinerary.model_copy(update={"stops": stops})


def context_hint_for(itinerary: Itinerary, fallback: str) -> str:
    """First stop's resolved address, else ``fallback``."""
    if itinerary.stops:
        first = itinerary.stops[0]
        if first.location.is_resolved and first.location.address:
            return first.location.address
    return fallback

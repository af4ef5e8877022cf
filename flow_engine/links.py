from typing import List, Optional
from urllib.parse import urlencode

from .models import Itinerary, Stop

MAPS_SEARCH_URL = "https://www.google.com/maps/search/"
MAPS_DIR_URL = "https://www.google.com/maps/dir/"


def _place(stop: Stop) -> str:
    return stop.location.address or stop.name


def map_link(stop: Stop, previous: Optional[Stop] = None) -> str:
    """Search link for the first stop, transit directions from ``previous`` otherwise."""
    if previous is None:
        return f"{MAPS_SEARCH_URL}?{urlencode({'api': 1, 'query': _place(stop)})}"
    params = {
        "api": 1,
        "origin": _place(previous),
        "destination": _place(stop),
        "travelmode": "transit",
    }
    return f"{MAPS_DIR_URL}?{urlencode(params)}"


def itinerary_links(itinerary: Itinerary) -> List[str]:
    links = []
    previous = None
    for stop in itinerary.stops:
        links.append(map_link(stop, previous))
        previous = stop
    return links

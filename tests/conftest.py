import json
import re
from typing import Any, Dict, List, Optional, Union

import pytest

from flow_engine.config import EngineConfig
from flow_engine.generation import StructuredPlanner
from flow_engine.resolver import LocationResolver


QUERY_RE = re.compile(r'Find the specific location: "(?P<query>.*?)" near')

Scripted = Union[str, Dict[str, Any], Exception, None]


class FakeGenerator:
    """Deterministic stand-in for the Gemini client.

    Structured calls pop scripted responses in order. Grounded calls answer
    from ``places`` by query; unknown queries get ``grounded_default``.
    """

    def __init__(
        self,
        structured: Optional[List[Scripted]] = None,
        places: Optional[Dict[str, Scripted]] = None,
        grounded_default: Scripted = "auto",
    ) -> None:
        self.structured = list(structured or [])
        self.places = places or {}
        self.grounded_default = grounded_default
        self.structured_calls: List[Dict[str, Any]] = []
        self.grounded_calls: List[str] = []

    async def generate_structured(self, prompt, schema, *, thinking_budget=None):
        self.structured_calls.append({"prompt": prompt, "schema": schema, "thinking_budget": thinking_budget})
        item = self.structured.pop(0) if self.structured else None
        return _answer(item)

    async def generate_grounded(self, prompt):
        self.grounded_calls.append(prompt)
        m = QUERY_RE.search(prompt)
        query = m.group("query") if m else ""
        if query in self.places:
            return _answer(self.places[query])
        if self.grounded_default == "auto":
            # Stable fake coordinates derived from the name.
            offset = (sum(ord(ch) for ch in query) % 100) / 1000
            return json.dumps(
                {"name": query, "address": f"{query}, New York, NY", "lat": 40.7 + offset, "lng": -73.99 + offset}
            )
        return _answer(self.grounded_default)

    @property
    def grounded_queries(self) -> List[str]:
        out = []
        for prompt in self.grounded_calls:
            m = QUERY_RE.search(prompt)
            out.append(m.group("query") if m else "")
        return out


def _answer(item: Scripted) -> Optional[str]:
    if isinstance(item, Exception):
        raise item
    if isinstance(item, dict):
        return json.dumps(item)
    return item


def make_stop(name: str, start: str, end: str, fixed: bool = False, **extra: Any) -> Dict[str, Any]:
    stop = {
        "id": extra.pop("id", re.sub(r"\W+", "-", name.lower()).strip("-")),
        "name": name,
        "startTime": start,
        "endTime": end,
        "authenticityScore": extra.pop("authenticityScore", 8),
        "instagramScore": extra.pop("instagramScore", 6),
        "tags": extra.pop("tags", ["local"]),
        "estimatedCost": extra.pop("estimatedCost", "$10"),
        "isFixed": fixed,
    }
    if fixed:
        stop["type"] = "COMMITMENT"
    stop.update(extra)
    return stop


def make_plan(stops: List[Dict[str, Any]], title: str = "A Day Out", **extra: Any) -> Dict[str, Any]:
    plan = {
        "title": title,
        "stops": stops,
        "totalAuthenticityScore": 80,
        "totalInstagramScore": 70,
    }
    plan.update(extra)
    return plan


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(gemini_api_key="test-key", recalc_thinking_budget=0, generation_thinking_budget=512)


@pytest.fixture
def fake() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def planner(fake, config) -> StructuredPlanner:
    return StructuredPlanner(fake, config)


@pytest.fixture
def resolver(fake) -> LocationResolver:
    return LocationResolver(fake)

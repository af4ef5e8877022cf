"""
Generation client: the Gemini port, JSON parse/repair and itinerary validation.
"""
import json
import logging
import re
import time
from typing import Any, Dict, Optional, Protocol

from google import genai
from google.genai import types
from pydantic import ValidationError

from .config import EngineConfig
from .errors import GenerationFailure, MalformedStop
from .models import Itinerary
from .prompts import PromptSpec
from .tracing import CallTrace, record_call


class GeneratorPort(Protocol):
    """The two call modes the provider supports. They cannot be combined in one call."""

    async def generate_structured(
        self, prompt: str, schema: Dict[str, Any], *, thinking_budget: Optional[int] = None
    ) -> Optional[str]:
        ...

    async def generate_grounded(self, prompt: str) -> Optional[str]:
        ...


class Planner(Protocol):
    async def plan(
        self,
        prompt: PromptSpec,
        *,
        thinking_budget: Optional[int] = None,
        trace: Optional[CallTrace] = None,
    ) -> Itinerary:
        ...


def _response_text(response: Any) -> Optional[str]:
    text = getattr(response, "text", None)
    if text:
        return text
    chunks = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            if getattr(part, "text", None):
                chunks.append(part.text)
    return "".join(chunks) or None


class GeminiGenerator:
    """GeneratorPort backed by the google-genai async client."""

    def __init__(self, config: EngineConfig, client: Optional[genai.Client] = None) -> None:
        if client is None:
            if not config.gemini_api_key:
                raise ValueError(
                    "GEMINI_API_KEY missing. Set the environment variable or pass gemini_api_key to EngineConfig."
                )
            client = genai.Client(api_key=config.gemini_api_key)
        self.config = config
        self.client = client

    async def generate_structured(
        self, prompt: str, schema: Dict[str, Any], *, thinking_budget: Optional[int] = None
    ) -> Optional[str]:
        budget = self.config.generation_thinking_budget if thinking_budget is None else thinking_budget
        gen_config = types.GenerateContentConfig(
            temperature=self.config.temperature,
            response_mime_type="application/json",
            response_schema=schema,
            thinking_config=types.ThinkingConfig(thinking_budget=budget),
        )
        response = await self.client.aio.models.generate_content(
            model=self.config.gemini_model,
            contents=prompt,
            config=gen_config,
        )
        return _response_text(response)

    async def generate_grounded(self, prompt: str) -> Optional[str]:
        if self.config.grounding_tool == "google_search":
            tool = types.Tool(google_search=types.GoogleSearch())
        else:
            tool = types.Tool(google_maps=types.GoogleMaps())
        response = await self.client.aio.models.generate_content(
            model=self.config.gemini_model,
            contents=prompt,
            config=types.GenerateContentConfig(tools=[tool]),
        )
        return _response_text(response)


# Opening fence plus an optional info string ("json", "JSON", "javascript", ...).
FENCE_OPEN_RE = re.compile(r"^```[A-Za-z0-9_+.-]*[ \t]*\n?")


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = FENCE_OPEN_RE.sub("", cleaned, count=1)
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def find_first_json_object(text: str) -> Optional[str]:
    """First complete ``{...}`` in ``text``, honoring strings. None when truncated."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def repair_json_text(text: str) -> str:
    """The one cleanup pass: drop fences, then cut surrounding prose off a bare object."""
    cleaned = strip_code_fences(text)
    if cleaned.startswith(("{", "[")):
        return cleaned
    return find_first_json_object(cleaned) or cleaned


def parse_json_text(text: Optional[str]) -> Any:
    """Parse provider text as JSON, with a single fence-stripping repair attempt."""
    if not text or not text.strip():
        raise GenerationFailure("No response from the generator", raw_text=text)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(repair_json_text(text))
    except json.JSONDecodeError as e:
        raise GenerationFailure(
            f"Generator response is not valid JSON (line {e.lineno}, column {e.colno})",
            raw_text=text,
        ) from e


def validate_itinerary(payload: Any, raw_text: Optional[str] = None) -> Itinerary:
    if not isinstance(payload, dict):
        raise MalformedStop("Generator response is not a JSON object", raw_text=raw_text)
    try:
        return Itinerary.model_validate(payload)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise MalformedStop(
            f"Generated itinerary failed validation ({len(errors)} problem(s))",
            errors=errors,
            raw_text=raw_text,
        ) from e


class StructuredPlanner:
    """Production Planner: one schema-constrained call, parse, validate."""

    def __init__(self, generator: GeneratorPort, config: EngineConfig) -> None:
        self.generator = generator
        self.config = config

    async def plan(
        self,
        prompt: PromptSpec,
        *,
        thinking_budget: Optional[int] = None,
        trace: Optional[CallTrace] = None,
    ) -> Itinerary:
        started = time.monotonic()
        try:
            text = await self.generator.generate_structured(
                prompt.text, prompt.output_schema, thinking_budget=thinking_budget
            )
        except Exception as e:
            record_call(trace, "gemini", "generate_structured", started, ok=False, error=str(e))
            raise GenerationFailure(f"Generator call failed: {e}") from e

        try:
            itinerary = validate_itinerary(parse_json_text(text), raw_text=text)
        except GenerationFailure as e:
            record_call(trace, "gemini", "generate_structured", started, ok=False, error=str(e))
            logging.warning("Rejected generator output: %s\n%s", e, e.excerpt())
            raise
        record_call(trace, "gemini", "generate_structured", started, stops=len(itinerary.stops))
        return itinerary

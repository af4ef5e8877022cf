import os
from typing import Optional


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


class EngineConfig:
    """Settings for the generator, resolver and geocoder.

    Built once at startup and handed to each component's constructor.
    """

    def __init__(
        self,
        *,
        gemini_api_key: Optional[str] = None,
        gemini_model: str = "gemini-2.5-flash",
        temperature: float = 0.7,
        generation_thinking_budget: int = 1024,
        recalc_thinking_budget: int = 0,
        grounding_tool: str = "google_maps",
        http_timeout_sec: float = 10.0,
        nominatim_base: str = "https://nominatim.openstreetmap.org",
        nominatim_enabled: bool = False,
        user_agent: str = "LocalFlow-Planner",
        default_context_hint: str = "New York, NY",
    ) -> None:
        if grounding_tool not in ("google_maps", "google_search"):
            raise ValueError(f"Unsupported grounding tool: {grounding_tool}")
        self.gemini_api_key = gemini_api_key
        self.gemini_model = gemini_model
        self.temperature = temperature
        self.generation_thinking_budget = generation_thinking_budget
        self.recalc_thinking_budget = recalc_thinking_budget
        self.grounding_tool = grounding_tool
        self.http_timeout_sec = http_timeout_sec
        self.nominatim_base = nominatim_base.rstrip("/")
        self.nominatim_enabled = nominatim_enabled
        self.user_agent = user_agent
        self.default_context_hint = default_context_hint

    @classmethod
    def from_env(cls) -> "EngineConfig":
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            temperature=_float_env("GEMINI_TEMPERATURE", 0.7),
            generation_thinking_budget=_int_env("GENERATION_THINKING_BUDGET", 1024),
            recalc_thinking_budget=_int_env("RECALC_THINKING_BUDGET", 0),
            grounding_tool=os.getenv("GROUNDING_TOOL", "google_maps"),
            http_timeout_sec=_float_env("HTTP_TIMEOUT_SEC", 10.0),
            nominatim_base=os.getenv("NOMINATIM_BASE", "https://nominatim.openstreetmap.org"),
            nominatim_enabled=os.getenv("NOMINATIM_ENABLED", "false").lower() in ("1", "true", "yes"),
            user_agent=os.getenv("FLOW_USER_AGENT", "LocalFlow-Planner"),
            default_context_hint=os.getenv("DEFAULT_CONTEXT_HINT", "New York, NY"),
        )

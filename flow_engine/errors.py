from typing import List, Optional, Tuple


class PlannerError(Exception):
    """Base class for planner errors surfaced to callers."""


class GenerationFailure(PlannerError):
    """The generator returned nothing usable.

    ``raw_text`` keeps whatever the provider sent back so the caller can log it.
    """

    def __init__(self, message: str, *, raw_text: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw_text = raw_text

    def excerpt(self, max_chars: int = 500) -> str:
        text = (self.raw_text or "").strip()
        if len(text) <= max_chars:
            return text
        return f"{text[: max_chars // 2]}\n...\n{text[-max_chars // 2 :]}"


class MalformedStop(GenerationFailure):
    """A parsed payload is missing required fields or carries invalid values."""

    def __init__(self, message: str, *, errors: Optional[List[str]] = None, raw_text: Optional[str] = None) -> None:
        super().__init__(message, raw_text=raw_text)
        self.errors = errors or []


class ConstraintViolation(GenerationFailure):
    """A generated plan breaks a timeline or fixed-commitment invariant."""


class ResolutionFailure(PlannerError):
    """A single location lookup failed. Never leaves the resolver."""


class CommitmentConflict(PlannerError):
    def __init__(self, pairs: List[Tuple[str, str]]) -> None:
        self.pairs = pairs
        described = ", ".join(f"{a} / {b}" for a, b in pairs)
        super().__init__(f"Fixed commitments overlap: {described}")


class PlanBusy(PlannerError):
    """Another generation or recalculation is still in flight."""


class NoItinerary(PlannerError):
    pass


class UnknownStop(PlannerError):
    pass


class FixedStopLocked(PlannerError):
    pass

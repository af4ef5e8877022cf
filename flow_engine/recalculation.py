"""
Reason-driven re-planning of an existing itinerary.

"Swap <stop name>" replaces one non-fixed stop in place; any other reason asks
the generator for a full re-timing pass. Either way the result is repaired
against the fixed commitments, enriched, and handed back as a new itinerary.
"""
from typing import List, Optional, Sequence, Union

from pydantic import BaseModel

from .config import EngineConfig
from .constraints import reconcile
from .enrichment import context_hint_for, enrich
from .errors import FixedStopLocked, GenerationFailure, UnknownStop
from .generation import Planner
from .models import FixedCommitment, Itinerary, PlanContext, Stop, UserPreferences, new_id
from .prompts import ReasonKind, RecalculationReason, build_recalculation_prompt
from .resolver import LocationResolver
from .tracing import CallTrace


class RecalculationOutcome(BaseModel):
    itinerary: Itinerary
    reason: RecalculationReason
    dropped_commitments: List[FixedCommitment] = []

    @property
    def needs_confirmation(self) -> bool:
        return bool(self.dropped_commitments)


def commitments_in_plan(itinerary: Itinerary, commitments: Sequence[FixedCommitment]) -> List[FixedCommitment]:
    """Commitments the current plan honors. Ones added after generation need a fresh plan."""
    windows = {(s.start_time, s.end_time) for s in itinerary.fixed_stops}
    return [c for c in commitments if (c.start_time, c.end_time) in windows]


def _pick_replacement(original: Itinerary, target: Stop, candidate: Itinerary) -> Optional[Stop]:
    fresh = [
        s
        for s in candidate.stops
        if not s.is_fixed and original.find_stop(s.name) is None
    ]
    if not fresh:
        return None

    def distance(s: Stop) -> int:
        if s.start_minutes < target.end_minutes and target.start_minutes < s.end_minutes:
            return 0
        return abs(s.start_minutes - target.start_minutes)

    return min(fresh, key=distance)


def apply_swap(original: Itinerary, target: Stop, candidate: Itinerary) -> Itinerary:
    """Keep every original stop and put the generator's new stop in the target's slot."""
    chosen = _pick_replacement(original, target, candidate)
    if chosen is None:
        raise GenerationFailure(f"Generator did not propose a replacement for '{target.name}'")

    taken_ids = {s.id for s in original.stops if s.id != target.id}
    replacement = chosen.model_copy(
        update={
            "id": chosen.id if chosen.id not in taken_ids else new_id(),
            "start_time": target.start_time,
            "end_time": target.end_time,
            "duration_minutes": target.end_minutes - target.start_minutes,
            "is_fixed": False,
        }
    )

    stops: List[Stop] = []
    for i, stop in enumerate(original.stops):
        if stop.id == target.id:
            stops.append(replacement)
            continue
        nxt = original.stops[i + 1] if i + 1 < len(original.stops) else None
        if nxt is not None and nxt.id == target.id:
            # The hop into the new stop changes; take the generator's estimate if it gave one.
            updated = candidate.find_stop(stop.name)
            if updated is not None and updated.travel_to_next is not None:
                stop = stop.model_copy(update={"travel_to_next": updated.travel_to_next})
        stops.append(stop)

    return original.model_copy(
        update={
            "id": new_id(),
            "title": candidate.title or original.title,
            "summary": candidate.summary or original.summary,
            "total_authenticity_score": candidate.total_authenticity_score,
            "total_instagram_score": candidate.total_instagram_score,
            "stops": stops,
        }
    )


class RecalculationEngine:
    def __init__(self, planner: Planner, resolver: LocationResolver, config: EngineConfig) -> None:
        self.planner = planner
        self.resolver = resolver
        self.config = config

    async def recalculate(
        self,
        itinerary: Itinerary,
        reason: Union[str, RecalculationReason],
        context: PlanContext,
        preferences: UserPreferences,
        trace: Optional[CallTrace] = None,
    ) -> RecalculationOutcome:
        parsed = RecalculationReason.parse(reason) if isinstance(reason, str) else reason

        target: Optional[Stop] = None
        if parsed.kind is ReasonKind.SWAP:
            target = itinerary.find_stop(parsed.target or "")
            if target is None:
                raise UnknownStop(f"No stop named '{parsed.target}' in the current plan")
            if target.is_fixed:
                raise FixedStopLocked(f"'{target.name}' is a fixed commitment and cannot be swapped")

        prompt = build_recalculation_prompt(itinerary, parsed, context, preferences)
        candidate = await self.planner.plan(
            prompt, thinking_budget=self.config.recalc_thinking_budget, trace=trace
        )

        commitments = commitments_in_plan(itinerary, preferences.fixed_commitments)
        if target is not None:
            result = reconcile(
                apply_swap(itinerary, target, candidate),
                commitments,
                trip_start=preferences.trip_start_time,
                trip_end=preferences.trip_end_time,
            )
        else:
            result = reconcile(
                candidate,
                commitments,
                trip_start=preferences.trip_start_time,
                trip_end=preferences.trip_end_time,
                allow_dropped=True,
            )

        fallback = preferences.location or self.config.default_context_hint
        hint = context_hint_for(result.itinerary, fallback)
        enriched = await enrich(result.itinerary, hint, self.resolver, trace=trace)
        return RecalculationOutcome(
            itinerary=enriched,
            reason=parsed,
            dropped_commitments=result.dropped_commitments,
        )

"""
Prompt templates and builders for generation and recalculation.
"""
import json
import re
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel

from .models import Itinerary, PlanContext, Stop, UserPreferences
from .schema import itinerary_schema


# Above this vibe score, low-authenticity candidates are discarded.
HIGH_AUTHENTICITY_VIBE = 70
MIN_AUTHENTICITY_SCORE = 7

SWAP_RE = re.compile(r"^\s*swap\s+(?P<target>.+?)\s*$", re.IGNORECASE)


class PromptSpec(BaseModel):
    text: str
    output_schema: Dict[str, Any]


class ReasonKind(str, Enum):
    SWAP = "swap"
    RETIME = "retime"


class RecalculationReason(BaseModel):
    raw: str
    kind: ReasonKind
    target: Optional[str] = None

    @classmethod
    def parse(cls, reason: str) -> "RecalculationReason":
        text = (reason or "").strip()
        if not text:
            raise ValueError("A recalculation reason is required")
        m = SWAP_RE.match(text)
        if m:
            target = m.group("target").strip().strip("\"'")
            if target:
                return cls(raw=text, kind=ReasonKind.SWAP, target=target)
        return cls(raw=text, kind=ReasonKind.RETIME)


GENERATION_PROMPT = """Create a single-day travel itinerary for: {location}.
Current Time: {current_time}. {position}
The whole plan MUST stay between {trip_start} and {trip_end}.

USER PREFERENCES:
- Vibe Score: {vibe_score} (0 = Pure Aesthetic/Tourist, 100 = Deep Local/Authentic).
- Vibe Description: "{vibe_description}". Use this to tailor the mood and style of places.
- Dietary Restrictions: {dietary}.
- Budget Level: {budget}.

MANDATORY COMMITMENTS (Fixed Stops):
The user has the following fixed plans with exact START and END times.
Include every one of them as a stop with isFixed=true, type COMMITMENT and the exact same startTime and endTime.
Do not double book: no other stop may overlap a commitment window.
{commitments}

ALGORITHM RULES:
1. TIMING:
   - Places famous for night views or night markets go in the evening; scenic viewpoints go at golden hour.
   - Fixed commitments keep their startTime and endTime exactly.
   - Fill the gaps between commitments with vibe-appropriate activities.
   - No stop may start before {trip_start} or end after {trip_end}.
2. VIBE MATCHING:
{vibe_rule}
   - Use the Vibe Description to filter recommendations (e.g. "Neon" -> bright signage, "Quiet" -> parks, libraries).
3. LOGISTICS:
   - Every stop except the last MUST have a realistic travelToNext (mode and duration).
   - Leave enough travel time to reach the next fixed commitment on time.
4. ANNOTATIONS (every stop):
   - bestPhotoSpot: a specific photo tip (e.g. "From the bridge facing west").
   - localTip: one insider tip.
   - whyThisSpot: one sentence tying the stop to "{vibe_description}".
   - crowdLevel at the scheduled time; dietaryNotes for food stops.
5. Output ONLY the JSON object matching the provided schema. No markdown, no prose.
"""


RETIME_PROMPT = """RECALCULATE ITINERARY.
Reason: {reason}.
Current Time: {current_time}. {position}
Trip window: {trip_start} to {trip_end}.
Current Plan (in order): {stop_names}

LOGIC:
1. Respect fixed stops (marked FIXED with their window). Keep them with isFixed=true and the exact same startTime and endTime.
   Do NOT remove a fixed stop unless it is impossible to reach; if so, say so in the title.
2. Adjust start times and travel durations of the other stops from the current time onward.
3. If running late, drop non-fixed stops that no longer fit; never drop fixed stops to make room.
4. No two stops may overlap. Every stop except the last needs travelToNext.
5. Keep bestPhotoSpot, localTip and whyThisSpot for every stop.

Return the full updated JSON structure matching the provided schema. No markdown, no prose.
"""


SWAP_PROMPT = """SWAP ONE STOP.
Replace exactly one stop: "{target}" ({start_time}-{end_time}).
Suggest a different place that fits the same time slot and the vibe "{vibe_description}" (vibe score {vibe_score}).
Current Time: {current_time}. Dietary Restrictions: {dietary}.
Current Plan (in order): {stop_names}

RULES:
1. The replacement MUST use startTime {start_time} and endTime {end_time} and a different name.
2. Keep every other stop exactly as it is; fixed stops (marked FIXED) are never changed.
3. Update travelToNext for the stop before and the replacement itself.
4. Provide bestPhotoSpot, localTip and whyThisSpot for the replacement.

Return the full updated JSON structure matching the provided schema. No markdown, no prose.
"""


def _commitments_block(preferences: UserPreferences) -> str:
    if not preferences.fixed_commitments:
        return "None."
    rows = []
    for c in preferences.fixed_commitments:
        rows.append(
            {
                "id": c.id,
                "startTime": c.start_time,
                "endTime": c.end_time,
                "location": c.location,
                "description": c.description,
            }
        )
    return json.dumps(rows, ensure_ascii=False)


def _vibe_rule(vibe_score: int) -> str:
    if vibe_score > HIGH_AUTHENTICITY_VIBE:
        return (
            f"   - Vibe Score is above {HIGH_AUTHENTICITY_VIBE}: discard any location with authenticityScore "
            f"< {MIN_AUTHENTICITY_SCORE}, unless it is a fixed commitment."
        )
    return "   - Balance well-known sights with local places according to the Vibe Score."


def _stop_label(stop: Stop) -> str:
    if stop.is_fixed:
        return f"{stop.name} [FIXED {stop.start_time}-{stop.end_time}]"
    return stop.name


def _stop_names(itinerary: Itinerary) -> str:
    return json.dumps([_stop_label(s) for s in itinerary.stops], ensure_ascii=False)


def _dietary(preferences: UserPreferences) -> str:
    return ", ".join(preferences.dietary) or "None"


def _position(context: PlanContext, preferences: UserPreferences) -> str:
    if context.lat is None or context.lng is None:
        return f"Current area: {preferences.location}."
    return f"Current position: lat {context.lat:.4f}, lng {context.lng:.4f}."


def build_generation_prompt(preferences: UserPreferences, context: PlanContext) -> PromptSpec:
    text = GENERATION_PROMPT.format(
        location=preferences.location,
        current_time=context.current_time,
        position=_position(context, preferences),
        trip_start=preferences.trip_start_time,
        trip_end=preferences.trip_end_time,
        vibe_score=preferences.vibe_score,
        vibe_description=preferences.vibe_description or "no particular style",
        dietary=_dietary(preferences),
        budget=preferences.budget.value,
        commitments=_commitments_block(preferences),
        vibe_rule=_vibe_rule(preferences.vibe_score),
    )
    return PromptSpec(text=text, output_schema=itinerary_schema())


def build_recalculation_prompt(
    itinerary: Itinerary,
    reason: RecalculationReason,
    context: PlanContext,
    preferences: UserPreferences,
) -> PromptSpec:
    if reason.kind is ReasonKind.SWAP:
        target = itinerary.find_stop(reason.target or "")
        if target is None:
            raise ValueError(f"No stop named '{reason.target}' in the current plan")
        text = SWAP_PROMPT.format(
            target=target.name,
            start_time=target.start_time,
            end_time=target.end_time,
            vibe_description=preferences.vibe_description or "no particular style",
            vibe_score=preferences.vibe_score,
            current_time=context.current_time,
            dietary=_dietary(preferences),
            stop_names=_stop_names(itinerary),
        )
    else:
        text = RETIME_PROMPT.format(
            reason=reason.raw,
            current_time=context.current_time,
            position=_position(context, preferences),
            trip_start=preferences.trip_start_time,
            trip_end=preferences.trip_end_time,
            stop_names=_stop_names(itinerary),
        )
    return PromptSpec(text=text, output_schema=itinerary_schema())


RESOLVE_PROMPT = """Find the specific location: "{query}" near "{hint}".
Return ONLY a JSON object with the keys "name" (official name), "address" (formatted address),
"lat" and "lng" (decimal degrees). Use 0 for lat and lng if you cannot find coordinates."""


def build_resolve_prompt(query: str, hint: Optional[str]) -> str:
    return RESOLVE_PROMPT.format(query=query, hint=hint or "")

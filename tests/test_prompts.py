import json

import pytest

from flow_engine.models import FixedCommitment, Itinerary, PlanContext, UserPreferences
from flow_engine.prompts import (
    ReasonKind,
    RecalculationReason,
    build_generation_prompt,
    build_recalculation_prompt,
    build_resolve_prompt,
)
from flow_engine.schema import ITINERARY_REQUIRED, STOP_REQUIRED

from conftest import make_plan, make_stop


def _prefs(**kw):
    base = dict(
        vibe_score=85,
        vibe_description="Neon and noodles",
        dietary=["vegetarian"],
        location="Tokyo, Japan",
        fixed_commitments=[
            FixedCommitment(id="c1", start_time="14:00", end_time="15:00", location="teamLab Planets"),
        ],
    )
    base.update(kw)
    return UserPreferences(**base)


def test_generation_prompt_carries_preferences_and_commitments():
    spec = build_generation_prompt(_prefs(), PlanContext(current_time="09:30"))
    assert "Tokyo, Japan" in spec.text
    assert "Neon and noodles" in spec.text
    assert "vegetarian" in spec.text
    assert "09:30" in spec.text
    assert '"startTime": "14:00"' in spec.text
    assert "teamLab Planets" in spec.text
    assert "between 09:00 and 22:00" in spec.text


def test_position_defaults_to_the_trip_area():
    spec = build_generation_prompt(_prefs(), PlanContext())
    assert "Current area: Tokyo, Japan." in spec.text
    assert "40.7580" not in spec.text and "-73.9855" not in spec.text


def test_reported_position_is_used():
    spec = build_generation_prompt(_prefs(), PlanContext(current_time="11:00", lat=35.6595, lng=139.7005))
    assert "lat 35.6595, lng 139.7005" in spec.text
    assert "Current area" not in spec.text


def test_high_vibe_adds_authenticity_filter():
    spec = build_generation_prompt(_prefs(vibe_score=71), PlanContext())
    assert "authenticityScore < 7" in spec.text


def test_low_vibe_has_no_authenticity_filter():
    spec = build_generation_prompt(_prefs(vibe_score=70), PlanContext())
    assert "authenticityScore < 7" not in spec.text


def test_no_commitments():
    spec = build_generation_prompt(_prefs(fixed_commitments=[]), PlanContext())
    assert "None." in spec.text


def test_schema_lists_required_fields():
    spec = build_generation_prompt(_prefs(), PlanContext())
    schema = spec.output_schema
    assert schema["required"] == ITINERARY_REQUIRED
    assert schema["properties"]["stops"]["items"]["required"] == STOP_REQUIRED
    json.dumps(schema)


@pytest.mark.parametrize(
    "raw,kind,target",
    [
        ("Swap Joe's Pizza", ReasonKind.SWAP, "Joe's Pizza"),
        ("swap   'Katz Deli' ", ReasonKind.SWAP, "Katz Deli"),
        ("Running 30 mins late", ReasonKind.RETIME, None),
        ("Diverged from path", ReasonKind.RETIME, None),
        ("swapmeet detour", ReasonKind.RETIME, None),
    ],
)
def test_reason_parsing(raw, kind, target):
    reason = RecalculationReason.parse(raw)
    assert reason.kind is kind
    assert reason.target == target


def test_empty_reason_is_rejected():
    with pytest.raises(ValueError):
        RecalculationReason.parse("   ")


def _itinerary():
    return Itinerary.model_validate(
        make_plan(
            [
                make_stop("Tsukiji Outer Market", "09:00", "10:30"),
                make_stop("teamLab Planets", "14:00", "15:00", fixed=True),
                make_stop("Omoide Yokocho", "19:00", "20:30"),
            ]
        )
    )


def test_retime_prompt_marks_fixed_stops():
    spec = build_recalculation_prompt(
        _itinerary(), RecalculationReason.parse("Running 30 mins late"), PlanContext(current_time="09:40"), _prefs()
    )
    assert "Running 30 mins late" in spec.text
    assert "teamLab Planets [FIXED 14:00-15:00]" in spec.text
    assert "09:40" in spec.text


def test_swap_prompt_names_the_slot():
    spec = build_recalculation_prompt(
        _itinerary(), RecalculationReason.parse("swap omoide yokocho"), PlanContext(), _prefs()
    )
    assert '"Omoide Yokocho" (19:00-20:30)' in spec.text
    assert "startTime 19:00 and endTime 20:30" in spec.text


def test_swap_prompt_unknown_stop():
    with pytest.raises(ValueError):
        build_recalculation_prompt(_itinerary(), RecalculationReason.parse("swap Nowhere"), PlanContext(), _prefs())


def test_resolve_prompt():
    text = build_resolve_prompt("Eiffel Tower", "Paris")
    assert '"Eiffel Tower" near "Paris"' in text

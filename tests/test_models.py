import pytest
from pydantic import ValidationError

from flow_engine.clock import from_minutes, normalize_hhmm, overlaps, to_minutes
from flow_engine.models import ActivityType, FixedCommitment, Itinerary, Stop, UserPreferences

from conftest import make_plan, make_stop


def test_normalize_hhmm():
    assert normalize_hhmm("9:05") == "09:05"
    assert normalize_hhmm(" 23:59 ") == "23:59"
    for bad in ("24:00", "9", "09:60", "", "noon"):
        with pytest.raises(ValueError):
            normalize_hhmm(bad)


def test_minutes_round_trip_and_clamp():
    assert to_minutes("13:45") == 825
    assert from_minutes(825) == "13:45"
    assert from_minutes(-5) == "00:00"
    assert from_minutes(5000) == "23:59"


def test_overlaps_is_half_open():
    assert overlaps("10:00", "11:00", "10:30", "12:00")
    assert not overlaps("10:00", "11:00", "11:00", "12:00")


def test_stop_reads_camel_case_and_derives_fields():
    stop = Stop.model_validate(make_stop("Joe's Pizza", "12:00", "12:45"))
    assert stop.duration_minutes == 45
    assert stop.type is ActivityType.ACTIVITY
    assert not stop.location.is_resolved


def test_duration_follows_the_window():
    stop = Stop.model_validate(make_stop("Joe's Pizza", "12:00", "12:45", durationMinutes=90))
    assert stop.duration_minutes == 45
    point = Stop.model_validate(make_stop("Pick up Sam", "10:00", "10:00", fixed=True, durationMinutes=15))
    assert point.duration_minutes == 0


def test_fixed_stop_defaults_to_commitment_type():
    payload = make_stop("Dentist", "15:00", "16:00", fixed=True)
    payload.pop("type")
    assert Stop.model_validate(payload).type is ActivityType.COMMITMENT


@pytest.mark.parametrize("missing", ["id", "name", "startTime", "authenticityScore", "tags", "estimatedCost"])
def test_stop_required_fields(missing):
    payload = make_stop("Joe's Pizza", "12:00", "12:45")
    payload.pop(missing)
    with pytest.raises(ValidationError):
        Stop.model_validate(payload)


def test_stop_scores_are_bounded():
    with pytest.raises(ValidationError):
        Stop.model_validate(make_stop("Joe's Pizza", "12:00", "12:45", authenticityScore=11))


def test_itinerary_sorts_stops_and_finds_by_name():
    plan = Itinerary.model_validate(
        make_plan([make_stop("B", "13:00", "14:00"), make_stop("A", "10:00", "11:00")])
    )
    assert [s.name for s in plan.stops] == ["A", "B"]
    assert plan.find_stop(" b ").name == "B"
    assert plan.find_stop("C") is None
    wire = plan.to_wire()
    assert wire["stops"][0]["startTime"] == "10:00"
    assert "totalAuthenticityScore" in wire


def test_preferences_sort_commitments_and_dedupe_dietary():
    prefs = UserPreferences(
        dietary=["vegan", " vegan", "halal", ""],
        fixed_commitments=[
            FixedCommitment(start_time="19:00", end_time="20:00", location="Dinner"),
            FixedCommitment(start_time="10:00", end_time="11:00", location="Coffee"),
        ],
    )
    assert prefs.dietary == ["vegan", "halal"]
    assert [c.start_time for c in prefs.fixed_commitments] == ["10:00", "19:00"]


def test_preferences_reject_inverted_trip_window():
    with pytest.raises(ValidationError):
        UserPreferences(trip_start_time="22:00", trip_end_time="09:00")


def test_preferences_vibe_bounds():
    with pytest.raises(ValidationError):
        UserPreferences(vibe_score=101)

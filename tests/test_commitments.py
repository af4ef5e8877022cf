import pytest

from flow_engine.commitments import CommitmentStore
from flow_engine.errors import CommitmentConflict
from flow_engine.models import ResolvedLocation


def _starts(store):
    return [c.start_time for c in store]


def test_order_is_kept_across_adds_and_removes():
    store = CommitmentStore()
    late = store.add("19:00", "20:00", "Dinner at Lucali")
    store.add("10:00", "11:00", "Coffee at Sey")
    mid = store.add("14:00", "15:00", "MoMA tickets")
    assert _starts(store) == ["10:00", "14:00", "19:00"]

    assert store.remove(mid.id)
    store.add("08:30", "09:00", "Bagel")
    assert _starts(store) == ["08:30", "10:00", "19:00"]

    assert store.remove(late.id)
    store.add("9:15", None, "Phone call")
    assert _starts(store) == sorted(_starts(store))
    assert "09:15" in _starts(store)


def test_missing_end_time_defaults_to_start():
    store = CommitmentStore()
    c = store.add("12:30", "", "Pickup at hotel")
    assert c.end_time == "12:30"


def test_blank_description_gets_default():
    store = CommitmentStore()
    c = store.add("12:00", "13:00", "Katz's Delicatessen", description="  ")
    assert c.description == "User Commitment"


def test_location_is_required():
    store = CommitmentStore()
    with pytest.raises(ValueError):
        store.add("12:00", "13:00", "   ")
    assert len(store) == 0


def test_end_before_start_is_rejected():
    store = CommitmentStore()
    with pytest.raises(ValueError):
        store.add("15:00", "14:00", "Museum")


def test_resolved_location_is_stored():
    store = CommitmentStore()
    hit = ResolvedLocation(name="MoMA", address="11 W 53rd St, New York, NY", lat=40.7614, lng=-73.9776)
    c = store.add("14:00", "15:00", "moma", resolved=hit)
    assert c.location == "11 W 53rd St, New York, NY"
    assert c.has_coordinates


def test_sentinel_resolution_keeps_the_typed_location():
    store = CommitmentStore()
    c = store.add("14:00", "15:00", "somewhere odd", resolved=ResolvedLocation.sentinel("somewhere odd"))
    assert c.location == "somewhere odd"
    assert not c.has_coordinates


def test_remove_unknown_id():
    store = CommitmentStore()
    store.add("10:00", "11:00", "Coffee")
    assert not store.remove("nope")
    assert len(store) == 1


def test_overlaps_are_allowed_on_add_but_reported():
    store = CommitmentStore()
    a = store.add("10:00", "11:00", "Coffee")
    b = store.add("10:30", "11:30", "Gallery")
    store.add("11:30", "12:00", "Lunch")
    assert store.overlapping_pairs() == [(a.id, b.id)]
    with pytest.raises(CommitmentConflict) as exc:
        store.ensure_consistent()
    assert exc.value.pairs == [(a.id, b.id)]


def test_back_to_back_commitments_do_not_conflict():
    store = CommitmentStore()
    store.add("10:00", "11:00", "Coffee")
    store.add("11:00", "12:00", "Gallery")
    store.ensure_consistent()


def test_same_instant_commitments_conflict():
    store = CommitmentStore()
    store.add("10:00", None, "Call A")
    store.add("10:00", None, "Call B")
    assert len(store.overlapping_pairs()) == 1


def test_clear():
    store = CommitmentStore()
    store.add("10:00", "11:00", "Coffee")
    store.clear()
    assert store.items() == []

"""
Repair and validation of generated plans against the user's fixed commitments.

The generator is untrusted: fixed stops are matched back to their commitments
and snapped to the exact windows, stray "fixed" stops are demoted, then the
timeline is checked for overlaps and trip bounds.
"""
from typing import Dict, List, Sequence

from pydantic import BaseModel

from .clock import to_minutes
from .errors import ConstraintViolation
from .models import ActivityType, FixedCommitment, Itinerary, Location, Stop, new_id


class ReconcileResult(BaseModel):
    itinerary: Itinerary
    dropped_commitments: List[FixedCommitment] = []


def _text_matches(stop: Stop, commitment: FixedCommitment) -> bool:
    haystack = f"{stop.name} {stop.description} {stop.location.address}".casefold()
    for needle in (commitment.location, commitment.description):
        needle = (needle or "").strip().casefold()
        if needle and needle != "user commitment" and (needle in haystack or stop.name.casefold() in needle):
            return True
    return False


def _match_commitments(stops: Sequence[Stop], commitments: Sequence[FixedCommitment]) -> Dict[str, int]:
    """Map commitment id -> index of the stop that represents it."""
    matched: Dict[str, int] = {}
    taken = set()

    def claim(commitment: FixedCommitment, predicate) -> bool:
        # Prefer stops the generator flagged as fixed.
        for want_fixed in (True, False):
            for i, stop in enumerate(stops):
                if i in taken or stop.is_fixed is not want_fixed:
                    continue
                if predicate(stop):
                    matched[commitment.id] = i
                    taken.add(i)
                    return True
        return False

    pending = []
    for c in commitments:
        if not claim(c, lambda s, c=c: s.start_time == c.start_time and s.end_time == c.end_time):
            pending.append(c)
    for c in pending:
        claim(c, lambda s, c=c: s.is_fixed and _text_matches(s, c))
    return matched


def _snap(stop: Stop, commitment: FixedCommitment) -> Stop:
    location = stop.location
    if commitment.has_coordinates and not location.is_resolved:
        location = Location(lat=commitment.lat, lng=commitment.lng, address=location.address or commitment.location)
    elif not location.address:
        location = Location(lat=location.lat, lng=location.lng, address=commitment.location)
    return stop.model_copy(
        update={
            "start_time": commitment.start_time,
            "end_time": commitment.end_time,
            "duration_minutes": to_minutes(commitment.end_time) - to_minutes(commitment.start_time),
            "is_fixed": True,
            "type": ActivityType.COMMITMENT,
            "location": location,
        }
    )


def _demote(stop: Stop) -> Stop:
    kind = ActivityType.ACTIVITY if stop.type is ActivityType.COMMITMENT else stop.type
    return stop.model_copy(update={"is_fixed": False, "type": kind})


def _unique_ids(stops: List[Stop]) -> List[Stop]:
    seen = set()
    out = []
    for stop in stops:
        if stop.id in seen:
            stop = stop.model_copy(update={"id": new_id()})
        seen.add(stop.id)
        out.append(stop)
    return out


def find_overlaps(stops: Sequence[Stop]) -> List[str]:
    problems = []
    ordered = sorted(stops, key=lambda s: (s.start_minutes, s.end_minutes))
    for prev, cur in zip(ordered, ordered[1:]):
        if cur.start_minutes < prev.end_minutes:
            problems.append(f"'{prev.name}' ({prev.start_time}-{prev.end_time}) overlaps '{cur.name}' ({cur.start_time}-{cur.end_time})")
    # A point commitment [t, t) is empty as an interval but still books the instant t.
    for point in (s for s in stops if s.is_fixed and s.start_minutes == s.end_minutes):
        for other in stops:
            if other is point:
                continue
            if other.start_minutes == point.start_minutes or other.start_minutes < point.start_minutes < other.end_minutes:
                problems.append(f"'{other.name}' ({other.start_time}-{other.end_time}) collides with '{point.name}' at {point.start_time}")
    return problems


def out_of_bounds(stops: Sequence[Stop], trip_start: str, trip_end: str) -> List[str]:
    lo, hi = to_minutes(trip_start), to_minutes(trip_end)
    return [
        f"'{s.name}' ({s.start_time}-{s.end_time}) is outside {trip_start}-{trip_end}"
        for s in stops
        if not s.is_fixed and (s.start_minutes < lo or s.end_minutes > hi)
    ]


def reconcile(
    itinerary: Itinerary,
    commitments: Sequence[FixedCommitment],
    *,
    trip_start: str,
    trip_end: str,
    allow_dropped: bool = False,
) -> ReconcileResult:
    """Repair ``itinerary`` against ``commitments`` and validate the timeline.

    ``allow_dropped`` lets a recalculation omit commitments (the caller must
    surface them).
    """
    stops = list(itinerary.stops)
    matched = _match_commitments(stops, commitments)
    by_id = {c.id: c for c in commitments}
    by_index = {i: by_id[cid] for cid, i in matched.items()}

    repaired: List[Stop] = []
    for i, stop in enumerate(stops):
        if i in by_index:
            repaired.append(_snap(stop, by_index[i]))
        elif stop.is_fixed:
            repaired.append(_demote(stop))
        else:
            repaired.append(stop)
    repaired = _unique_ids(sorted(repaired, key=lambda s: (s.start_time, s.end_time)))

    dropped = [c for c in commitments if c.id not in matched]
    if dropped and not allow_dropped:
        names = ", ".join(f"{c.location} ({c.start_time}-{c.end_time})" for c in dropped)
        raise ConstraintViolation(f"Plan is missing fixed commitments: {names}")
    if not repaired:
        raise ConstraintViolation("Plan contains no stops")

    problems = find_overlaps(repaired) + out_of_bounds(repaired, trip_start, trip_end)
    if problems:
        raise ConstraintViolation("Plan breaks timeline rules: " + "; ".join(problems))

    return ReconcileResult(
        itinerary=itinerary.model_copy(update={"stops": repaired}),
        dropped_commitments=dropped,
    )

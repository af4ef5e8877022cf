import asyncio

import pytest

from flow_engine.errors import CommitmentConflict, GenerationFailure, NoItinerary, PlanBusy
from flow_engine.generation import StructuredPlanner
from flow_engine.models import PlanContext, UserPreferences
from flow_engine.resolver import LocationResolver
from flow_engine.state import PlannerSession, PlanStatus, SessionStore

from conftest import FakeGenerator, make_plan, make_stop


def _day():
    return make_plan(
        [
            make_stop("Bagels", "09:00", "09:45"),
            make_stop("Blue Bottle Coffee", "10:00", "11:00", fixed=True),
            make_stop("Joe's Pizza", "12:00", "13:00"),
            make_stop("MoMA", "14:00", "15:00", fixed=True),
            make_stop("Central Park", "15:30", "18:30"),
            make_stop("Lucali", "19:00", "20:00", fixed=True),
        ]
    )


def _session(fake, config, **prefs):
    session = PlannerSession(
        UserPreferences(**prefs), StructuredPlanner(fake, config), LocationResolver(fake), config
    )
    session.commitments.add("10:00", "11:00", "Blue Bottle Coffee")
    session.commitments.add("14:00", "15:00", "MoMA")
    session.commitments.add("19:00", "20:00", "Lucali")
    return session


def test_generate_installs_an_enriched_itinerary(config):
    fake = FakeGenerator(structured=[_day()])
    session = _session(fake, config, vibe_score=90, location="Brooklyn, NY")
    itinerary = asyncio.run(session.generate())
    assert session.state.itinerary is itinerary
    assert session.state.status is PlanStatus.STABLE
    assert len(itinerary.fixed_stops) == 3
    assert all(s.location.address for s in itinerary.stops)
    prompt = fake.structured_calls[0]["prompt"]
    assert "Brooklyn, NY" in prompt and "Lucali" in prompt
    assert fake.structured_calls[0]["thinking_budget"] == config.generation_thinking_budget
    services = [e["service"] for e in session.last_trace.entries]
    assert services[0] == "gemini" and services.count("gemini") == 1 + len(itinerary.stops)


def test_empty_response_keeps_the_same_itinerary_object(config):
    fake = FakeGenerator(structured=[_day(), ""])
    session = _session(fake, config)
    first = asyncio.run(session.generate())
    with pytest.raises(GenerationFailure):
        asyncio.run(session.generate())
    assert session.state.itinerary is first
    assert session.state.status is PlanStatus.STABLE_UNCHANGED
    assert session.state.last_error


def test_failed_recalculation_keeps_the_same_itinerary_object(config):
    fake = FakeGenerator(structured=[_day(), "not json at all"])
    session = _session(fake, config)
    first = asyncio.run(session.generate())
    with pytest.raises(GenerationFailure):
        asyncio.run(session.recalculate("Running 30 mins late", PlanContext(current_time="11:30")))
    assert session.state.itinerary is first
    assert session.state.status is PlanStatus.STABLE_UNCHANGED


def test_first_failure_leaves_the_session_empty(config):
    fake = FakeGenerator(structured=[None])
    session = _session(fake, config)
    with pytest.raises(GenerationFailure):
        asyncio.run(session.generate())
    assert session.state.itinerary is None
    assert session.state.status is PlanStatus.EMPTY


def test_overlapping_commitments_block_generation(config):
    fake = FakeGenerator(structured=[_day()])
    session = _session(fake, config)
    session.commitments.add("10:30", "11:30", "Gallery")
    with pytest.raises(CommitmentConflict):
        asyncio.run(session.generate())
    assert fake.structured_calls == []


def test_recalculate_needs_an_itinerary(config):
    session = _session(FakeGenerator(), config)
    with pytest.raises(NoItinerary):
        asyncio.run(session.recalculate("Running 30 mins late"))


def test_dropped_fixed_stop_waits_for_confirmation(config):
    dropped = make_plan(
        [
            make_stop("Blue Bottle Coffee", "10:00", "11:00", fixed=True),
            make_stop("MoMA", "14:00", "15:00", fixed=True),
            make_stop("Smorgasburg", "16:00", "18:00"),
        ],
        title="Lucali is impossible to reach",
    )
    fake = FakeGenerator(structured=[_day(), dropped])
    session = _session(fake, config)
    first = asyncio.run(session.generate())

    state = asyncio.run(session.recalculate("Diverged from path", PlanContext(current_time="13:00")))
    assert state.status is PlanStatus.AWAITING_CONFIRMATION
    assert session.state.itinerary is first
    assert [c.location for c in state.pending.dropped_commitments] == ["Lucali"]
    wire = session.to_wire()
    assert wire["pending"]["droppedCommitments"][0]["location"] == "Lucali"

    with pytest.raises(PlanBusy):
        asyncio.run(session.recalculate("Running 30 mins late"))

    installed = session.confirm_pending()
    assert session.state.itinerary is installed
    assert installed.find_stop("Lucali") is None
    assert session.state.status is PlanStatus.STABLE


def test_generate_is_refused_while_a_plan_is_pending(config):
    dropped = make_plan([make_stop("Blue Bottle Coffee", "10:00", "11:00", fixed=True)])
    fake = FakeGenerator(structured=[_day(), dropped, _day()])
    session = _session(fake, config)
    first = asyncio.run(session.generate())
    asyncio.run(session.recalculate("Diverged from path"))
    with pytest.raises(PlanBusy):
        asyncio.run(session.generate())
    assert len(fake.structured_calls) == 2
    assert session.state.itinerary is first
    assert session.state.status is PlanStatus.AWAITING_CONFIRMATION

    session.discard_pending()
    assert asyncio.run(session.generate()) is not first


def test_tokyo_session_prompt_has_no_new_york_position(config):
    fake = FakeGenerator(structured=[None])
    session = _session(fake, config, location="Tokyo, Japan")
    with pytest.raises(GenerationFailure):
        asyncio.run(session.generate())
    prompt = fake.structured_calls[0]["prompt"]
    assert "Tokyo, Japan" in prompt
    assert "40.758" not in prompt and "-73.98" not in prompt


def test_discard_pending_keeps_current_plan(config):
    dropped = make_plan([make_stop("Blue Bottle Coffee", "10:00", "11:00", fixed=True)])
    fake = FakeGenerator(structured=[_day(), dropped])
    session = _session(fake, config)
    first = asyncio.run(session.generate())
    asyncio.run(session.recalculate("Diverged from path"))
    assert session.discard_pending() is first
    assert session.state.pending is None
    assert session.state.status is PlanStatus.STABLE
    with pytest.raises(NoItinerary):
        session.discard_pending()


def test_second_request_while_busy(config):
    release = asyncio.Event()

    class SlowGenerator(FakeGenerator):
        async def generate_structured(self, prompt, schema, *, thinking_budget=None):
            await release.wait()
            return await super().generate_structured(prompt, schema, thinking_budget=thinking_budget)

    fake = SlowGenerator(structured=[_day()])
    session = _session(fake, config)

    async def run():
        first = asyncio.create_task(session.generate())
        await asyncio.sleep(0)
        with pytest.raises(PlanBusy):
            await session.generate()
        with pytest.raises(PlanBusy):
            session.reset()
        release.set()
        return await first

    itinerary = asyncio.run(run())
    assert session.state.itinerary is itinerary
    assert len(fake.structured_calls) == 1


def test_reset_clears_plan_but_keeps_commitments(config):
    fake = FakeGenerator(structured=[_day()])
    session = _session(fake, config)
    asyncio.run(session.generate())
    session.reset()
    assert session.state.itinerary is None
    assert session.state.status is PlanStatus.EMPTY
    assert len(session.commitments) == 3


def test_update_preferences_keeps_commitments(config):
    session = _session(FakeGenerator(), config)
    prefs = session.update_preferences(UserPreferences(vibe_score=10, location="Queens, NY"))
    assert prefs.location == "Queens, NY"
    assert len(prefs.fixed_commitments) == 3


def test_add_commitment_with_resolution(config):
    fake = FakeGenerator()
    session = _session(fake, config)
    c = asyncio.run(session.add_commitment("16:00", "17:00", "The Met", resolve=True))
    assert c.has_coordinates
    assert c.location == "The Met, New York, NY"
    assert session.last_trace.entries[0]["fn"] == "resolve_location"
    assert [x.start_time for x in session.commitments] == ["10:00", "14:00", "16:00", "19:00"]


def test_session_store(config):
    fake = FakeGenerator()
    store = SessionStore(StructuredPlanner(fake, config), LocationResolver(fake), config)
    session = store.create(UserPreferences(location="Paris"))
    assert store.get(session.id) is session
    assert store.get("missing") is None
    assert store.ids() == [session.id]
    assert len(store) == 1

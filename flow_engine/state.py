"""
Per-user planner sessions.

A ``PlannerSession`` owns the preferences, the commitment store and the
itinerary state for one user, and runs generation and recalculation against
them. The installed itinerary is only ever replaced wholesale; any failure
leaves the previous object in place.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import logging
import time

from pydantic import BaseModel

from .commitments import CommitmentStore
from .config import EngineConfig
from .constraints import reconcile
from .enrichment import context_hint_for, enrich
from .errors import NoItinerary, PlanBusy
from .generation import Planner
from .models import FixedCommitment, Itinerary, PlanContext, ResolvedLocation, UserPreferences, new_id
from .prompts import build_generation_prompt
from .recalculation import RecalculationEngine, RecalculationOutcome
from .resolver import LocationResolver
from .tracing import CallTrace


class PlanStatus(str, Enum):
    EMPTY = "EMPTY"
    GENERATING = "GENERATING"
    STABLE = "STABLE"
    RECALCULATING = "RECALCULATING"
    STABLE_UNCHANGED = "STABLE_UNCHANGED"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"


class ItineraryState(BaseModel):
    itinerary: Optional[Itinerary] = None
    status: PlanStatus = PlanStatus.EMPTY
    last_error: Optional[str] = None
    pending: Optional[RecalculationOutcome] = None

    @property
    def settled_status(self) -> PlanStatus:
        return PlanStatus.STABLE if self.itinerary is not None else PlanStatus.EMPTY

    def to_wire(self) -> Dict[str, Any]:
        pending = None
        if self.pending is not None:
            pending = {
                "itinerary": self.pending.itinerary.to_wire(),
                "reason": self.pending.reason.raw,
                "droppedCommitments": [
                    c.model_dump(mode="json", by_alias=True) for c in self.pending.dropped_commitments
                ],
            }
        return {
            "status": self.status.value,
            "lastError": self.last_error,
            "itinerary": self.itinerary.to_wire() if self.itinerary is not None else None,
            "pending": pending,
        }


class PlannerSession:
    def __init__(
        self,
        preferences: UserPreferences,
        planner: Planner,
        resolver: LocationResolver,
        config: EngineConfig,
        session_id: Optional[str] = None,
    ) -> None:
        self.id = session_id or new_id()
        self.commitments = CommitmentStore(preferences.fixed_commitments)
        self.preferences = preferences.model_copy(update={"fixed_commitments": []})
        self.state = ItineraryState()
        self.planner = planner
        self.resolver = resolver
        self.config = config
        self.engine = RecalculationEngine(planner, resolver, config)
        self.last_trace = CallTrace()
        self._busy = False

    @property
    def effective_preferences(self) -> UserPreferences:
        """Preferences with the commitment store's current contents."""
        return self.preferences.model_copy(update={"fixed_commitments": self.commitments.items()})

    def update_preferences(self, preferences: UserPreferences) -> UserPreferences:
        # Commitments are managed through the store, never through this payload.
        self.preferences = preferences.model_copy(update={"fixed_commitments": []})
        return self.effective_preferences

    def _enter(self, status: PlanStatus) -> CallTrace:
        if self._busy:
            raise PlanBusy("A plan request is already running for this session")
        self._busy = True
        self.state.status = status
        self.last_trace = CallTrace()
        return self.last_trace

    def _fail(self, e: Exception) -> None:
        self.state.last_error = str(e)
        if self.state.pending is not None:
            self.state.status = PlanStatus.AWAITING_CONFIRMATION
        elif self.state.itinerary is not None:
            self.state.status = PlanStatus.STABLE_UNCHANGED
        else:
            self.state.status = PlanStatus.EMPTY
        logging.warning("Session %s: plan request failed: %s", self.id, e)

    async def generate(self, context: Optional[PlanContext] = None) -> Itinerary:
        if self.state.pending is not None:
            raise PlanBusy("Confirm or discard the pending plan first")
        context = context or PlanContext(current_time=self.preferences.trip_start_time)
        trace = self._enter(PlanStatus.GENERATING)
        started = time.monotonic()
        try:
            self.commitments.ensure_consistent()
            preferences = self.effective_preferences
            candidate = await self.planner.plan(
                build_generation_prompt(preferences, context),
                thinking_budget=self.config.generation_thinking_budget,
                trace=trace,
            )
            result = reconcile(
                candidate,
                preferences.fixed_commitments,
                trip_start=preferences.trip_start_time,
                trip_end=preferences.trip_end_time,
            )
            hint = context_hint_for(result.itinerary, preferences.location or self.config.default_context_hint)
            itinerary = await enrich(result.itinerary, hint, self.resolver, trace=trace)
        except Exception as e:
            self._fail(e)
            raise
        finally:
            self._busy = False

        self.state.itinerary = itinerary
        self.state.pending = None
        self.state.last_error = None
        self.state.status = PlanStatus.STABLE
        logging.info(
            "Session %s: installed itinerary %s (%d stops) in %.0f ms",
            self.id,
            itinerary.id,
            len(itinerary.stops),
            (time.monotonic() - started) * 1000,
        )
        return itinerary

    async def recalculate(self, reason: str, context: Optional[PlanContext] = None) -> ItineraryState:
        """Re-plan from the current itinerary. Returns the state, which may be awaiting confirmation."""
        current = self.state.itinerary
        if current is None:
            raise NoItinerary("Generate an itinerary before recalculating")
        if self.state.pending is not None:
            raise PlanBusy("Confirm or discard the pending plan first")

        context = context or PlanContext(current_time=datetime.now().strftime("%H:%M"))
        trace = self._enter(PlanStatus.RECALCULATING)
        try:
            outcome = await self.engine.recalculate(
                current, reason, context, self.effective_preferences, trace=trace
            )
        except Exception as e:
            self._fail(e)
            raise
        finally:
            self._busy = False

        self.state.last_error = None
        if outcome.needs_confirmation:
            self.state.pending = outcome
            self.state.status = PlanStatus.AWAITING_CONFIRMATION
            logging.info(
                "Session %s: recalculated plan drops %d fixed stop(s), awaiting confirmation",
                self.id,
                len(outcome.dropped_commitments),
            )
        else:
            self.state.itinerary = outcome.itinerary
            self.state.status = PlanStatus.STABLE
        return self.state

    def confirm_pending(self) -> Itinerary:
        if self.state.pending is None:
            raise NoItinerary("No pending plan to confirm")
        self.state.itinerary = self.state.pending.itinerary
        self.state.pending = None
        self.state.status = PlanStatus.STABLE
        return self.state.itinerary

    def discard_pending(self) -> Optional[Itinerary]:
        if self.state.pending is None:
            raise NoItinerary("No pending plan to discard")
        self.state.pending = None
        self.state.status = self.state.settled_status
        return self.state.itinerary

    def reset(self) -> None:
        if self._busy:
            raise PlanBusy("A plan request is already running for this session")
        self.state = ItineraryState()

    async def resolve_commitment_location(self, query: str) -> ResolvedLocation:
        trace = CallTrace()
        hint = self.preferences.location or self.config.default_context_hint
        result = await self.resolver.resolve(query, hint, trace=trace)
        self.last_trace = trace
        return result

    async def add_commitment(
        self,
        start_time: str,
        end_time: Optional[str],
        location: str,
        description: Optional[str] = None,
        resolve: bool = False,
    ) -> FixedCommitment:
        resolved = None
        if resolve and location and location.strip():
            resolved = await self.resolve_commitment_location(location)
        return self.commitments.add(start_time, end_time, location, description, resolved=resolved)

    def remove_commitment(self, commitment_id: str) -> bool:
        return self.commitments.remove(commitment_id)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "preferences": self.effective_preferences.model_dump(mode="json", by_alias=True),
            **self.state.to_wire(),
        }


class SessionStore:
    """In-memory session registry for the service process."""

    def __init__(self, planner: Planner, resolver: LocationResolver, config: EngineConfig) -> None:
        self.planner = planner
        self.resolver = resolver
        self.config = config
        self._sessions: Dict[str, PlannerSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, preferences: Optional[UserPreferences] = None) -> PlannerSession:
        session = PlannerSession(preferences or UserPreferences(), self.planner, self.resolver, self.config)
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> Optional[PlannerSession]:
        return self._sessions.get(session_id)

    def ids(self) -> List[str]:
        return list(self._sessions)

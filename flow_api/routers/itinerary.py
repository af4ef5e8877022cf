from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from flow_engine.errors import GenerationFailure
from flow_engine.links import itinerary_links
from flow_engine.models import Itinerary, PlanContext
from flow_engine.state import PlannerSession

from ..deps import get_api_key, get_session


GENERATE_FAILED = "Failed to generate itinerary. Please try again."
RECALCULATE_FAILED = "Could not recalculate. Stick to the plan!"

router = APIRouter(dependencies=[Depends(get_api_key)])


class RecalculateRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    reason: str
    current_time: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


def _plan_body(session: PlannerSession, itinerary: Optional[Itinerary]) -> Dict[str, Any]:
    body = session.to_wire()
    body["links"] = itinerary_links(itinerary) if itinerary is not None else []
    body["trace"] = session.last_trace.entries
    return body


@router.post("/{session_id}/itinerary")
async def generate_itinerary(
    context: Optional[PlanContext] = Body(default=None),
    session: PlannerSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        itinerary = await session.generate(context)
    except GenerationFailure as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": GENERATE_FAILED, "error": str(e), "trace": session.last_trace.entries},
        )
    return _plan_body(session, itinerary)


@router.post("/{session_id}/itinerary/recalculate")
async def recalculate_itinerary(
    req: RecalculateRequest,
    session: PlannerSession = Depends(get_session),
) -> Dict[str, Any]:
    current_time = req.current_time or datetime.now().strftime("%H:%M")
    context = PlanContext(current_time=current_time, lat=req.lat, lng=req.lng)
    try:
        state = await session.recalculate(req.reason, context)
    except GenerationFailure as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": RECALCULATE_FAILED, "error": str(e), "trace": session.last_trace.entries},
        )
    shown = state.pending.itinerary if state.pending is not None else state.itinerary
    return _plan_body(session, shown)


@router.post("/{session_id}/itinerary/confirm")
async def confirm_pending(session: PlannerSession = Depends(get_session)) -> Dict[str, Any]:
    return _plan_body(session, session.confirm_pending())


@router.delete("/{session_id}/itinerary/pending")
async def discard_pending(session: PlannerSession = Depends(get_session)) -> Dict[str, Any]:
    return _plan_body(session, session.discard_pending())


@router.delete("/{session_id}/itinerary")
async def reset_itinerary(session: PlannerSession = Depends(get_session)) -> Dict[str, Any]:
    session.reset()
    return session.to_wire()

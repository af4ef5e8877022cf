from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status

from flow_engine.models import UserPreferences
from flow_engine.state import PlannerSession, SessionStore

from ..deps import get_api_key, get_session, get_sessions


router = APIRouter(dependencies=[Depends(get_api_key)])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_session(
    preferences: Optional[UserPreferences] = Body(default=None),
    sessions: SessionStore = Depends(get_sessions),
) -> Dict[str, Any]:
    session = sessions.create(preferences)
    return session.to_wire()


@router.get("/{session_id}")
async def read_session(session: PlannerSession = Depends(get_session)) -> Dict[str, Any]:
    return session.to_wire()


@router.put("/{session_id}/preferences")
async def update_preferences(
    preferences: UserPreferences,
    session: PlannerSession = Depends(get_session),
) -> Dict[str, Any]:
    session.update_preferences(preferences)
    return session.to_wire()

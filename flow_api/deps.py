from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from flow_engine.resolver import LocationResolver
from flow_engine.state import PlannerSession, SessionStore


def get_api_key(request: Request, x_api_key: Optional[str] = Header(default=None)) -> str:
    expected_api_key = request.app.state.api_config.api_key
    if expected_api_key is None or x_api_key != expected_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return x_api_key


def get_sessions(request: Request) -> SessionStore:
    sessions = getattr(request.app.state, "sessions", None)
    if sessions is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Planner not initialized",
        )
    return sessions


def get_resolver(request: Request) -> LocationResolver:
    resolver = getattr(request.app.state, "resolver", None)
    if resolver is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Location resolver not initialized",
        )
    return resolver


def get_session(session_id: str, sessions: SessionStore = Depends(get_sessions)) -> PlannerSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown session")
    return session

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from flow_engine.state import PlannerSession

from ..deps import get_api_key, get_session


router = APIRouter(dependencies=[Depends(get_api_key)])


class CommitmentRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    start_time: str
    end_time: Optional[str] = None
    location: str
    description: Optional[str] = None
    resolve: bool = False


def _wire(session: PlannerSession) -> List[Dict[str, Any]]:
    return [c.model_dump(mode="json", by_alias=True) for c in session.commitments]


@router.get("/{session_id}/commitments")
async def list_commitments(session: PlannerSession = Depends(get_session)) -> Dict[str, Any]:
    return {"commitments": _wire(session), "conflicts": session.commitments.overlapping_pairs()}


@router.post("/{session_id}/commitments", status_code=status.HTTP_201_CREATED)
async def add_commitment(
    req: CommitmentRequest,
    session: PlannerSession = Depends(get_session),
) -> Dict[str, Any]:
    commitment = await session.add_commitment(
        req.start_time,
        req.end_time,
        req.location,
        req.description,
        resolve=req.resolve,
    )
    return {
        "commitment": commitment.model_dump(mode="json", by_alias=True),
        "commitments": _wire(session),
        "conflicts": session.commitments.overlapping_pairs(),
        "trace": session.last_trace.entries if req.resolve else [],
    }


@router.delete("/{session_id}/commitments/{commitment_id}")
async def remove_commitment(
    commitment_id: str,
    session: PlannerSession = Depends(get_session),
) -> Dict[str, Any]:
    if not session.remove_commitment(commitment_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown commitment")
    return {"removed": commitment_id, "commitments": _wire(session)}

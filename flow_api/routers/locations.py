from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from flow_engine.resolver import LocationResolver
from flow_engine.tracing import CallTrace

from ..deps import get_api_key, get_resolver


router = APIRouter(dependencies=[Depends(get_api_key)])


class ResolveRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    query: str
    context_hint: Optional[str] = None


@router.post("/resolve")
async def resolve_location(
    req: ResolveRequest,
    resolver: LocationResolver = Depends(get_resolver),
) -> Dict[str, Any]:
    trace = CallTrace()
    result = await resolver.resolve(req.query, req.context_hint, trace=trace)
    body = result.model_dump(mode="json", by_alias=True)
    body["resolved"] = result.is_resolved
    body["trace"] = trace.entries
    return body

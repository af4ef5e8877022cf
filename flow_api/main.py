import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import httpx
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
import uvicorn

from flow_engine.config import EngineConfig
from flow_engine.errors import (
    CommitmentConflict,
    FixedStopLocked,
    NoItinerary,
    PlanBusy,
    UnknownStop,
)
from flow_engine.generation import GeminiGenerator, GeneratorPort, StructuredPlanner
from flow_engine.geocoder import NominatimGeocoder
from flow_engine.resolver import LocationResolver
from flow_engine.state import SessionStore
from flow_api.routers.commitments import router as commitments_router
from flow_api.routers.itinerary import router as itinerary_router
from flow_api.routers.locations import router as locations_router
from flow_api.routers.sessions import router as sessions_router
from .config import CONFIG, ApiConfig
from .deps import get_api_key


# --- Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler()
    ]
)
# --------------------------


def _error_handler(status_code: int):
    async def handler(_: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


def create_app(
    generator: Optional[GeneratorPort] = None,
    geocoder: Optional[NominatimGeocoder] = None,
    api_config: Optional[ApiConfig] = None,
    engine_config: Optional[EngineConfig] = None,
) -> FastAPI:
    api_config = api_config or CONFIG
    engine_config = engine_config or EngineConfig.from_env()
    limiter = Limiter(key_func=get_remote_address, default_limits=[api_config.rate_limit])

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        http_client = httpx.AsyncClient(timeout=engine_config.http_timeout_sec)
        app.state.http_client = http_client
        gen = generator if generator is not None else GeminiGenerator(engine_config)
        geo = geocoder
        if geo is None and engine_config.nominatim_enabled:
            geo = NominatimGeocoder(engine_config, client=http_client)
        resolver = LocationResolver(gen, geo)
        app.state.resolver = resolver
        app.state.sessions = SessionStore(StructuredPlanner(gen, engine_config), resolver, engine_config)
        logging.info("Planner ready (model=%s, grounding=%s)", engine_config.gemini_model, engine_config.grounding_tool)
        try:
            yield
        finally:
            await http_client.aclose()

    app = FastAPI(title="LocalFlow Planner", lifespan=lifespan)
    app.state.api_config = api_config
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(CommitmentConflict, _error_handler(status.HTTP_422_UNPROCESSABLE_ENTITY))
    app.add_exception_handler(FixedStopLocked, _error_handler(status.HTTP_422_UNPROCESSABLE_ENTITY))
    app.add_exception_handler(ValueError, _error_handler(status.HTTP_422_UNPROCESSABLE_ENTITY))
    app.add_exception_handler(PlanBusy, _error_handler(status.HTTP_409_CONFLICT))
    app.add_exception_handler(NoItinerary, _error_handler(status.HTTP_409_CONFLICT))
    app.add_exception_handler(UnknownStop, _error_handler(status.HTTP_404_NOT_FOUND))
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=512)
    app.include_router(sessions_router, prefix="/sessions")
    app.include_router(commitments_router, prefix="/sessions")
    app.include_router(itinerary_router, prefix="/sessions")
    app.include_router(locations_router, prefix="/locations")

    @app.get("/", dependencies=[Depends(get_api_key)])
    async def root(_: Request):
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=CONFIG.port)

"""Behavioural Simulation Engine - FastAPI app entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.routers import api, web
from app.routers.deps import ensure_session_cookie, get_or_create_session_id
from app.services.session import get_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s", settings.app_name)
    yield
    # sessions are memory-only; drop them and their timers
    get_registry().close()


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    description="Interactive behavioural simulations backed by Gemini",
    debug=settings.debug,
    lifespan=lifespan,
)


@app.middleware("http")
async def session_cookie(request: Request, call_next):
    """Hand every guest a session cookie, error responses included."""
    sid = get_or_create_session_id(request)
    response = await call_next(request)
    ensure_session_cookie(request, response, sid)
    return response


app.include_router(web.router)
app.include_router(api.router)


@app.get("/health")
async def health():
    return {"status": "ok"}

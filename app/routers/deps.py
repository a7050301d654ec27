"""Shared router dependencies: guest session id and session controller."""
import uuid
from typing import Annotated

from fastapi import Depends, Request, Response

from app.core.config import get_settings
from app.services.session import SessionController, SessionRegistry, get_registry

settings = get_settings()


def get_or_create_session_id(request: Request) -> str:
    sid = request.cookies.get(settings.session_cookie_name)
    if not sid:
        # new guest: keep one id for the whole request
        sid = getattr(request.state, "session_id", None) or str(uuid.uuid4())
        request.state.session_id = sid
    return sid


def ensure_session_cookie(request: Request, response: Response, session_id: str) -> None:
    if not request.cookies.get(settings.session_cookie_name):
        response.set_cookie(
            key=settings.session_cookie_name,
            value=session_id,
            max_age=settings.session_cookie_max_age,
            httponly=True,
            samesite="lax",
        )


def get_controller(
    request: Request,
    registry: Annotated[SessionRegistry, Depends(get_registry)],
) -> SessionController:
    return registry.get(get_or_create_session_id(request))

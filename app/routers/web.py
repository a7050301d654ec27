"""Web routes: home / scene / analysis page and its form posts. Jinja2 templates."""
from typing import Annotated

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from app.core.config import BASE_DIR
from app.routers.deps import get_controller
from app.services.session import SessionController

router = APIRouter()
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

# (button label, prompt sent to the engine)
QUICK_STARTS = [
    ("Capital Negotiation", "Negotiating with a high-stakes investor"),
    ("Status Power Play", "Navigating a power play in a team setting"),
    ("Crisis Comms", "Public apology after a major strategic failure"),
]


# ---------- helpers ----------

Controller = Annotated[SessionController, Depends(get_controller)]


def _redirect_home(request: Request) -> RedirectResponse:
    return RedirectResponse(request.url_for("home"), status_code=303)


# ---------- routes ----------

@router.get("/", response_class=HTMLResponse)
async def home(request: Request, controller: Controller):
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "current": controller.current,
            "categories": controller.archive.list_categories(),
            "notification": controller.take_notification(),
            "progress": controller.progress.snapshot(),
            "quick_starts": QUICK_STARTS,
        },
    )


@router.post("/start", response_class=RedirectResponse)
async def start_post(
    request: Request,
    controller: Controller,
    prompt: Annotated[str, Form()] = "",
):
    await controller.start_simulation(prompt.strip())
    return _redirect_home(request)


@router.post("/choose", response_class=RedirectResponse)
async def choose_post(
    request: Request,
    controller: Controller,
    choice_id: Annotated[int, Form()],
):
    current = controller.current
    if current is None or current.find_choice(choice_id) is None:
        raise HTTPException(status_code=400, detail="Invalid choice")
    await controller.select_choice(choice_id)
    return _redirect_home(request)


@router.post("/undo", response_class=RedirectResponse)
async def undo_post(request: Request, controller: Controller):
    await controller.undo()
    return _redirect_home(request)


@router.post("/reset", response_class=RedirectResponse)
async def reset_post(request: Request, controller: Controller):
    await controller.reset()
    return _redirect_home(request)


@router.post("/archive/{record_id}", response_class=RedirectResponse)
async def archive_load_post(record_id: str, request: Request, controller: Controller):
    record = controller.archive.find_record(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Simulation not found")
    await controller.load_from_archive(record)
    return _redirect_home(request)

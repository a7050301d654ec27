"""API routes: JSON for the simulation session, archive and progress."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request

from app.routers.deps import get_controller, get_or_create_session_id
from app.schemas.archive import ArchiveCategory
from app.schemas.session import (
    ProgressSnapshotSchema,
    SelectChoiceSchema,
    SessionOutSchema,
    SessionPhase,
    StartSimulationSchema,
)
from app.schemas.simulation import SimulationRecord
from app.services.session import SessionController, SessionRegistry, get_registry

router = APIRouter(prefix="/api", tags=["api"])

Controller = Annotated[SessionController, Depends(get_controller)]


def _raise_on_notification(controller: SessionController) -> None:
    """Turn a failed generator call into a 502 carrying the user-facing message."""
    message = controller.take_notification()
    if message:
        raise HTTPException(status_code=502, detail=message)


@router.get("/session", response_model=SessionOutSchema)
async def get_session(controller: Controller):
    """Current phase, record, pending notification and progress."""
    return controller.to_schema()


@router.delete("/session")
async def end_session(
    request: Request,
    registry: Annotated[SessionRegistry, Depends(get_registry)],
):
    """Discard the session: current record and archive."""
    ended = registry.end(get_or_create_session_id(request))
    return {"status": "ended" if ended else "not_found"}


@router.post("/simulations", response_model=SessionOutSchema)
async def start_simulation(body: StartSimulationSchema, controller: Controller):
    """Generate a new scenario from the prompt (empty prompt = open scenario)."""
    accepted = await controller.start_simulation(body.prompt.strip())
    if not accepted:
        raise HTTPException(status_code=409, detail="A simulation is already in progress")
    _raise_on_notification(controller)
    return controller.to_schema()


@router.post("/simulations/choice", response_model=SessionOutSchema)
async def select_choice(body: SelectChoiceSchema, controller: Controller):
    """Commit a choice and fetch the reveal."""
    current = controller.current
    if controller.phase is SessionPhase.SETUP_READY and current.find_choice(body.choice_id) is None:
        raise HTTPException(status_code=400, detail="Invalid choice")
    accepted = await controller.select_choice(body.choice_id)
    if not accepted:
        raise HTTPException(status_code=409, detail="No simulation is awaiting a choice")
    _raise_on_notification(controller)
    return controller.to_schema()


@router.post("/simulations/undo", response_model=SessionOutSchema)
async def undo_choice(controller: Controller):
    if not await controller.undo():
        raise HTTPException(status_code=409, detail="Nothing to undo")
    return controller.to_schema()


@router.post("/simulations/reset", response_model=SessionOutSchema)
async def reset_simulation(controller: Controller):
    await controller.reset()
    return controller.to_schema()


@router.get("/archive", response_model=list[ArchiveCategory])
async def list_archive(controller: Controller):
    """Archive categories in creation order, records most recent first."""
    return list(controller.archive.list_categories())


@router.get("/archive/{record_id}", response_model=SimulationRecord)
async def get_archived_record(record_id: str, controller: Controller):
    record = controller.archive.find_record(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Simulation not found")
    return record


@router.post("/archive/{record_id}/load", response_model=SessionOutSchema)
async def load_archived_record(record_id: str, controller: Controller):
    """Make an archived simulation the current one."""
    record = controller.archive.find_record(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Simulation not found")
    await controller.load_from_archive(record)
    return controller.to_schema()


@router.get("/progress", response_model=ProgressSnapshotSchema)
async def get_progress(controller: Controller):
    return controller.progress.snapshot()

"""Pydantic schemas for the session API."""
from enum import Enum

from pydantic import BaseModel, Field

from app.schemas.simulation import SimulationRecord


class SessionPhase(str, Enum):
    IDLE = "idle"
    AWAITING_SETUP = "awaiting_setup"
    SETUP_READY = "setup_ready"
    AWAITING_REVEAL = "awaiting_reveal"
    REVEALED = "revealed"


class ProgressSnapshotSchema(BaseModel):
    value: float
    phrase: str | None = None
    active: bool = False


class StartSimulationSchema(BaseModel):
    prompt: str = Field(default="", max_length=2000)


class SelectChoiceSchema(BaseModel):
    choice_id: int


class SessionOutSchema(BaseModel):
    phase: SessionPhase
    current: SimulationRecord | None = None
    notification: str | None = None
    progress: ProgressSnapshotSchema
    archived_count: int = 0

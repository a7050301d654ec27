from app.schemas.archive import Archive, ArchiveCategory
from app.schemas.session import (
    ProgressSnapshotSchema,
    SelectChoiceSchema,
    SessionOutSchema,
    SessionPhase,
    StartSimulationSchema,
)
from app.schemas.simulation import (
    Choice,
    ChoiceCategory,
    ConflictCategory,
    CoreSkill,
    RevealMetadata,
    RevealResult,
    ScenarioResult,
    SimulationRecord,
)

__all__ = [
    "Archive",
    "ArchiveCategory",
    "Choice",
    "ChoiceCategory",
    "ConflictCategory",
    "CoreSkill",
    "ProgressSnapshotSchema",
    "RevealMetadata",
    "RevealResult",
    "ScenarioResult",
    "SelectChoiceSchema",
    "SessionOutSchema",
    "SessionPhase",
    "SimulationRecord",
    "StartSimulationSchema",
]

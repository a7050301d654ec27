"""Pydantic schemas for the session archive."""
from pydantic import BaseModel, Field

from app.schemas.simulation import SimulationRecord


class ArchiveCategory(BaseModel):
    language: str
    conflict_category: str = Field(alias="conflictType")
    records: tuple[SimulationRecord, ...] = ()  # most recently revealed first

    class Config:
        frozen = True
        populate_by_name = True

    @property
    def key(self) -> tuple[str, str]:
        return (self.language, self.conflict_category)


class Archive(BaseModel):
    """Immutable archive snapshot; categories in creation order."""

    categories: tuple[ArchiveCategory, ...] = ()

    class Config:
        frozen = True

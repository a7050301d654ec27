"""Pydantic schemas for simulation records, choices and generator payloads.

Field aliases follow the generator's JSON (camelCase); models accept either
the alias or the field name.
"""
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


class ChoiceCategory(str, Enum):
    EMOTIONAL = "EMOTIONAL"
    AVOIDANT = "AVOIDANT"
    STRATEGIC = "STRATEGIC"


class ConflictCategory(str, Enum):
    SOCIAL = "Social"
    PROFESSIONAL = "Professional"
    POWER_DYNAMICS = "Power Dynamics"
    LEADERSHIP = "Leadership"
    NEGOTIATION = "Negotiation"


class CoreSkill(str, Enum):
    EMOTIONAL_CONTROL = "Emotional Control"
    ASSERTIVENESS = "Assertiveness"
    SOCIAL_INTELLIGENCE = "Social Intelligence"
    BOUNDARY_SETTING = "Boundary Setting"
    PERSUASION = "Persuasion"
    STATUS_MANAGEMENT = "Status Management"


class Choice(BaseModel):
    id: int
    label: str
    category: ChoiceCategory = Field(alias="type")
    text: str

    class Config:
        frozen = True
        populate_by_name = True

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


def _unique_choice_ids(choices):
    """Choices are looked up by id, so ids within one record must differ."""
    if choices:
        ids = [choice.id for choice in choices]
        if len(ids) != len(set(ids)):
            raise ValueError(f"duplicate choice ids: {ids}")
    return choices


class RevealMetadata(BaseModel):
    """Structured log attached to a revealed simulation.

    language and conflict_category may come back empty; the archive
    substitutes its defaults for them. Conflict category and core skill are
    kept as the generator's strings, the enums above are their vocabulary.
    """

    language: str = ""
    conflict_category: str = Field(default="", alias="conflictType")
    intensity_level: int = Field(ge=1, le=5, alias="intensityLevel")
    core_skill: str = Field(alias="coreSkill")
    strategic_essence: str = Field(alias="strategicEssence")

    class Config:
        frozen = True
        populate_by_name = True


class ScenarioResult(BaseModel):
    """Raw setup payload; every field may be missing."""

    title: str | None = None
    role: str | None = None
    scene: str | None = None
    micro_expression_notes: str | None = Field(default=None, alias="microExpressions")
    choices: list[Choice] | None = None

    class Config:
        populate_by_name = True

    @field_validator("choices")
    @classmethod
    def _check_choice_ids(cls, value):
        return _unique_choice_ids(value)


class RevealResult(BaseModel):
    """Raw reveal payload; every field is required."""

    outcome: str
    analysis: str
    reveal_metadata: RevealMetadata = Field(alias="log")

    class Config:
        populate_by_name = True


class SimulationRecord(BaseModel):
    """One simulation, either in setup phase or fully revealed."""

    id: str
    title: str
    role: str
    scene: str = ""
    micro_expression_notes: str = Field(default="", alias="microExpressions")
    choices: tuple[Choice, ...] = ()
    selected_choice_id: int | None = Field(default=None, alias="selectedChoiceId")
    outcome: str | None = None
    analysis: str | None = None
    reveal_metadata: RevealMetadata | None = Field(default=None, alias="log")

    class Config:
        frozen = True
        populate_by_name = True

    @field_validator("choices")
    @classmethod
    def _check_choice_ids(cls, value):
        return _unique_choice_ids(value)

    @model_validator(mode="after")
    def _check_phase(self) -> "SimulationRecord":
        revealed = (self.outcome, self.analysis, self.reveal_metadata)
        present = [v is not None for v in revealed]
        if any(present) and not all(present):
            raise ValueError("outcome, analysis and log must be set together")
        if (self.selected_choice_id is not None) != all(present):
            raise ValueError("selectedChoiceId must be set iff the record is revealed")
        return self

    @property
    def is_revealed(self) -> bool:
        return self.selected_choice_id is not None

    def find_choice(self, choice_id: int) -> Choice | None:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None

    def revealed(self, choice_id: int, result: RevealResult) -> "SimulationRecord":
        """Return a revealed copy carrying the same id."""
        return self.model_copy(
            update={
                "selected_choice_id": choice_id,
                "outcome": result.outcome,
                "analysis": result.analysis,
                "reveal_metadata": result.reveal_metadata,
            }
        )

    def stripped(self) -> "SimulationRecord":
        """Return the setup-phase copy of this record (same id)."""
        return self.model_copy(
            update={
                "selected_choice_id": None,
                "outcome": None,
                "analysis": None,
                "reveal_metadata": None,
            }
        )

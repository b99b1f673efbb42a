"""
Domain records of the career matrix.

JobLevel and Criterion are the two dimensions of the matrix, Capability is the
fact table joining them. Every record is immutable once created; the store hands
out new instances, never mutated ones.

The external shapes (MatrixData, MatrixFilters, SeedPayload) keep the camelCase
keys the matrix clients already speak (`jobLevels`, `subCategories`, ...); they
accept snake_case names as well.
"""

from __future__ import annotations

from datetime import date as calendar_date
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from careermatrix.core.errors import MalformedFilterError

ISO_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OverviewType(str, Enum):
    GOAL = "goal"
    PRINCIPLE = "principle"


class JobLevel(BaseModel):
    id: str
    name: str
    primary_title: str
    description_summary: str
    trajectory_note: Optional[str] = None
    rank: int = 0
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)


class Criterion(BaseModel):
    id: str
    category: str
    sub_category: str
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)


class Capability(BaseModel):
    id: int
    job_level_id: str
    criterion_id: str
    description: str
    references_capability_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)


class EditHistoryEntry(BaseModel):
    id: int
    date: str
    description: str
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)


class OverviewContent(BaseModel):
    id: int
    type: OverviewType
    content: str
    order: int
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)


# ---------------------- Write inputs ----------------------


class CreateJobLevelInput(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    primary_title: str
    description_summary: str
    trajectory_note: Optional[str] = None
    rank: Optional[int] = Field(None, description="Display rank; defaults to one past the current highest")

    model_config = ConfigDict(extra="forbid", frozen=True)


class CreateCriterionInput(BaseModel):
    id: str = Field(..., min_length=1)
    category: str
    sub_category: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class CreateCapabilityInput(BaseModel):
    job_level_id: str
    criterion_id: str
    description: str
    references_capability_id: Optional[int] = Field(
        None, description="Capability whose description this one extends"
    )

    model_config = ConfigDict(extra="forbid", frozen=True)


class CreateEditHistoryEntryInput(BaseModel):
    date: str = Field(..., pattern=ISO_DATE_PATTERN, description="Calendar date, YYYY-MM-DD")
    description: str

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("date")
    @classmethod
    def _real_calendar_date(cls, value: str) -> str:
        calendar_date.fromisoformat(value)
        return value


class CreateOverviewContentInput(BaseModel):
    type: OverviewType
    content: str
    order: int

    model_config = ConfigDict(extra="forbid", frozen=True)


# ---------------------- Query shapes ----------------------


class MatrixFilters(BaseModel):
    levels: Optional[List[str]] = None
    categories: Optional[List[str]] = None
    sub_categories: Optional[List[str]] = Field(None, alias="subCategories")
    search: Optional[str] = None

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class Overview(BaseModel):
    goals: List[str] = Field(default_factory=list)
    principles: List[str] = Field(default_factory=list)


class MatrixData(BaseModel):
    job_levels: List[JobLevel] = Field(default_factory=list, alias="jobLevels")
    criteria: List[Criterion] = Field(default_factory=list)
    capabilities: List[Capability] = Field(default_factory=list)
    edit_history: List[EditHistoryEntry] = Field(default_factory=list, alias="editHistory")
    overview: Overview = Field(default_factory=Overview)
    source: str = "store"

    model_config = ConfigDict(populate_by_name=True)


# ---------------------- Bulk load ----------------------


class SeedJobLevel(CreateJobLevelInput):
    model_config = ConfigDict(extra="ignore")


class SeedCriterion(CreateCriterionInput):
    model_config = ConfigDict(extra="ignore")


class SeedCapability(BaseModel):
    job_level_id: str
    criterion_id: str
    description: str

    model_config = ConfigDict(extra="ignore", frozen=True)


class SeedEditHistoryEntry(CreateEditHistoryEntryInput):
    model_config = ConfigDict(extra="ignore")


class SeedPayload(BaseModel):
    """A MatrixData-shaped payload; server-assigned fields are ignored."""

    job_levels: List[SeedJobLevel] = Field(default_factory=list, alias="jobLevels")
    criteria: List[SeedCriterion] = Field(default_factory=list)
    capabilities: List[SeedCapability] = Field(default_factory=list)
    edit_history: List[SeedEditHistoryEntry] = Field(default_factory=list, alias="editHistory")
    overview: Overview = Field(default_factory=Overview)

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(item) for item in error.get("loc", ())) or "filters"
        parts.append(f"{loc}: {error.get('msg')}")
    return "; ".join(parts)


def parse_matrix_filters(raw: Any) -> Optional[MatrixFilters]:
    """Validates an untrusted filter object before it reaches the filter engine."""
    if raw is None or isinstance(raw, MatrixFilters):
        return raw
    if not isinstance(raw, Mapping):
        raise MalformedFilterError(f"Filters must be an object, got {type(raw).__name__}")
    try:
        return MatrixFilters.model_validate(dict(raw))
    except ValidationError as exc:
        raise MalformedFilterError(f"Malformed filters: {_describe_validation_error(exc)}") from exc

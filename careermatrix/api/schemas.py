from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from careermatrix.core.models import Capability, Criterion, JobLevel


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    filters: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


class CapabilityListPublicResponse(BaseModel):
    count: int
    capabilities: List[Capability]

    model_config = ConfigDict(extra="allow")


class GroupedCriteriaPublicResponse(BaseModel):
    category_count: int
    categories: Dict[str, List[Criterion]]

    model_config = ConfigDict(extra="allow")


class GroupedLevelsPublicResponse(BaseModel):
    title_count: int
    titles: Dict[str, List[JobLevel]]

    model_config = ConfigDict(extra="allow")


class UnresolvedReferencePublicResponse(BaseModel):
    job_level_id: str
    criterion_id: str
    token: str
    reason: str

    model_config = ConfigDict(extra="allow")


class SeedReportPublicResponse(BaseModel):
    status: str
    job_levels: int
    criteria: int
    capabilities: int
    resolved_references: int
    edit_history: int
    overview_content: int
    unresolved_references: List[UnresolvedReferencePublicResponse] = []
    duplicate_pairs: List[List[str]] = []

    model_config = ConfigDict(extra="allow")

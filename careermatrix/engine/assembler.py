from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from careermatrix.core.models import Capability, Criterion, JobLevel

logger = logging.getLogger(__name__)

CellKey = Tuple[str, str, str]


class DuplicateCell(BaseModel):
    category: str
    sub_category: str
    job_level_id: str
    criterion_id: str
    kept_capability_id: int
    dropped_capability_id: int


class MatrixGrid(BaseModel):
    """category -> sub_category -> job_level_id -> description."""

    visible_levels: List[str] = Field(default_factory=list)
    categories: Dict[str, Dict[str, Dict[str, str]]] = Field(default_factory=dict)
    duplicates: List[DuplicateCell] = Field(default_factory=list)

    def cell(self, category: str, sub_category: str, job_level_id: str) -> Optional[str]:
        return self.categories.get(category, {}).get(sub_category, {}).get(job_level_id)


def order_job_levels(job_levels: Iterable[JobLevel]) -> List[JobLevel]:
    return sorted(job_levels, key=lambda level: level.rank)


def next_level_rank(job_levels: Iterable[JobLevel]) -> int:
    return max((level.rank for level in job_levels), default=-1) + 1


def visible_levels(job_levels: Iterable[JobLevel], levels: Optional[Sequence[str]] = None) -> List[str]:
    """Column set of the matrix: the requested known levels (or all), in rank order."""
    ordered = order_job_levels(job_levels)
    if not levels:
        return [level.id for level in ordered]
    wanted = set(levels)
    return [level.id for level in ordered if level.id in wanted]


def assemble_matrix(
    capabilities: Iterable[Capability],
    criteria: Iterable[Criterion],
    job_levels: Iterable[JobLevel],
    levels: Optional[Sequence[str]] = None,
) -> MatrixGrid:
    """
    Groups already-filtered capabilities into the nested display grid.

    Only groups with at least one capability appear. Categories keep first-seen
    order, sub-categories are sorted. A duplicate (level, criterion) pair keeps
    the last capability seen and is reported in ``duplicates``.
    """
    job_levels = list(job_levels)
    criteria_by_id = {criterion.id: criterion for criterion in criteria}
    rank_of = {level.id: position for position, level in enumerate(order_job_levels(job_levels))}

    grouped: Dict[str, Dict[str, Dict[str, str]]] = {}
    owners: Dict[CellKey, Capability] = {}
    duplicates: List[DuplicateCell] = []

    for capability in capabilities:
        criterion = criteria_by_id.get(capability.criterion_id)
        if criterion is None:
            continue
        key = (criterion.category, criterion.sub_category, capability.job_level_id)
        previous = owners.get(key)
        if previous is not None:
            logger.warning(
                "Duplicate capability for job_level_id=%s criterion_id=%s (ids %s and %s); keeping the last one",
                capability.job_level_id,
                capability.criterion_id,
                previous.id,
                capability.id,
            )
            duplicates.append(
                DuplicateCell(
                    category=criterion.category,
                    sub_category=criterion.sub_category,
                    job_level_id=capability.job_level_id,
                    criterion_id=capability.criterion_id,
                    kept_capability_id=capability.id,
                    dropped_capability_id=previous.id,
                )
            )
        owners[key] = capability
        grouped.setdefault(criterion.category, {}).setdefault(criterion.sub_category, {})[
            capability.job_level_id
        ] = capability.description

    categories: Dict[str, Dict[str, Dict[str, str]]] = {}
    for category, sub_categories in grouped.items():
        categories[category] = {}
        for sub_category in sorted(sub_categories):
            cells = sub_categories[sub_category]
            ordered_ids = sorted(cells, key=lambda level_id: rank_of.get(level_id, len(rank_of)))
            categories[category][sub_category] = {level_id: cells[level_id] for level_id in ordered_ids}

    return MatrixGrid(
        visible_levels=visible_levels(job_levels, levels),
        categories=categories,
        duplicates=duplicates,
    )


def group_criteria_by_category(criteria: Iterable[Criterion]) -> Dict[str, List[Criterion]]:
    grouped: Dict[str, List[Criterion]] = {}
    for criterion in criteria:
        grouped.setdefault(criterion.category, []).append(criterion)
    return {category: sorted(items, key=lambda c: c.sub_category) for category, items in grouped.items()}


def group_levels_by_title(job_levels: Iterable[JobLevel]) -> Dict[str, List[JobLevel]]:
    grouped: Dict[str, List[JobLevel]] = {}
    for level in order_job_levels(job_levels):
        grouped.setdefault(level.primary_title, []).append(level)
    return grouped

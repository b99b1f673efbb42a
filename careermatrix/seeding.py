# careermatrix/seeding.py

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, List, Mapping, Tuple, Union

from pydantic import BaseModel, Field

from careermatrix.core.errors import DuplicateIdError, NotFoundReferenceError
from careermatrix.core.models import Criterion, JobLevel, OverviewType, SeedPayload, utcnow
from careermatrix.engine.assembler import next_level_rank
from careermatrix.engine.references import UnresolvedReference, has_reference, resolve_capability_references

logger = logging.getLogger(__name__)


class SeedReport(BaseModel):
    job_levels: int = 0
    criteria: int = 0
    capabilities: int = 0
    resolved_references: int = 0
    edit_history: int = 0
    overview_content: int = 0
    unresolved_references: List[UnresolvedReference] = Field(default_factory=list)
    duplicate_pairs: List[Tuple[str, str]] = Field(default_factory=list)


def coerce_seed_payload(payload: Union[SeedPayload, Mapping[str, Any]]) -> SeedPayload:
    if isinstance(payload, SeedPayload):
        return payload
    return SeedPayload.model_validate(dict(payload))


def validate_seed_payload(store: Any, payload: SeedPayload) -> None:
    """Rejects the whole payload before any row is written."""
    level_ids = {level.id for level in store.list_job_levels()}
    for level in payload.job_levels:
        if level.id in level_ids:
            raise DuplicateIdError("JobLevel", level.id)
        level_ids.add(level.id)

    criterion_ids = {criterion.id for criterion in store.list_criteria()}
    for criterion in payload.criteria:
        if criterion.id in criterion_ids:
            raise DuplicateIdError("Criterion", criterion.id)
        criterion_ids.add(criterion.id)

    for capability in payload.capabilities:
        if capability.job_level_id not in level_ids:
            raise NotFoundReferenceError("JobLevel", capability.job_level_id)
        if capability.criterion_id not in criterion_ids:
            raise NotFoundReferenceError("Criterion", capability.criterion_id)


def seed_store(store: Any, payload: Union[SeedPayload, Mapping[str, Any]]) -> SeedReport:
    """
    Bulk-loads a matrix payload into ``store``.

    Rows are written in dependency order: job levels, criteria, capabilities,
    edit history, overview content. Capability text goes through reference
    resolution first; base capabilities are written before the ones expanded
    from them so the explicit ``references_capability_id`` link can be set.
    """
    payload = coerce_seed_payload(payload)
    validate_seed_payload(store, payload)
    report = SeedReport()

    existing_levels = store.list_job_levels()
    rank = next_level_rank(existing_levels)
    levels: List[JobLevel] = []
    for item in payload.job_levels:
        level = JobLevel(
            id=item.id,
            name=item.name,
            primary_title=item.primary_title,
            description_summary=item.description_summary,
            trajectory_note=item.trajectory_note,
            rank=item.rank if item.rank is not None else rank,
            created_at=utcnow(),
        )
        rank = max(rank, level.rank) + 1
        levels.append(store.add_job_level(level))
    report.job_levels = len(levels)

    for item in payload.criteria:
        store.add_criterion(
            Criterion(id=item.id, category=item.category, sub_category=item.sub_category, created_at=utcnow())
        )
    report.criteria = len(payload.criteria)

    # Only stored rows written without a reference link are reference targets.
    stored_bases = [c for c in store.list_capabilities() if c.references_capability_id is None]
    resolution = resolve_capability_references(
        payload.capabilities,
        job_levels=existing_levels + levels,
        known_bases=stored_bases,
    )
    report.unresolved_references = list(resolution.unresolved)
    report.resolved_references = resolution.resolved_count

    pair_counts = Counter((c.job_level_id, c.criterion_id) for c in store.list_capabilities())
    pair_counts.update((c.job_level_id, c.criterion_id) for c in payload.capabilities)
    report.duplicate_pairs = sorted(pair for pair, count in pair_counts.items() if count > 1)
    for job_level_id, criterion_id in report.duplicate_pairs:
        logger.warning(
            "Seed payload holds more than one capability for job_level_id=%s criterion_id=%s",
            job_level_id,
            criterion_id,
        )

    base_ids: Dict[Tuple[str, str], int] = {
        (c.job_level_id, c.criterion_id): c.id for c in stored_bases if not has_reference(c.description)
    }
    deferred = []
    for original, item, source in zip(payload.capabilities, resolution.items, resolution.sources):
        if not has_reference(original.description):
            created = store.add_capability(
                job_level_id=item.job_level_id,
                criterion_id=item.criterion_id,
                description=item.description,
            )
            base_ids[(created.job_level_id, created.criterion_id)] = created.id
        else:
            deferred.append((item, source))

    for item, source in deferred:
        store.add_capability(
            job_level_id=item.job_level_id,
            criterion_id=item.criterion_id,
            description=item.description,
            references_capability_id=base_ids.get(source) if source is not None else None,
        )
    report.capabilities = len(resolution.items)

    for entry in payload.edit_history:
        store.add_edit_history_entry(date=entry.date, description=entry.description)
    report.edit_history = len(payload.edit_history)

    goals = payload.overview.goals
    for position, content in enumerate(goals, start=1):
        store.add_overview_content(type=OverviewType.GOAL, content=content, order=position)
    for position, content in enumerate(payload.overview.principles, start=len(goals) + 1):
        store.add_overview_content(type=OverviewType.PRINCIPLE, content=content, order=position)
    report.overview_content = len(goals) + len(payload.overview.principles)

    logger.info(
        "Seeded matrix: %s job levels, %s criteria, %s capabilities (%s references expanded, %s unresolved)",
        report.job_levels,
        report.criteria,
        report.capabilities,
        report.resolved_references,
        len(report.unresolved_references),
    )
    return report

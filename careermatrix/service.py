# careermatrix/service.py

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar, Union

from careermatrix.core.config import MatrixConfig
from careermatrix.core.errors import (
    DuplicateIdError,
    MalformedFilterError,
    NotFoundReferenceError,
    StoreUnavailableError,
)
from careermatrix.core.fallback import FallbackDataProvider, SampleMatrixFallback
from careermatrix.core.models import (
    Capability,
    CreateCapabilityInput,
    CreateCriterionInput,
    CreateEditHistoryEntryInput,
    CreateJobLevelInput,
    CreateOverviewContentInput,
    Criterion,
    EditHistoryEntry,
    JobLevel,
    MatrixData,
    MatrixFilters,
    Overview,
    OverviewContent,
    OverviewType,
    SeedPayload,
    parse_matrix_filters,
    utcnow,
)
from careermatrix.core.stores import MatrixStore, create_matrix_store_from_env
from careermatrix.engine.assembler import (
    MatrixGrid,
    assemble_matrix,
    group_criteria_by_category,
    group_levels_by_title,
    next_level_rank,
    order_job_levels,
)
from careermatrix.engine.filters import filter_capabilities
from careermatrix.engine.references import join_reference
from careermatrix.seeding import SeedReport, seed_store

logger = logging.getLogger(__name__)

T = TypeVar("T")
FiltersArg = Union[MatrixFilters, Mapping[str, Any], None]

SOURCE_STORE = "store"
SOURCE_FALLBACK = "fallback"


def sort_edit_history(entries: Iterable[EditHistoryEntry]) -> List[EditHistoryEntry]:
    """Newest first by calendar date, then by creation time, then by id."""
    return sorted(entries, key=lambda entry: (entry.date, entry.created_at, entry.id), reverse=True)


def overview_from_content(items: Iterable[OverviewContent]) -> Overview:
    ordered = sorted(items, key=lambda item: (item.order, item.id))
    return Overview(
        goals=[item.content for item in ordered if item.type == OverviewType.GOAL],
        principles=[item.content for item in ordered if item.type == OverviewType.PRINCIPLE],
    )


class MatrixService:
    """
    Single entry point for reads and administrative writes of the career matrix.

    Reads go to the primary store; when it raises StoreUnavailableError and a
    fallback provider is configured, the fallback snapshot is served instead and
    tagged ``source="fallback"``. Writes always go to the primary store.
    """

    def __init__(
        self,
        store: MatrixStore,
        *,
        fallback: Optional[FallbackDataProvider] = None,
        reject_duplicate_capabilities: bool = True,
    ) -> None:
        self.store = store
        self.fallback = fallback
        self.reject_duplicate_capabilities = reject_duplicate_capabilities

    @classmethod
    def from_config(cls, matrix_config: Optional[MatrixConfig] = None) -> "MatrixService":
        cfg = matrix_config or MatrixConfig.from_env()
        fallback = SampleMatrixFallback() if cfg.policy.fallback_enabled else None
        return cls(
            create_matrix_store_from_env(cfg),
            fallback=fallback,
            reject_duplicate_capabilities=cfg.policy.reject_duplicate_capabilities,
        )

    # ---------------------- Reads ----------------------

    def _read(self, reader: Callable[[Any], T]) -> Tuple[T, str]:
        try:
            return reader(self.store), SOURCE_STORE
        except StoreUnavailableError as exc:
            if self.fallback is None:
                raise
            logger.warning("Matrix store unavailable (%s); serving '%s' fallback data", exc, self.fallback.name)
            return reader(self.fallback.store()), SOURCE_FALLBACK

    def get_job_levels(self) -> List[JobLevel]:
        levels, _ = self._read(lambda store: store.list_job_levels())
        return order_job_levels(levels)

    def get_criteria(self) -> List[Criterion]:
        criteria, _ = self._read(lambda store: store.list_criteria())
        return criteria

    def get_edit_history(self) -> List[EditHistoryEntry]:
        entries, _ = self._read(lambda store: store.list_edit_history())
        return sort_edit_history(entries)

    def get_overview_content(self) -> Overview:
        items, _ = self._read(lambda store: store.list_overview_content())
        return overview_from_content(items)

    def get_capabilities(self, filters: FiltersArg = None) -> List[Capability]:
        parsed = parse_matrix_filters(filters)
        (levels, criteria, capabilities), _ = self._read(
            lambda store: (store.list_job_levels(), store.list_criteria(), store.list_capabilities())
        )
        return filter_capabilities(capabilities, criteria, parsed, job_level_ids=[level.id for level in levels])

    def search_capabilities(self, query: str, filters: FiltersArg = None) -> List[Capability]:
        if not isinstance(query, str):
            raise MalformedFilterError(f"Search query must be a string, got {type(query).__name__}")
        parsed = parse_matrix_filters(filters) or MatrixFilters()
        return self.get_capabilities(parsed.model_copy(update={"search": query}))

    def get_matrix_data(self, filters: FiltersArg = None) -> MatrixData:
        parsed = parse_matrix_filters(filters)
        snapshot, source = self._read(
            lambda store: (
                store.list_job_levels(),
                store.list_criteria(),
                store.list_capabilities(),
                store.list_edit_history(),
                store.list_overview_content(),
            )
        )
        levels, criteria, capabilities, history, overview_items = snapshot
        return MatrixData(
            job_levels=order_job_levels(levels),
            criteria=criteria,
            capabilities=filter_capabilities(
                capabilities, criteria, parsed, job_level_ids=[level.id for level in levels]
            ),
            edit_history=sort_edit_history(history),
            overview=overview_from_content(overview_items),
            source=source,
        )

    def get_matrix_grid(self, filters: FiltersArg = None) -> MatrixGrid:
        parsed = parse_matrix_filters(filters)
        data = self.get_matrix_data(parsed)
        return assemble_matrix(
            data.capabilities,
            data.criteria,
            data.job_levels,
            levels=parsed.levels if parsed is not None else None,
        )

    def get_grouped_criteria(self) -> Dict[str, List[Criterion]]:
        return group_criteria_by_category(self.get_criteria())

    def get_grouped_levels(self) -> Dict[str, List[JobLevel]]:
        return group_levels_by_title(self.get_job_levels())

    # ---------------------- Writes ----------------------

    def create_job_level(self, data: Union[CreateJobLevelInput, Mapping[str, Any]]) -> JobLevel:
        payload = CreateJobLevelInput.model_validate(data)
        if self.store.get_job_level(payload.id) is not None:
            raise DuplicateIdError("JobLevel", payload.id)
        rank = payload.rank if payload.rank is not None else next_level_rank(self.store.list_job_levels())
        level = self.store.add_job_level(
            JobLevel(
                id=payload.id,
                name=payload.name,
                primary_title=payload.primary_title,
                description_summary=payload.description_summary,
                trajectory_note=payload.trajectory_note,
                rank=rank,
                created_at=utcnow(),
            )
        )
        logger.info("Created job level %s (rank=%s)", level.id, level.rank)
        return level

    def create_criterion(self, data: Union[CreateCriterionInput, Mapping[str, Any]]) -> Criterion:
        payload = CreateCriterionInput.model_validate(data)
        if self.store.get_criterion(payload.id) is not None:
            raise DuplicateIdError("Criterion", payload.id)
        criterion = self.store.add_criterion(
            Criterion(id=payload.id, category=payload.category, sub_category=payload.sub_category, created_at=utcnow())
        )
        logger.info("Created criterion %s (%s / %s)", criterion.id, criterion.category, criterion.sub_category)
        return criterion

    def create_capability(self, data: Union[CreateCapabilityInput, Mapping[str, Any]]) -> Capability:
        payload = CreateCapabilityInput.model_validate(data)
        if self.store.get_job_level(payload.job_level_id) is None:
            raise NotFoundReferenceError("JobLevel", payload.job_level_id)
        if self.store.get_criterion(payload.criterion_id) is None:
            raise NotFoundReferenceError("Criterion", payload.criterion_id)

        description = payload.description
        if payload.references_capability_id is not None:
            base = self.store.get_capability(payload.references_capability_id)
            if base is None:
                raise NotFoundReferenceError("Capability", payload.references_capability_id)
            if base.criterion_id != payload.criterion_id:
                raise NotFoundReferenceError(
                    "Capability",
                    payload.references_capability_id,
                    f"Capability with id '{base.id}' belongs to criterion '{base.criterion_id}', "
                    f"not '{payload.criterion_id}'",
                )
            description = join_reference(base.description, payload.description)

        capability = self.store.add_capability(
            job_level_id=payload.job_level_id,
            criterion_id=payload.criterion_id,
            description=description,
            references_capability_id=payload.references_capability_id,
            unique_pair=self.reject_duplicate_capabilities,
        )
        logger.info(
            "Created capability %s (job_level_id=%s criterion_id=%s)",
            capability.id,
            capability.job_level_id,
            capability.criterion_id,
        )
        return capability

    def create_edit_history_entry(
        self, data: Union[CreateEditHistoryEntryInput, Mapping[str, Any]]
    ) -> EditHistoryEntry:
        payload = CreateEditHistoryEntryInput.model_validate(data)
        return self.store.add_edit_history_entry(date=payload.date, description=payload.description)

    def create_overview_content(
        self, data: Union[CreateOverviewContentInput, Mapping[str, Any]]
    ) -> OverviewContent:
        payload = CreateOverviewContentInput.model_validate(data)
        return self.store.add_overview_content(type=payload.type, content=payload.content, order=payload.order)

    def seed_data(self, payload: Union[SeedPayload, Mapping[str, Any]]) -> SeedReport:
        return seed_store(self.store, payload)

    # ---------------------- Diagnostics ----------------------

    def diagnostics(self) -> Dict[str, Any]:
        return {
            "store": {"mode": "sqlite" if getattr(self.store, "db_path", None) else "inmem"},
            "fallback": {
                "configured": self.fallback is not None,
                "name": getattr(self.fallback, "name", None),
            },
            "policy": {"reject_duplicate_capabilities": self.reject_duplicate_capabilities},
        }

    def readiness(self) -> Dict[str, Any]:
        try:
            self.store.ping()
            return {"ready": True, "counts": self.store.counts()}
        except StoreUnavailableError as exc:
            return {"ready": False, "error": str(exc)}

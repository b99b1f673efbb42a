from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Optional

from careermatrix.core.models import Capability, Criterion, MatrixFilters


def _predicate_set(values: Optional[Iterable[str]]) -> Optional[FrozenSet[str]]:
    if not values:
        return None
    return frozenset(values)


def normalized_search(search: Optional[str]) -> Optional[str]:
    """Trimmed, lower-cased search text; None when there is nothing to match."""
    term = (search or "").strip()
    return term.lower() if term else None


def filter_capabilities(
    capabilities: Iterable[Capability],
    criteria: Iterable[Criterion],
    filters: Optional[MatrixFilters] = None,
    *,
    job_level_ids: Optional[Iterable[str]] = None,
) -> List[Capability]:
    """
    Returns the capabilities that satisfy every supplied predicate.

    Predicates combine with AND; each list predicate is a set-membership test.
    Absent or empty predicates do not restrict. Capabilities whose criterion is
    unknown are dropped, as are those with an unknown job level when
    ``job_level_ids`` is given. Input order is preserved.
    """
    filters = filters or MatrixFilters()
    criteria_by_id: Dict[str, Criterion] = {criterion.id: criterion for criterion in criteria}
    known_levels = frozenset(job_level_ids) if job_level_ids is not None else None

    levels = _predicate_set(filters.levels)
    categories = _predicate_set(filters.categories)
    sub_categories = _predicate_set(filters.sub_categories)
    search = normalized_search(filters.search)

    matched: List[Capability] = []
    for capability in capabilities:
        criterion = criteria_by_id.get(capability.criterion_id)
        if criterion is None:
            continue
        if known_levels is not None and capability.job_level_id not in known_levels:
            continue
        if levels is not None and capability.job_level_id not in levels:
            continue
        if categories is not None and criterion.category not in categories:
            continue
        if sub_categories is not None and criterion.sub_category not in sub_categories:
            continue
        if search is not None and search not in capability.description.lower():
            continue
        matched.append(capability)
    return matched

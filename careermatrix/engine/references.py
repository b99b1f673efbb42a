"""
Expansion of the "As <Level>" shorthand used in capability descriptions.

A description such as ``"As L3, plus mentors others"`` means "the L3 text for the
same criterion, followed by an addendum". Seeding rewrites such descriptions once,
so the stored text is always the literal expanded form.

Only single-hop references are expanded: the lookup table holds descriptions that
contain no reference themselves. Anything that cannot be expanded is left as
written and reported as an UnresolvedReference.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from careermatrix.core.models import JobLevel

logger = logging.getLogger(__name__)

# "As L3", "As TL1", "As L1-L2", "As L1 / L2"; the token is matched greedily so
# "As L1-L2" never reads as "As L1" and "As L12" never as "As L1".
REFERENCE_PATTERN = re.compile(
    r"\bAs (?P<level>[A-Z]{1,3}\d+(?:(?:-|\s*/\s*)[A-Z]{1,3}\d+)*)(?![A-Za-z0-9])"
)

REASON_UNKNOWN_LEVEL = "unknown_level"
REASON_MISSING_BASE = "missing_base"


def level_key(name: str) -> str:
    """Lower-cased alphanumeric runs joined by '-': ``"L1 / L2" -> "l1-l2"``."""
    return "-".join(re.findall(r"[a-z0-9]+", str(name or "").lower()))


def find_references(description: str) -> List[str]:
    return [match.group("level") for match in REFERENCE_PATTERN.finditer(description or "")]


def has_reference(description: str) -> bool:
    return REFERENCE_PATTERN.search(description or "") is not None


def build_level_index(job_levels: Iterable[JobLevel]) -> Dict[str, str]:
    index: Dict[str, str] = {}
    for level in job_levels:
        index.setdefault(level_key(level.id), level.id)
    # Display names win over ids when both derive the same key.
    for level in job_levels:
        index[level_key(level.name)] = level.id
    return index


def join_reference(base_description: str, addendum: str) -> str:
    """Literal text of an explicit reference: the base text followed by the addendum."""
    extra = (addendum or "").strip()
    if not extra:
        return base_description
    if extra[0] in ",;:.":
        return f"{base_description}{extra}"
    return f"{base_description}, {extra}"


class UnresolvedReference(BaseModel):
    index: int
    job_level_id: str
    criterion_id: str
    token: str
    reason: str


class ResolutionResult(BaseModel):
    items: List[Any] = Field(default_factory=list)
    # Per item: the (job_level_id, criterion_id) of the first expanded reference.
    sources: List[Optional[Tuple[str, str]]] = Field(default_factory=list)
    unresolved: List[UnresolvedReference] = Field(default_factory=list)

    @property
    def resolved_count(self) -> int:
        return sum(1 for source in self.sources if source is not None)


def _expand(
    index: int,
    item: Any,
    base: Dict[Tuple[str, str], str],
    level_index: Optional[Dict[str, str]],
) -> Tuple[str, Optional[Tuple[str, str]], List[UnresolvedReference]]:
    description = item.description
    criterion_id = item.criterion_id
    parts: List[str] = []
    unresolved: List[UnresolvedReference] = []
    source: Optional[Tuple[str, str]] = None
    cursor = 0

    for match in REFERENCE_PATTERN.finditer(description):
        parts.append(description[cursor:match.start()])
        cursor = match.end()
        token = match.group("level")
        key = level_key(token)
        level_id = key if level_index is None else level_index.get(key)

        replacement: Optional[str] = None
        reason = REASON_UNKNOWN_LEVEL
        if level_id is not None:
            replacement = base.get((level_id, criterion_id))
            reason = REASON_MISSING_BASE

        if replacement is None:
            parts.append(match.group(0))
            unresolved.append(
                UnresolvedReference(
                    index=index,
                    job_level_id=item.job_level_id,
                    criterion_id=criterion_id,
                    token=token,
                    reason=reason,
                )
            )
            continue

        parts.append(replacement)
        if source is None:
            source = (str(level_id), criterion_id)

    parts.append(description[cursor:])
    return "".join(parts), source, unresolved


def resolve_capability_references(
    capabilities: Sequence[Any],
    job_levels: Optional[Iterable[JobLevel]] = None,
    known_bases: Optional[Iterable[Any]] = None,
) -> ResolutionResult:
    """
    Expands "As <Level>" references across a batch of capability rows.

    Items only need ``job_level_id``, ``criterion_id`` and ``description``
    attributes and a pydantic ``model_copy``. Items whose text changes are
    returned as copies; the input sequence is left untouched.

    When ``job_levels`` is given, tokens are matched against level names (and
    ids) through ``level_key``; otherwise the token key is taken as the level id.

    ``known_bases`` are capabilities outside the batch (typically already
    stored) that may serve as reference targets; batch items override them.
    """
    level_index = build_level_index(list(job_levels)) if job_levels is not None else None

    base: Dict[Tuple[str, str], str] = {}
    for item in list(known_bases or ()) + list(capabilities):
        if not has_reference(item.description):
            base[(item.job_level_id, item.criterion_id)] = item.description

    result = ResolutionResult()
    for index, item in enumerate(capabilities):
        if not has_reference(item.description):
            result.items.append(item)
            result.sources.append(None)
            continue

        description, source, unresolved = _expand(index, item, base, level_index)
        for ref in unresolved:
            logger.warning(
                "Unresolved capability reference 'As %s' (job_level_id=%s criterion_id=%s reason=%s); keeping literal text",
                ref.token,
                ref.job_level_id,
                ref.criterion_id,
                ref.reason,
            )
        result.items.append(item.model_copy(update={"description": description}))
        result.sources.append(source)
        result.unresolved.extend(unresolved)

    return result

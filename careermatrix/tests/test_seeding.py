import logging

import pytest

from careermatrix.core.errors import DuplicateIdError, NotFoundReferenceError
from careermatrix.core.fallback import load_sample_matrix_payload
from careermatrix.core.models import OverviewType
from careermatrix.core.stores import InMemoryMatrixStore, SQLiteMatrixStore
from careermatrix.seeding import seed_store

L1_L2_EXPERTISE = (
    "Has sufficient practical and foundational knowledge to be able to understand and implement "
    "features with guidance. Learns best-practices and tools"
)
L5_EXPERTISE = (
    "A domain expert. Able to contribute across many teams areas of expertise. "
    "Follows relevant research Raises the bar of what we can achieve."
)


def _capability(store, job_level_id, criterion_id):
    matches = [
        c for c in store.list_capabilities() if c.job_level_id == job_level_id and c.criterion_id == criterion_id
    ]
    assert len(matches) == 1
    return matches[0]


def _minimal_payload(**overrides):
    payload = {
        "jobLevels": [
            {"id": "l3", "name": "L3", "primary_title": "Engineer", "description_summary": "Mid"},
            {"id": "l4", "name": "L4", "primary_title": "Engineer", "description_summary": "Senior"},
        ],
        "criteria": [{"id": "craft-scope", "category": "Craft", "sub_category": "Scope"}],
        "capabilities": [
            {"job_level_id": "l3", "criterion_id": "craft-scope", "description": "Owns features"},
            {"job_level_id": "l4", "criterion_id": "craft-scope", "description": "As L3, plus systems"},
        ],
    }
    payload.update(overrides)
    return payload


def test_seed_sample_matrix_expands_references():
    store = InMemoryMatrixStore()

    report = seed_store(store, load_sample_matrix_payload())

    assert report.job_levels == 6
    assert report.criteria == 7
    assert report.capabilities == 17
    assert report.resolved_references == 4
    assert report.unresolved_references == []
    assert report.duplicate_pairs == []
    assert report.edit_history == 5
    assert report.overview_content == 4

    base = _capability(store, "l1-l2", "craft-technical-expertise")
    l3 = _capability(store, "l3", "craft-technical-expertise")
    assert l3.description == L1_L2_EXPERTISE
    assert l3.references_capability_id == base.id
    assert _capability(store, "tl1", "craft-technical-expertise").description == L5_EXPERTISE
    assert _capability(store, "em1", "craft-technical-expertise").description == L5_EXPERTISE

    em1_comm = _capability(store, "em1", "collaboration-communication-skills")
    assert em1_comm.description.startswith("Demonstrates a mastery of communications")
    assert em1_comm.description.endswith(
        "or stakeholders. Is skilled at navigating interpersonal issues and demonstrates high emotional intelligence."
    )
    assert not any(c.description.startswith("As ") for c in store.list_capabilities())


def test_seed_assigns_sequential_ranks_after_existing_levels():
    store = InMemoryMatrixStore()
    seed_store(store, _minimal_payload())
    seed_store(
        store,
        {
            "jobLevels": [
                {"id": "l5", "name": "L5", "primary_title": "Engineer", "description_summary": "Expert"},
            ]
        },
    )

    ranks = {level.id: level.rank for level in store.list_job_levels()}
    assert ranks == {"l3": 0, "l4": 1, "l5": 2}


def test_seed_orders_goals_before_principles():
    store = InMemoryMatrixStore()
    seed_store(store, {"overview": {"goals": ["g1", "g2"], "principles": ["p1"]}})

    items = sorted(store.list_overview_content(), key=lambda item: item.order)
    assert [(item.type, item.content, item.order) for item in items] == [
        (OverviewType.GOAL, "g1", 1),
        (OverviewType.GOAL, "g2", 2),
        (OverviewType.PRINCIPLE, "p1", 3),
    ]


def test_seed_rejects_dangling_references_before_any_write():
    store = InMemoryMatrixStore()
    payload = _minimal_payload(
        capabilities=[{"job_level_id": "l3", "criterion_id": "missing", "description": "x"}]
    )

    with pytest.raises(NotFoundReferenceError):
        seed_store(store, payload)

    assert store.counts() == {
        "job_levels": 0,
        "criteria": 0,
        "capabilities": 0,
        "edit_history": 0,
        "overview_content": 0,
    }


def test_seed_rejects_duplicate_ids():
    store = InMemoryMatrixStore()
    seed_store(store, _minimal_payload())

    with pytest.raises(DuplicateIdError):
        seed_store(store, _minimal_payload(capabilities=[]))

    duplicated = _minimal_payload(criteria=[
        {"id": "craft-scope", "category": "Craft", "sub_category": "Scope"},
        {"id": "craft-scope", "category": "Craft", "sub_category": "Scope again"},
    ])
    with pytest.raises(DuplicateIdError):
        seed_store(InMemoryMatrixStore(), duplicated)


def test_seed_tolerates_duplicate_pairs_with_warning(caplog):
    store = InMemoryMatrixStore()
    payload = _minimal_payload(
        capabilities=[
            {"job_level_id": "l3", "criterion_id": "craft-scope", "description": "first"},
            {"job_level_id": "l3", "criterion_id": "craft-scope", "description": "second"},
        ]
    )

    with caplog.at_level(logging.WARNING, logger="careermatrix.seeding"):
        report = seed_store(store, payload)

    assert report.duplicate_pairs == [("l3", "craft-scope")]
    assert len(store.list_capabilities()) == 2
    assert "more than one capability" in caplog.text


def test_seed_reports_unresolved_references_and_keeps_text():
    store = InMemoryMatrixStore()
    payload = _minimal_payload(
        capabilities=[{"job_level_id": "l4", "criterion_id": "craft-scope", "description": "As L9"}]
    )

    report = seed_store(store, payload)

    assert [ref.token for ref in report.unresolved_references] == ["L9"]
    stored = store.list_capabilities()[0]
    assert stored.description == "As L9"
    assert stored.references_capability_id is None


def test_seed_into_sqlite_store(tmp_path):
    store = SQLiteMatrixStore(str(tmp_path / "careermatrix.db"))

    report = seed_store(store, _minimal_payload())

    assert report.capabilities == 2
    l4 = _capability(store, "l4", "craft-scope")
    assert l4.description == "Owns features, plus systems"
    assert l4.references_capability_id == _capability(store, "l3", "craft-scope").id


def test_second_seed_resolves_references_against_stored_capabilities():
    store = InMemoryMatrixStore()
    seed_store(store, _minimal_payload(capabilities=[
        {"job_level_id": "l3", "criterion_id": "craft-scope", "description": "Owns features"},
    ]))

    report = seed_store(
        store,
        {
            "jobLevels": [{"id": "l5", "name": "L5", "primary_title": "Engineer", "description_summary": "Expert"}],
            "capabilities": [
                {"job_level_id": "l5", "criterion_id": "craft-scope", "description": "As L3, plus mentors others"},
            ],
        },
    )

    assert report.unresolved_references == []
    assert report.resolved_references == 1
    l5 = _capability(store, "l5", "craft-scope")
    assert l5.description == "Owns features, plus mentors others"
    assert l5.references_capability_id == _capability(store, "l3", "craft-scope").id


def test_stored_expanded_capabilities_are_not_reference_targets():
    store = InMemoryMatrixStore()
    seed_store(store, _minimal_payload())

    report = seed_store(
        store,
        {
            "jobLevels": [{"id": "l5", "name": "L5", "primary_title": "Engineer", "description_summary": "Expert"}],
            "capabilities": [{"job_level_id": "l5", "criterion_id": "craft-scope", "description": "As L4"}],
        },
    )

    assert [ref.reason for ref in report.unresolved_references] == ["missing_base"]
    assert _capability(store, "l5", "craft-scope").description == "As L4"

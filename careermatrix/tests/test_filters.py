from careermatrix.core.models import Capability, Criterion, MatrixFilters
from careermatrix.engine.filters import filter_capabilities, normalized_search

CRITERIA = [
    Criterion(id="craft-scope", category="Craft", sub_category="Scope"),
    Criterion(id="craft-tech", category="Craft", sub_category="Technical Expertise"),
    Criterion(id="impact-planning", category="Impact", sub_category="Planning"),
]

CAPABILITIES = [
    Capability(id=1, job_level_id="l3", criterion_id="craft-scope", description="Medium-to-Large Changes"),
    Capability(id=2, job_level_id="l5", criterion_id="craft-scope", description="Designs systems spanning teams"),
    Capability(id=3, job_level_id="l5", criterion_id="craft-tech", description="A domain EXPERT"),
    Capability(id=4, job_level_id="l3", criterion_id="impact-planning", description="Gives reliable estimates"),
    Capability(id=5, job_level_id="l5", criterion_id="impact-planning", description="Writes specs for large systems"),
]


def _ids(items):
    return [item.id for item in items]


def test_no_filters_returns_everything_in_order():
    assert _ids(filter_capabilities(CAPABILITIES, CRITERIA)) == [1, 2, 3, 4, 5]
    assert _ids(filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters())) == [1, 2, 3, 4, 5]


def test_empty_lists_and_blank_search_do_not_restrict():
    filters = MatrixFilters(levels=[], categories=[], sub_categories=[], search="   ")
    assert _ids(filter_capabilities(CAPABILITIES, CRITERIA, filters)) == [1, 2, 3, 4, 5]


def test_level_filter():
    assert _ids(filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(levels=["l5"]))) == [2, 3, 5]


def test_category_and_sub_category_filters():
    assert _ids(filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(categories=["Impact"]))) == [4, 5]
    filters = MatrixFilters(subCategories=["Technical Expertise"])
    assert _ids(filter_capabilities(CAPABILITIES, CRITERIA, filters)) == [3]


def test_predicates_combine_with_and():
    filters = MatrixFilters(levels=["l5"], categories=["Craft"], search="systems")
    assert _ids(filter_capabilities(CAPABILITIES, CRITERIA, filters)) == [2]


def test_adding_a_predicate_never_grows_the_result():
    broad = filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(categories=["Craft"]))
    narrow = filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(categories=["Craft"], levels=["l3"]))
    assert set(_ids(narrow)) <= set(_ids(broad))
    assert _ids(narrow) == [1]


def test_search_is_case_insensitive_substring():
    assert _ids(filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(search="expert"))) == [3]
    assert _ids(filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(search="  SYSTEMS "))) == [2, 5]


def test_unknown_values_match_nothing():
    assert filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(levels=["l99"])) == []
    assert filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(categories=["Nope"])) == []


def test_capabilities_with_unknown_criterion_or_level_are_dropped():
    orphan = Capability(id=9, job_level_id="l3", criterion_id="missing", description="orphan")
    ghost = Capability(id=10, job_level_id="ghost", criterion_id="craft-scope", description="ghost level")
    items = CAPABILITIES + [orphan, ghost]

    assert 9 not in _ids(filter_capabilities(items, CRITERIA))
    assert 10 in _ids(filter_capabilities(items, CRITERIA))
    assert 10 not in _ids(filter_capabilities(items, CRITERIA, job_level_ids=["l3", "l5"]))


def test_normalized_search():
    assert normalized_search(None) is None
    assert normalized_search("  ") is None
    assert normalized_search(" Foo ") == "foo"


def test_and_composition_is_the_intersection_of_single_predicates():
    by_level = set(_ids(filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(levels=["l5"]))))
    by_category = set(_ids(filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(categories=["Craft"]))))
    combined = filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(levels=["l5"], categories=["Craft"]))

    assert set(_ids(combined)) == by_level & by_category
    assert _ids(combined) == [2, 3]


def test_search_result_does_not_depend_on_query_case():
    upper = filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(search="EXPERT"))
    lower = filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(search="expert"))
    mixed = filter_capabilities(CAPABILITIES, CRITERIA, MatrixFilters(search="ExPeRt"))

    assert upper == lower == mixed
    assert _ids(upper) == [3]

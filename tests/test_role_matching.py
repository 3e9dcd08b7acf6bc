import pytest
from pydantic import ValidationError

from capacity_import.models import RoleType, RoleTypeMapping, RoleTypeSuggestion
from capacity_import.role_matching import (
    auto_map_unmapped_roles,
    create_default_mapping,
    find_role_type_by_name,
    mapping_coverage,
    score_category_keywords,
    score_exact_alias,
    score_token_overlap,
    suggest_mappings,
    tokenize,
    unmapped_job_titles,
)
from tests.helpers.reference import mapping, role_catalog


def test_senior_software_engineer_matches_via_token_overlap():
    suggestions = suggest_mappings("Senior Software Engineer", role_catalog())

    top = suggestions[0]
    assert top.role_type_name == "Software Engineer"
    assert top.confidence >= 0.8
    assert "token overlap" in top.reasoning
    assert "Matched via token overlap with 'Software Engineer'" in top.reasoning


def test_inactive_role_types_are_never_suggested():
    # The inactive type lists the exact title as an alias.
    names = [s.role_type_name for s in suggest_mappings("Senior Software Engineer", role_catalog())]
    assert "Software Developer" not in names


def test_suggestions_are_ranked_and_limited():
    suggestions = suggest_mappings("Senior Software Engineer", role_catalog())

    assert [s.role_type_name for s in suggestions] == ["Software Engineer", "QA Engineer"]
    assert suggestions[0].confidence > suggestions[1].confidence
    assert suggest_mappings("Senior Software Engineer", role_catalog(), limit=1)[0].role_type_id == "rt-swe"
    assert suggest_mappings("   ", role_catalog()) == []


def test_individual_signals():
    swe = role_catalog()[0]

    assert score_exact_alias("  engineer ", swe) == (1.0, "Engineer")
    assert score_exact_alias("Engineering Lead", swe) == (0.0, None)

    score, label = score_token_overlap("Senior Software Engineer", swe)
    assert label == "Software Engineer"
    assert score == pytest.approx(0.9)
    assert score_token_overlap("Barista", swe) == (0.0, None)

    assert score_category_keywords("Backend Developer", "engineering") == pytest.approx(0.45)
    assert score_category_keywords("Senior Backend Developer", "engineering") == pytest.approx(0.6)
    assert score_category_keywords("Senior Director", "management") == pytest.approx(0.45)
    assert score_category_keywords("Machine Learning Specialist", "data-science") == pytest.approx(0.45)
    assert score_category_keywords("Barista", "other") == 0.0


def test_hyphenated_titles_split_into_words():
    frontend = RoleType(id="rt-fe", name="Front End Developer", category="engineering")

    assert tokenize("Front-End Developer") == ["front", "end", "developer"]
    assert score_token_overlap("Front-End Developer", frontend) == (
        pytest.approx(1.0),
        "Front End Developer",
    )
    assert score_category_keywords("Full-Stack Specialist", "engineering") == pytest.approx(0.45)

    result = auto_map_unmapped_roles(["Front-End Developer"], [frontend], [], 0.7)
    assert (result.mapped, result.skipped) == (1, 0)
    assert result.mappings[0].role_type_id == "rt-fe"


def test_similar_existing_mapping_is_a_signal():
    catalog = [RoleType(id="rt-ins", name="Insights Specialist", category="other")]
    existing = [mapping("Data Analyst", "rt-ins")]

    [s] = suggest_mappings("Senior Data Analyst", catalog, existing)

    assert s.confidence == pytest.approx(0.75)
    assert s.similar_job_titles == ("Data Analyst",)
    assert "Similar job titles already mapped" in s.reasoning


def _stub_suggest(scores):
    def suggest(title, catalog, mappings):
        conf = scores.get(title)
        if conf is None:
            return []
        return [
            RoleTypeSuggestion(
                role_type_id="rt-swe",
                role_type_name="Software Engineer",
                confidence=conf,
                reasoning="stubbed",
            )
        ]

    return suggest


def test_auto_map_threshold_counts_add_up():
    titles = ["Staff Engineer", "Mystery Role", "staff engineer", "Existing Title", "Nothing"]
    existing = [mapping("Existing Title", "rt-pm")]

    result = auto_map_unmapped_roles(
        titles,
        role_catalog(),
        existing,
        threshold=0.7,
        suggest=_stub_suggest({"Staff Engineer": 0.75, "Mystery Role": 0.5}),
    )

    assert result.mapped == 1
    assert result.skipped == 2
    assert result.mapped + result.skipped == 3
    [m] = result.mappings
    assert (m.job_title, m.role_type_id, m.confidence, m.mapping_source, m.notes) == (
        "Staff Engineer",
        "rt-swe",
        0.75,
        "ai-suggested",
        "stubbed",
    )


def test_auto_map_with_default_matcher():
    result = auto_map_unmapped_roles(["Senior Software Engineer", "Barista"], role_catalog(), [], 0.7)

    assert (result.mapped, result.skipped) == (1, 1)
    assert result.mappings[0].role_type_id == "rt-swe"


def test_mapping_maintenance_helpers():
    existing = [mapping("c", "rt-pm")]

    assert unmapped_job_titles(["A", "b", "B", "a", "a", "C"], existing) == [("A", 3), ("b", 2)]

    coverage = mapping_coverage(["A", "a", "C"], existing)
    assert (coverage.total, coverage.mapped, coverage.ratio) == (2, 1, 0.5)
    assert mapping_coverage([], existing).ratio == 1.0

    default = create_default_mapping("Ops Person")
    assert (default.role_type_id, default.confidence, default.mapping_source) == (
        "other",
        0.5,
        "import-default",
    )

    assert find_role_type_by_name("qa engineer", role_catalog()).id == "rt-qa"
    assert find_role_type_by_name("Chef", role_catalog()) is None


def test_mapping_model_validates_confidence_and_source():
    with pytest.raises(ValidationError):
        RoleTypeMapping(id="x", job_title="A", role_type_id="r", confidence=1.5, mapping_source="manual")
    with pytest.raises(ValidationError):
        RoleTypeMapping(id="x", job_title="A", role_type_id="r", confidence=0.5, mapping_source="guess")
    with pytest.raises(ValidationError):
        RoleTypeMapping(id="x", job_title="  ", role_type_id="r", confidence=0.5, mapping_source="manual")

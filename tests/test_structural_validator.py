"""
Tests for structural validation of extraction results.

Covers both shapes, free-text category labels and the low-structure cutoff.
"""

from app.core.extraction import empty_extraction
from app.core.structural_validator import is_official_category, validate_structure


def _credit(title="Heat", role="Neil", year="1995", director="Michael Mann", **extra):
    credit = {"title": title, "role": role, "year": year, "director": director, "attached_media": []}
    credit.update(extra)
    return credit


def test_complete_hierarchical_record_scores_full_marks():
    data = {
        "resume": [{"category": "Film", "category_id": "c1", "credits": [_credit()]}],
        "resume_show_years": True,
    }
    report = validate_structure(data)

    assert report.shape == "hierarchical"
    assert report.structural_score == 100
    assert report.category_assignment == 100
    assert report.completeness == 100
    assert report.overall == 100
    assert report.missing_fields == []


def test_invalid_credit_lowers_structural_score():
    data = {
        "resume": [{"category": "Film", "credits": [_credit(), {"title": "Ran"}]}],
        "resume_show_years": True,
    }
    report = validate_structure(data)

    # 10 bonus + 100% categories * 0.4 + 50% credits * 0.5
    assert report.structural_score == 75
    assert "role in Film category" in report.missing_fields


def test_empty_record_is_structurally_present_but_empty():
    report = validate_structure(empty_extraction())

    assert report.shape == "hierarchical"
    assert report.structural_score == 50
    assert report.category_assignment == 0
    assert report.overall == 20


def test_unrecognised_shape_scores_zero():
    report = validate_structure({"foo": "bar"})

    assert report.shape == "unknown"
    assert report.structural_score == 0
    assert report.overall == 0
    assert report.category_assignment == 0


def test_non_dict_input_is_unknown():
    assert validate_structure(["not", "a", "record"]).shape == "unknown"
    assert validate_structure(None).overall == 0


def test_free_text_category_labels_are_tolerated():
    data = {
        "resume": [
            {"category": "Short Films", "credits": [_credit()]},
            {"category": "Modelling", "credits": [_credit(title="Vogue")]},
        ],
        "resume_show_years": False,
    }
    report = validate_structure(data)

    assert report.structural_score == 100
    assert report.category_assignment == 50


def test_official_category_matching_is_partial_and_case_insensitive():
    assert is_official_category("feature FILM")
    assert is_official_category("Musical Theatre")
    assert not is_official_category("Modelling")
    assert not is_official_category("")
    assert not is_official_category(None)


def test_flat_record_uses_type_for_category_assignment():
    data = {
        "credits": [
            _credit(title="Ad", role="Lead", type="Commercial", link="https://example.com/ad"),
            _credit(title="Gig", role="Host", type="Wedding"),
        ]
    }
    report = validate_structure(data)

    assert report.shape == "flat"
    assert report.structural_score == 100
    assert report.category_assignment == 50
    assert report.completeness == 100


def test_flat_record_reports_missing_fields_by_title():
    data = {"credits": [_credit(title="Ad", director="", type="Commercial")]}
    report = validate_structure(data)

    assert 'director in credit titled "Ad"' in report.missing_fields
    assert report.completeness == 80


def test_missing_field_list_is_capped_and_unique():
    credits = [{"title": f"T{i}", "role": "R"} for i in range(20)]
    report = validate_structure({"resume": [{"category": "Film", "credits": credits}]})

    assert len(report.missing_fields) <= 10
    assert len(report.missing_fields) == len(set(report.missing_fields))


def test_low_structure_skips_remaining_checks():
    data = {"resume": [{"category": "Film"}, {"credits": []}], "resume_show_years": True}
    report = validate_structure(data)

    assert report.structural_score < 50
    assert report.overall == report.structural_score
    assert report.category_assignment == 0

import pytest

from app.core.consensus import BaselineStore, ConsensusMatcher
from app.core.consensus_builder import (
    build_consensus,
    consistent_id,
    find_consensus_value,
    group_similar_credits,
)


def extraction(role="Neil", title="Heat", show_years=True):
    return {
        "resume": [
            {
                "category": "Film",
                "credits": [{"title": title, "role": role, "year": "1995", "director": "Michael Mann"}],
            }
        ],
        "resume_show_years": show_years,
    }


def three_extractions():
    return [
        extraction(),
        extraction(role="neil"),
        extraction(role="Chris", title="Heat!", show_years=False),
    ]


def test_majority_vote_keeps_original_spelling():
    entry = build_consensus(three_extractions())
    credit = entry.consensus["resume"][0]["credits"][0]

    assert credit["title"] == "Heat"
    assert credit["role"] == "Neil"
    assert credit["year"] == "1995"
    assert credit["attached_media"] == []
    assert entry.consensus["resume_show_years"] is True


def test_field_confidence_is_agreement_ratio():
    fields = build_consensus(three_extractions()).confidence.fields

    assert fields["Film.credits[0].role"] == pytest.approx(2 / 3)
    assert fields["Film.credits[0].year"] == 1.0
    assert fields["Film.category"] == 1.0
    assert fields["resume_show_years"] == pytest.approx(2 / 3)


def test_overall_strength_and_metadata():
    entry = build_consensus(three_extractions())

    assert entry.confidence.overall == pytest.approx(0.875, abs=0.01)
    assert entry.metadata["provider_count"] == 3
    assert entry.metadata["consensus_strength"] == entry.confidence.overall
    assert "generated_at" in entry.metadata


def test_generated_ids_are_deterministic():
    first = build_consensus(three_extractions()).consensus["resume"][0]
    second = build_consensus(three_extractions()).consensus["resume"][0]

    assert first["category_id"] == second["category_id"] == consistent_id("Film")
    assert first["credits"][0]["id"] == second["credits"][0]["id"]


def test_flat_extractions():
    flat = [
        {"credits": [{"title": "Heat", "role": "Neil", "type": "Film"}]},
        {"credits": [{"title": "heat", "role": "Neil", "type": "Film"}, {"title": "Ran", "type": "Film"}]},
    ]
    entry = build_consensus(flat)

    assert [c["title"] for c in entry.consensus["credits"]] == ["Heat", "Ran"]
    assert entry.confidence.fields["credits[0].type"] == 1.0
    assert entry.metadata["provider_count"] == 2


def test_hierarchical_inputs_win_over_flat():
    entry = build_consensus([extraction(), {"credits": [{"title": "Ran"}]}, "garbage"])

    assert "credits" not in entry.consensus
    assert [c["category"] for c in entry.consensus["resume"]] == ["Film", "Uncategorized"]
    assert entry.metadata["provider_count"] == 2


def test_flat_inputs_vote_after_grouping_by_type():
    flat = {
        "credits": [
            {"title": "Heat", "role": "Chris", "year": "1995", "director": "Michael Mann", "type": "Film"},
            {"title": "Soda", "role": "Dad", "type": "Commercial"},
        ]
    }
    entry = build_consensus([extraction(), extraction(role="neil"), flat])

    film, commercial = entry.consensus["resume"]
    assert film["credits"][0]["role"] == "Neil"
    assert entry.confidence.fields["Film.credits[0].role"] == pytest.approx(2 / 3)
    assert commercial["category"] == "Commercial"
    assert commercial["category_id"] == consistent_id("Commercial")
    assert commercial["credits"][0]["title"] == "Soda"
    assert entry.consensus["resume_show_years"] is True
    assert entry.metadata["provider_count"] == 3


def test_no_usable_extraction_raises():
    with pytest.raises(ValueError):
        build_consensus([{"foo": 1}, None])
    with pytest.raises(ValueError):
        build_consensus([])


def test_grouping_ignores_untitled_credits():
    groups = group_similar_credits([{"title": "Heat"}, {"role": "Extra"}, "junk", {"title": "HEAT."}])

    assert len(groups) == 1
    assert len(groups[0]) == 2


def test_find_consensus_value():
    assert find_consensus_value([]) == (None, 0.0)
    assert find_consensus_value(["Mann", "mann ", "Bay"]) == ("Mann", pytest.approx(2 / 3))


def test_built_baseline_scores_agreeing_candidate_highly():
    entry = build_consensus(three_extractions())
    matcher = ConsensusMatcher(BaselineStore({"actor.pdf": entry}))

    result = matcher.evaluate(extraction(), "actor.pdf")

    assert result.score == 100
    assert result.confidence == pytest.approx(entry.confidence.overall * 100, abs=0.1)

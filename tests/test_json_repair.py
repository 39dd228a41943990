"""
Tests for the JSON repair cascade.

Each tier is exercised with the kind of damage it exists for, followed by the
escalation path (one regeneration) and the empty fallback.
"""

import asyncio
import json

from app.core.generator import GenerationError
from app.core.json_repair import (
    DEFAULT_TIERS,
    FALLBACK_TIER,
    RepairCascade,
    close_open_structures,
    repair_json,
)


class FakeGenerator:
    """Stands in for the upstream model; records every prompt it receives."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.prompts = []

    async def generate(self, prompt, timeout=None):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


def test_valid_json_is_returned_by_first_tier():
    outcome = RepairCascade().repair_local('{"resume": [], "resume_show_years": true}')

    assert outcome.tier == "direct"
    assert outcome.attempted_tiers == ["direct"]
    assert outcome.value == {"resume": [], "resume_show_years": True}
    assert outcome.recovered is True
    assert outcome.escalated is False


def test_repair_is_idempotent_on_valid_json():
    value = {"credits": [{"title": "Heat", "role": "Neil", "year": 1995, "attached_media": []}]}
    assert repair_json(json.dumps(value)) == value
    assert repair_json(json.dumps(repair_json(json.dumps(value)))) == value


def test_markdown_fence_is_unwrapped():
    raw = 'Here is the data:\n```json\n{"resume": [{"category": "Film", "credits": []}]}\n```\nDone.'
    outcome = RepairCascade().repair_local(raw)

    assert outcome.tier == "markdown_unwrap"
    assert outcome.value["resume"][0]["category"] == "Film"


def test_unquoted_keys_single_quotes_and_trailing_comma_fixed_by_syntax_tier():
    outcome = RepairCascade().repair_local("{title: 'Hamlet', role: 'Ghost',}")

    assert outcome.value == {"title": "Hamlet", "role": "Ghost"}
    assert outcome.tier == "syntactic_normalization"
    assert "structural_balancing" not in outcome.attempted_tiers


def test_surrounding_prose_is_stripped():
    outcome = RepairCascade().repair_local('Sure! {"credits": []} Let me know if you need more.')

    assert outcome.value == {"credits": []}
    assert outcome.tier == "syntactic_normalization"


def test_apostrophes_in_values_survive_trailing_comma_repair():
    raw = (
        '{"resume":[{"category":"Film","credits":'
        '[{"title":"Schindler\'s List","role":"Oskar\'s aide",}]}]}'
    )
    outcome = RepairCascade().repair_local(raw)

    assert outcome.tier == "syntactic_normalization"
    credit = outcome.value["resume"][0]["credits"][0]
    assert credit == {"title": "Schindler's List", "role": "Oskar's aide"}


def test_key_like_text_inside_a_value_is_not_quoted():
    outcome = RepairCascade().repair_local('{"title": "Hamlet", "role": "Ghost, role: lead",}')

    assert outcome.tier == "syntactic_normalization"
    assert outcome.value == {"title": "Hamlet", "role": "Ghost, role: lead"}


def test_commas_and_brackets_inside_strings_are_untouched():
    outcome = RepairCascade().repair_local('{"title": "Ran ,] {x}", "note": "a,,b",}')

    assert outcome.value == {"title": "Ran ,] {x}", "note": "a,,b"}


def test_missing_commas_between_objects():
    raw = '{"credits": [{"title": "Heat"} {"title": "Ran"}]}'
    outcome = RepairCascade().repair_local(raw)

    assert [c["title"] for c in outcome.value["credits"]] == ["Heat", "Ran"]


def test_truncated_response_is_closed_by_balancing_tier():
    raw = '{"resume": [{"category": "Film", "credits": [{"title": "Heat", "role": "Neil"'
    outcome = RepairCascade().repair_local(raw)

    assert outcome.tier == "structural_balancing"
    assert outcome.value == {
        "resume": [{"category": "Film", "credits": [{"title": "Heat", "role": "Neil"}]}]
    }


def test_truncated_response_keeps_fields_after_a_closed_array():
    outcome = RepairCascade().repair_local('{"credits": [], "name": "Joe"')

    assert outcome.tier == "structural_balancing"
    assert outcome.value == {"credits": [], "name": "Joe"}


def test_empty_array_followed_by_key_gets_comma():
    raw = '{"title": "Heat", "attached_media": [] "id": "abc"}'
    outcome = RepairCascade().repair_local(raw)

    assert outcome.tier == "structural_balancing"
    assert outcome.value == {"title": "Heat", "attached_media": [], "id": "abc"}


def test_value_newline_key_gets_comma():
    raw = '{"title": "Heat"\n"role": "Neil"}'
    outcome = RepairCascade().repair_local(raw)

    assert outcome.value == {"title": "Heat", "role": "Neil"}


def test_close_open_structures_closes_unterminated_string():
    assert close_open_structures('{"title": "Hamlet') == '{"title": "Hamlet"}'


def test_close_open_structures_ignores_brackets_inside_strings():
    text = '{"title": "Ran [1985] {remaster}"}'
    assert close_open_structures(text) == text


def test_close_open_structures_drops_dangling_comma():
    assert close_open_structures('[1, 2,') == "[1, 2]"


def test_unrecoverable_text_returns_none_locally():
    assert RepairCascade().repair_local("not json at all") is None
    assert RepairCascade().repair_local("") is None
    assert RepairCascade().repair_local(None) is None


def test_repair_json_falls_back_to_empty_record():
    assert repair_json("complete garbage") == {"resume": [], "resume_show_years": False}


def test_local_token_usage_counts_completion_only():
    outcome = RepairCascade().repair_local('{"a": 1}')  # 8 chars -> 2 tokens

    assert outcome.token_usage.prompt_tokens == 0
    assert outcome.token_usage.completion_tokens == 2
    assert outcome.token_usage.total_tokens == 2


def test_fallback_without_generator():
    outcome = asyncio.run(RepairCascade().recover("not json at all"))

    assert outcome.tier == FALLBACK_TIER
    assert outcome.recovered is False
    assert outcome.escalated is False
    assert outcome.value == {"resume": [], "resume_show_years": False}
    assert outcome.attempted_tiers == [tier.name for tier in DEFAULT_TIERS]


def test_regeneration_recovers_and_is_reported():
    generator = FakeGenerator(response='{"credits": [{"title": "Heat", "role": "Neil"}]}')
    outcome = asyncio.run(RepairCascade().recover("<<<broken>>>", generator=generator, prompt="Return JSON"))

    assert len(generator.prompts) == 1
    assert generator.prompts[0] == "Return JSON"
    assert outcome.escalated is True
    assert outcome.recovered is True
    assert outcome.value["credits"][0]["title"] == "Heat"
    assert outcome.attempted_tiers[-2:] == ["regeneration", "direct"]
    assert outcome.token_usage.prompt_tokens == 3  # "Return JSON" -> ceil(11 / 4)
    assert outcome.token_usage.total_tokens == (
        outcome.token_usage.prompt_tokens + outcome.token_usage.completion_tokens
    )


def test_regeneration_uses_strict_prompt_by_default():
    generator = FakeGenerator(response="{}")
    asyncio.run(RepairCascade().recover("garbage", generator=generator))

    assert "STRICTLY VALID JSON" in generator.prompts[0]
    assert generator.prompts[0].endswith("garbage")


def test_regeneration_prompt_carries_the_broken_response():
    raw = "Hamlet / Ghost / 2019 ]]]"
    generator = FakeGenerator(response='{"credits": [{"title": "Hamlet", "role": "Ghost"}]}')

    outcome = asyncio.run(RepairCascade().recover(raw, generator=generator))

    assert raw in generator.prompts[0]
    assert outcome.recovered is True


def test_blank_response_without_prompt_skips_regeneration():
    generator = FakeGenerator(response="{}")
    outcome = asyncio.run(RepairCascade().recover("  \n", generator=generator))

    assert generator.prompts == []
    assert outcome.tier == FALLBACK_TIER
    assert outcome.escalated is False


def test_regeneration_not_called_for_repairable_input():
    generator = FakeGenerator(response="{}")
    outcome = asyncio.run(RepairCascade().recover("{title: 'Hamlet'}", generator=generator))

    assert generator.prompts == []
    assert outcome.escalated is False


def test_generator_failure_degrades_to_fallback():
    generator = FakeGenerator(error=GenerationError("connection refused"))
    outcome = asyncio.run(RepairCascade().recover("garbage", generator=generator))

    assert len(generator.prompts) == 1
    assert outcome.tier == FALLBACK_TIER
    assert outcome.escalated is True
    assert outcome.recovered is False
    assert outcome.value == {"resume": [], "resume_show_years": False}


def test_regeneration_is_attempted_only_once():
    generator = FakeGenerator(response="still not json")
    outcome = asyncio.run(RepairCascade().recover("garbage", generator=generator))

    assert len(generator.prompts) == 1
    assert outcome.tier == FALLBACK_TIER
    assert outcome.escalated is True


def test_report_mirrors_outcome():
    outcome = RepairCascade().repair_local("{title: 'Hamlet'}")
    report = outcome.report()

    assert report.tier == outcome.tier
    assert report.recovered is True
    assert report.attempted_tiers == outcome.attempted_tiers

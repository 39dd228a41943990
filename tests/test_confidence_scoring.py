"""
Test suite for record-level confidence scoring.

Confidence is separate from completeness: a record can be complete and
still untrustworthy (dates out of order, a 500-character name). These
tests pin each penalty and its reported reason.
"""

import pytest

from app.core.confidence_calculator import ConfidenceCalculator


def trusted_record():
    return {
        "personal_info": {"name": "Jane Doe", "email": "jane@example.com"},
        "experience": [
            {"company": "Acme", "position": "Engineer", "start_date": "01/2018", "end_date": "Present"}
        ],
        "education": [{"institution": "UT", "start_date": "2010", "end_date": "2014"}],
    }


def test_base_confidence_is_capped():
    assert ConfidenceCalculator.base(50) == pytest.approx(45)
    assert ConfidenceCalculator.base(100) == pytest.approx(90)
    assert ConfidenceCalculator.base(500) == 95


def test_clean_record_keeps_base_confidence():
    confidence, reasons = ConfidenceCalculator.for_record(trusted_record(), 100)

    assert confidence == pytest.approx(90)
    assert reasons == []


def test_missing_identity_and_experience_compound():
    confidence, reasons = ConfidenceCalculator.for_record({}, 100)

    assert confidence == pytest.approx(90 * 0.8 * 0.9)
    assert reasons == ["missing_identity_fields", "no_experience"]


def test_experience_without_company_and_position():
    record = trusted_record()
    record["experience"] = [{"company": "Acme"}, {"position": "Engineer"}]

    confidence, reasons = ConfidenceCalculator.for_record(record, 100)

    assert confidence == pytest.approx(90 * 0.85)
    assert reasons == ["no_valid_experience"]


def test_end_year_before_start_year():
    record = trusted_record()
    record["experience"][0]["start_date"] = "2020"
    record["experience"][0]["end_date"] = "03/2018"

    assert ConfidenceCalculator.has_inconsistent_dates(record)
    confidence, reasons = ConfidenceCalculator.for_record(record, 100)
    assert confidence == pytest.approx(90 * 0.85)
    assert reasons == ["inconsistent_dates"]


@pytest.mark.parametrize("end_date", ["Present", "current", " Ongoing ", "NOW"])
def test_ongoing_end_dates_are_not_inconsistent(end_date):
    record = trusted_record()
    record["experience"][0]["start_date"] = "2030"
    record["experience"][0]["end_date"] = end_date

    assert not ConfidenceCalculator.has_inconsistent_dates(record)


def test_dates_without_years_are_ignored():
    record = trusted_record()
    record["education"][0]["start_date"] = "Fall"
    record["education"][0]["end_date"] = "Spring"

    assert not ConfidenceCalculator.has_inconsistent_dates(record)


def test_oversized_field_is_named_in_reason():
    record = trusted_record()
    record["personal_info"]["name"] = "J" * 101

    assert ConfidenceCalculator.oversized_field(record) == "personal_info.name"
    confidence, reasons = ConfidenceCalculator.for_record(record, 100)
    assert confidence == pytest.approx(90 * 0.9)
    assert reasons == ["unreasonable_length:personal_info.name"]


def test_oversized_entry_field():
    record = trusted_record()
    record["experience"][0]["company"] = "A" * 201

    assert ConfidenceCalculator.oversized_field(record) == "experience.company"


def test_confidence_is_bounded():
    confidence, _ = ConfidenceCalculator.for_record(trusted_record(), 10_000)
    assert 0 <= confidence <= 100

    confidence, _ = ConfidenceCalculator.for_record({}, 0)
    assert confidence == 0


def test_malformed_sections_do_not_raise():
    record = {"personal_info": "Jane", "experience": "Acme", "education": [None, 3]}
    confidence, reasons = ConfidenceCalculator.for_record(record, 80)

    assert "missing_identity_fields" in reasons
    assert "no_experience" in reasons
    assert 0 <= confidence <= 100

"""
Structural validation of extraction results.

Scores how well a parsed response matches one of the two supported shapes
(see app.core.extraction) and how well its category labels match the
controlled vocabulary. Free-text labels are tolerated and scored, never
rejected.

Scale (structural_score):
  100  = every category and credit well formed, years flag present
   50  = structure present but no content (empty category/credit list)
    0  = neither shape recognised
"""

from typing import Any, Dict, List, Tuple

from app.core.extraction import (
    FlatExtraction,
    HierarchicalExtraction,
    classify_extraction,
)
from app.core.schemas import StructuralReport
from app.core.scoring_utils import percentage, round_half_up
from app.core.text_normalization import is_blank

OFFICIAL_CATEGORIES = [
    "Film",
    "Television",
    "TV",
    "Commercial",
    "Theatre",
    "Theater",
    "Print",
    "Fashion",
    "Training",
    "Voice",
    "Stunt",
    "Corporate",
    "MC",
    "Presenting",
    "Extras",
    "Other",
]

REQUIRED_CREDIT_FIELDS = ["title", "role", "year", "director"]
OPTIONAL_FLAT_CREDIT_FIELDS = ["production_company", "location", "link"]

SHOW_YEARS_BONUS = 10
CATEGORY_VALIDITY_WEIGHT = 0.4
CREDIT_VALIDITY_WEIGHT = 0.5
EMPTY_STRUCTURE_SCORE = 50
MIN_STRUCTURAL_SCORE = 50
MAX_REPORTED_MISSING = 10


def is_valid_credit(credit: Any) -> bool:
    """A credit needs at least a title and a role."""
    return isinstance(credit, dict) and bool(credit.get("title")) and bool(credit.get("role"))


def is_valid_category(category: Any) -> bool:
    return (
        isinstance(category, dict)
        and bool(category.get("category"))
        and isinstance(category.get("credits"), list)
    )


def is_official_category(label: Any) -> bool:
    """Partial, case-insensitive match against the controlled vocabulary."""
    if not label or not isinstance(label, str):
        return False
    normalized = label.lower().strip()
    return any(official.lower() in normalized for official in OFFICIAL_CATEGORIES)


def _structural_score(extraction) -> int:
    if isinstance(extraction, HierarchicalExtraction):
        bonus = SHOW_YEARS_BONUS if extraction.show_years is not None else 0
        categories = extraction.categories
        if not categories:
            return EMPTY_STRUCTURE_SCORE

        valid_categories = 0
        total_credits = 0
        valid_credits = 0
        for category in categories:
            if not is_valid_category(category):
                continue
            valid_categories += 1
            total_credits += len(category["credits"])
            valid_credits += sum(1 for credit in category["credits"] if is_valid_credit(credit))

        category_ratio = percentage(valid_categories, len(categories))
        if total_credits:
            credit_ratio = percentage(valid_credits, total_credits)
        else:
            credit_ratio = EMPTY_STRUCTURE_SCORE
        return round_half_up(
            bonus + category_ratio * CATEGORY_VALIDITY_WEIGHT + credit_ratio * CREDIT_VALIDITY_WEIGHT
        )

    if isinstance(extraction, FlatExtraction):
        if not extraction.credits:
            return EMPTY_STRUCTURE_SCORE
        valid_credits = sum(1 for credit in extraction.credits if is_valid_credit(credit))
        return round_half_up(percentage(valid_credits, len(extraction.credits)))

    return 0


def _category_assignment(extraction) -> int:
    if isinstance(extraction, HierarchicalExtraction):
        labels = [c.get("category") if isinstance(c, dict) else None for c in extraction.categories]
    elif isinstance(extraction, FlatExtraction):
        labels = [c.get("type") if isinstance(c, dict) else None for c in extraction.credits]
    else:
        return 0

    if not labels:
        return 0
    valid = sum(1 for label in labels if is_official_category(label))
    return round_half_up(percentage(valid, len(labels)))


def _credit_completeness(extraction) -> Tuple[int, List[str]]:
    missing: List[str] = []
    total = 0
    filled = 0

    def check(credit: Dict[str, Any], field: str, where: str) -> None:
        nonlocal total, filled
        total += 1
        if not is_blank(credit.get(field)):
            filled += 1
        else:
            missing.append(f"{field} in {where}")

    if isinstance(extraction, HierarchicalExtraction):
        for category in extraction.categories:
            label = (category.get("category") if isinstance(category, dict) else None) or "unknown"
            if not is_valid_category(category):
                missing.append(f"credits array missing in {label} category")
                continue
            for credit in category["credits"]:
                if not isinstance(credit, dict):
                    continue
                for field in REQUIRED_CREDIT_FIELDS:
                    check(credit, field, f"{label} category")

    elif isinstance(extraction, FlatExtraction):
        for credit in extraction.credits:
            if not isinstance(credit, dict):
                continue
            where = f'credit titled "{credit.get("title") or "unknown"}"'
            for field in REQUIRED_CREDIT_FIELDS + ["type"]:
                check(credit, field, where)
            # Optional fields only ever add to completeness.
            for field in OPTIONAL_FLAT_CREDIT_FIELDS:
                if not is_blank(credit.get(field)):
                    total += 1
                    filled += 1

    unique_missing = list(dict.fromkeys(missing))[:MAX_REPORTED_MISSING]
    return round_half_up(percentage(filled, total)), unique_missing


def validate_structure(data: Any) -> StructuralReport:
    """Score shape validity, vocabulary fit and credit field completeness."""
    extraction = classify_extraction(data)
    structural = _structural_score(extraction)

    report = StructuralReport(shape=extraction.shape, structural_score=structural)
    if structural < MIN_STRUCTURAL_SCORE:
        report.overall = structural
        return report

    report.category_assignment = _category_assignment(extraction)
    report.completeness, report.missing_fields = _credit_completeness(extraction)
    report.overall = round_half_up(
        structural * 0.4 + report.category_assignment * 0.3 + report.completeness * 0.3
    )
    return report

"""
Confidence heuristics for résumé records.

Completeness says how many fields are filled; confidence says how far the
filled data can be trusted. Both completeness scorers derive confidence the
same way: start from a fraction of the base score, then apply
multiplicative penalties for signals of a bad extraction.

Penalties:
  x0.80  name or email missing
  x0.90  no experience entries at all
  x0.85  experience entries exist but none has company + position
  x0.85  an end year precedes its start year
  x0.90  a value exceeds its sanity length bound

The result is capped at 100 and never exceeds the uncapped product.
"""

from typing import Any, Dict, List, Optional, Tuple

from app.core.text_normalization import extract_year

BASE_FACTOR = 0.9
BASE_CEILING = 95.0

MISSING_IDENTITY_PENALTY = 0.8
NO_EXPERIENCE_PENALTY = 0.9
NO_VALID_EXPERIENCE_PENALTY = 0.85
INCONSISTENT_DATES_PENALTY = 0.85
UNREASONABLE_LENGTH_PENALTY = 0.9

LENGTH_BOUNDS = {
    "personal_info.name": 100,
    "personal_info.email": 100,
    "education.institution": 200,
    "education.degree": 200,
    "experience.company": 200,
    "experience.position": 200,
}

ONGOING_END_DATES = {"present", "current", "now", "ongoing"}


def _entries(record: Dict[str, Any], section: str) -> List[Dict[str, Any]]:
    value = record.get(section)
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def _personal_info(record: Dict[str, Any]) -> Dict[str, Any]:
    value = record.get("personal_info")
    return value if isinstance(value, dict) else {}


class ConfidenceCalculator:
    """Central place for all record-level confidence logic."""

    @staticmethod
    def base(score: float) -> float:
        return min(BASE_CEILING, score * BASE_FACTOR)

    @staticmethod
    def has_inconsistent_dates(record: Dict[str, Any]) -> bool:
        """True when any entry ends (by year) before it starts."""
        for section in ("education", "experience"):
            for entry in _entries(record, section):
                start = entry.get("start_date")
                end = entry.get("end_date")
                if not start or not end:
                    continue
                if str(end).strip().lower() in ONGOING_END_DATES:
                    continue
                start_year = extract_year(start)
                end_year = extract_year(end)
                if start_year is not None and end_year is not None and start_year > end_year:
                    return True
        return False

    @staticmethod
    def oversized_field(record: Dict[str, Any]) -> Optional[str]:
        """Qualified path of the first value exceeding its length bound, if any."""
        info = _personal_info(record)
        for path, bound in LENGTH_BOUNDS.items():
            section, field = path.split(".", 1)
            if section == "personal_info":
                values = [info.get(field)]
            else:
                values = [entry.get(field) for entry in _entries(record, section)]
            for value in values:
                if isinstance(value, str) and len(value) > bound:
                    return path
        return None

    @staticmethod
    def for_record(record: Dict[str, Any], base_score: float) -> Tuple[float, List[str]]:
        """
        Calculate confidence (0-100) for a record given its base score.

        Returns the confidence and the reasons for each penalty applied.
        """
        confidence = ConfidenceCalculator.base(base_score)
        reasons: List[str] = []

        info = _personal_info(record)
        if not info.get("name") or not info.get("email"):
            confidence *= MISSING_IDENTITY_PENALTY
            reasons.append("missing_identity_fields")

        experience = _entries(record, "experience")
        if not experience:
            confidence *= NO_EXPERIENCE_PENALTY
            reasons.append("no_experience")
        elif not any(entry.get("company") and entry.get("position") for entry in experience):
            confidence *= NO_VALID_EXPERIENCE_PENALTY
            reasons.append("no_valid_experience")

        if ConfidenceCalculator.has_inconsistent_dates(record):
            confidence *= INCONSISTENT_DATES_PENALTY
            reasons.append("inconsistent_dates")

        oversized = ConfidenceCalculator.oversized_field(record)
        if oversized:
            confidence *= UNREASONABLE_LENGTH_PENALTY
            reasons.append(f"unreasonable_length:{oversized}")

        return max(0.0, min(100.0, confidence)), reasons

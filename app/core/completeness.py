"""
Completeness scorers for résumé-shaped records.

Two interchangeable strategies share the AccuracyScore output contract:

  SectionBalancedScorer  each section scores 0..1 on its own required/optional
                         split, then sections are combined with section weights.
  WeightedFieldScorer    every field carries an importance weight; the score is
                         populated weight over total weight, with capped bonuses
                         for richer descriptions and skill lists.

They can disagree by double digits on the same input. Both are kept and
picked by configuration.
"""

import logging
from typing import Any, Dict, List, Tuple, Union

from pydantic import BaseModel

from app.core.confidence_calculator import ConfidenceCalculator
from app.core.schemas import AccuracyScore
from app.core.scoring_config import ScoringConfig
from app.core.scoring_utils import clamp, percentage, round_half_up
from app.core.text_normalization import is_blank

logger = logging.getLogger(__name__)

PERSONAL_REQUIRED = ["name", "email", "phone"]
PERSONAL_OPTIONAL = ["location", "linkedin", "github", "summary"]
PERSONAL_FIELDS = PERSONAL_REQUIRED + PERSONAL_OPTIONAL

EDUCATION_REQUIRED = ["institution", "degree", "field_of_study"]
EDUCATION_OPTIONAL = ["start_date", "end_date", "gpa", "location"]
EDUCATION_FIELDS = EDUCATION_REQUIRED + EDUCATION_OPTIONAL

EXPERIENCE_REQUIRED = ["company", "position"]
EXPERIENCE_DATES = ["start_date", "end_date"]
EXPERIENCE_OTHER = ["location"]
EXPERIENCE_FIELDS = EXPERIENCE_REQUIRED + EXPERIENCE_DATES + EXPERIENCE_OTHER

SKILL_GROUPS = ["programming_languages", "frameworks", "tools", "soft_skills", "other"]

SECTIONS = ["personal_info", "education", "experience", "skills"]

Record = Union[Dict[str, Any], BaseModel]


def as_record(data: Record) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump()
    if isinstance(data, dict):
        return data
    return {}


def is_cv_record(data: Any) -> bool:
    """True when data carries at least one résumé section."""
    return isinstance(data, dict) and any(section in data for section in SECTIONS)


def _mapping(record: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = record.get(key)
    return value if isinstance(value, dict) else {}


def _indexed_entries(record: Dict[str, Any], key: str) -> List[Tuple[int, Dict[str, Any]]]:
    value = record.get(key)
    if not isinstance(value, list):
        return []
    return [(index, entry) for index, entry in enumerate(value) if isinstance(entry, dict)]


def _list_length(value: Any) -> int:
    return len(value) if isinstance(value, list) else 0


def meets_threshold(score: AccuracyScore, threshold: float) -> bool:
    return score.score >= threshold


class CompletenessScorer:
    name = "base"

    def __init__(self, config: ScoringConfig = None):
        self.config = config or ScoringConfig()

    @property
    def min_accuracy_threshold(self) -> float:
        return self.config.min_accuracy_threshold

    def score(self, data: Record) -> AccuracyScore:
        raise NotImplementedError

    def meets_threshold(self, score: AccuracyScore) -> bool:
        """Check whether a score reaches the configured minimum."""
        return meets_threshold(score, self.config.min_accuracy_threshold)


class SectionBalancedScorer(CompletenessScorer):
    """Per-section required/optional splits combined by section weight."""

    name = "section"

    def score(self, data: Record) -> AccuracyScore:
        record = as_record(data)
        missing: List[str] = []

        section_scores = {
            "personal_info": self._personal_info(record, missing),
            "education": self._education(record, missing),
            "experience": self._experience(record, missing),
            "skills": self._skills(record, missing),
        }

        weights = self.config.section_weights
        overall = sum(section_scores[section] * getattr(weights, section) for section in SECTIONS)
        score = round_half_up(clamp(overall * 100))

        expected = (
            len(PERSONAL_FIELDS)
            + len(_indexed_entries(record, "education")) * len(EDUCATION_FIELDS)
            + len(_indexed_entries(record, "experience")) * (len(EXPERIENCE_FIELDS) + 1)
            + len(SKILL_GROUPS)
        )
        completeness = round_half_up(clamp(percentage(expected - len(missing), expected)))
        confidence, reasons = ConfidenceCalculator.for_record(record, score)

        logger.debug(f"Section-balanced score={score} sections={section_scores}")
        return AccuracyScore(
            score=score,
            completeness=completeness,
            confidence=round_half_up(confidence),
            field_scores={section: round_half_up(value * 100) for section, value in section_scores.items()},
            missing_fields=missing,
            confidence_reasons=reasons,
        )

    def _personal_info(self, record: Dict[str, Any], missing: List[str]) -> float:
        info = _mapping(record, "personal_info")
        score = 0.0
        for field in PERSONAL_REQUIRED:
            if not is_blank(info.get(field)):
                score += 0.7 / len(PERSONAL_REQUIRED)
            else:
                missing.append(f"personal_info.{field}")
        for field in PERSONAL_OPTIONAL:
            if not is_blank(info.get(field)):
                score += 0.3 / len(PERSONAL_OPTIONAL)
        return score

    def _education(self, record: Dict[str, Any], missing: List[str]) -> float:
        entries = _indexed_entries(record, "education")
        if not entries:
            missing.append("education")
            return 0.0

        total = 0.0
        for index, entry in entries:
            entry_score = 0.0
            for field in EDUCATION_REQUIRED:
                if not is_blank(entry.get(field)):
                    entry_score += 0.75 / len(EDUCATION_REQUIRED)
                else:
                    missing.append(f"education[{index}].{field}")
            for field in EDUCATION_OPTIONAL:
                if not is_blank(entry.get(field)):
                    entry_score += 0.25 / len(EDUCATION_OPTIONAL)
            total += entry_score
        return min(1.0, total / len(entries))

    def _experience(self, record: Dict[str, Any], missing: List[str]) -> float:
        entries = _indexed_entries(record, "experience")
        if not entries:
            missing.append("experience")
            return 0.0

        total = 0.0
        for index, entry in entries:
            entry_score = 0.0
            for field in EXPERIENCE_REQUIRED:
                if not is_blank(entry.get(field)):
                    entry_score += 0.6 / len(EXPERIENCE_REQUIRED)
                else:
                    missing.append(f"experience[{index}].{field}")
            for field in EXPERIENCE_DATES:
                if not is_blank(entry.get(field)):
                    entry_score += 0.3 / len(EXPERIENCE_DATES)
            for field in EXPERIENCE_OTHER:
                if not is_blank(entry.get(field)):
                    entry_score += 0.1 / len(EXPERIENCE_OTHER)

            description_count = _list_length(entry.get("description"))
            if description_count:
                entry_score *= 1 + min(0.2, description_count * 0.02)
            else:
                missing.append(f"experience[{index}].description")
            total += entry_score
        return min(1.0, total / len(entries))

    def _skills(self, record: Dict[str, Any], missing: List[str]) -> float:
        skills = _mapping(record, "skills")
        populated = 0
        bonus = 0.0
        for group in SKILL_GROUPS:
            count = _list_length(skills.get(group))
            if not count:
                continue
            populated += 1
            bonus += 0.2 if count >= 5 else 0.1

        if not populated:
            missing.append("skills")
            return 0.0
        return min(1.0, populated / len(SKILL_GROUPS) + bonus * 0.5)


class WeightedFieldScorer(CompletenessScorer):
    """Populated weight over total weight, with capped richness bonuses."""

    name = "weighted"

    def score(self, data: Record) -> AccuracyScore:
        record = as_record(data)
        config = self.config
        missing: List[str] = []
        field_count = 0
        weighted_total = 0.0
        weighted_populated = 0.0

        def tally(path: str, missing_label: str, populated: bool, bonus: float = 0.0) -> None:
            nonlocal field_count, weighted_total, weighted_populated
            weight = config.weight(path)
            field_count += 1
            weighted_total += weight
            if populated:
                weighted_populated += weight * (1 + bonus)
            else:
                missing.append(missing_label)

        info = _mapping(record, "personal_info")
        for field in PERSONAL_FIELDS:
            path = f"personal_info.{field}"
            tally(path, path, not is_blank(info.get(field)))

        education = _indexed_entries(record, "education")
        if not education:
            field_count += 1
            missing.append("education")
        for index, entry in education:
            for field in EDUCATION_FIELDS:
                tally(f"education.{field}", f"education[{index}].{field}", not is_blank(entry.get(field)))

        experience = _indexed_entries(record, "experience")
        if not experience:
            field_count += 1
            missing.append("experience")
        for index, entry in experience:
            for field in EXPERIENCE_FIELDS:
                tally(f"experience.{field}", f"experience[{index}].{field}", not is_blank(entry.get(field)))
            description_count = _list_length(entry.get("description"))
            tally(
                "experience.description",
                f"experience[{index}].description",
                description_count > 0,
                bonus=min(config.description_bonus_cap, description_count * config.description_bonus_per_entry),
            )

        skills = _mapping(record, "skills")
        for group in SKILL_GROUPS:
            path = f"skills.{group}"
            count = _list_length(skills.get(group))
            tally(path, path, count > 0, bonus=min(config.skill_bonus_cap, count * config.skill_bonus_per_entry))

        score = round_half_up(clamp(percentage(weighted_populated, weighted_total)), 1)
        completeness = round_half_up(clamp(percentage(field_count - len(missing), field_count)), 1)
        confidence, reasons = ConfidenceCalculator.for_record(record, score)

        logger.debug(f"Weighted-field score={score} populated={weighted_populated:.2f}/{weighted_total:.2f}")
        return AccuracyScore(
            score=score,
            completeness=completeness,
            confidence=round_half_up(confidence, 1),
            field_scores=self._section_scores(record, missing),
            missing_fields=missing,
            confidence_reasons=reasons,
        )

    @staticmethod
    def _section_scores(record: Dict[str, Any], missing: List[str]) -> Dict[str, float]:
        education_entries = len(_indexed_entries(record, "education"))
        experience_entries = len(_indexed_entries(record, "experience"))
        totals = {
            "personal_info": len(PERSONAL_FIELDS),
            "education": education_entries * len(EDUCATION_FIELDS),
            "experience": experience_entries * (len(EXPERIENCE_FIELDS) + 1),
            "skills": len(SKILL_GROUPS),
        }

        scores: Dict[str, float] = {}
        for section, total in totals.items():
            section_missing = sum(
                1 for label in missing
                if label.startswith(f"{section}.") or label.startswith(f"{section}[")
            )
            scores[section] = round_half_up(clamp(100 * (1 - section_missing / total))) if total else 0
        return scores


STRATEGIES = {
    SectionBalancedScorer.name: SectionBalancedScorer,
    WeightedFieldScorer.name: WeightedFieldScorer,
}


def build_completeness_scorer(strategy: str = "weighted", config: ScoringConfig = None) -> CompletenessScorer:
    try:
        scorer_cls = STRATEGIES[strategy]
    except KeyError:
        raise ValueError(f"Unknown completeness strategy '{strategy}', expected one of {sorted(STRATEGIES)}")
    return scorer_cls(config)

"""
Consensus scoring: compare a candidate extraction against a trusted baseline.

A single generator response cannot verify itself. The baseline for a source
document is built offline from several independent extractions (see
app.core.consensus_builder) and loaded once; scoring a candidate is then a
matter of structural similarity, fuzzy credit matching and per-field
agreement weighted by how much the baseline itself agreed on each field.

    overall = 0.3 * structural_fidelity + 0.4 * field_accuracy + 0.3 * completeness
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.core.extraction import (
    FlatExtraction,
    HierarchicalExtraction,
    category_credits,
    classify_extraction,
)
from app.core.schemas import ConsensusScore
from app.core.scoring_utils import percentage, round_half_up
from app.core.text_normalization import word_set_similarity

logger = logging.getLogger(__name__)

NO_CONSENSUS = "none"
TITLE_MATCH_THRESHOLD = 0.6
DEFAULT_FIELD_CONFIDENCE = 0.5
SHAPE_MISMATCH_SCORE = 30
MAX_REPORTED_MISSING = 10

HIERARCHICAL_FIELDS = ["title", "role", "year", "director"]
FLAT_FIELDS = ["title", "role", "year", "director", "type"]

STRUCTURAL_WEIGHT = 0.3
FIELD_ACCURACY_WEIGHT = 0.4
COMPLETENESS_WEIGHT = 0.3


class BaselineLoadError(Exception):
    """The baseline file exists but cannot be read or parsed."""


class BaselineConfidence(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall: float = 0.0
    fields: Dict[str, float] = Field(default_factory=dict)


class ConsensusEntry(BaseModel):
    """Consensus extraction for one source document plus its agreement levels."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    consensus: Dict[str, Any]
    confidence: BaselineConfidence = Field(default_factory=BaselineConfidence)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BaselineStore:
    """Read-only map of source key -> ConsensusEntry."""

    def __init__(self, entries: Optional[Mapping[str, ConsensusEntry]] = None):
        self._entries = MappingProxyType(dict(entries or {}))

    @classmethod
    def load(cls, path: Union[str, Path, None]) -> "BaselineStore":
        """
        Load a baseline file.

        A missing file is normal (no baselines yet). A file that exists but
        cannot be parsed is fatal: BaselineLoadError.
        """
        if path is None:
            return cls()

        path = Path(path)
        if not path.exists():
            logger.warning(f"Baseline file not found: {path}")
            return cls()

        try:
            with path.open("r", encoding="utf-8") as fh:
                document = json.load(fh)
        except (OSError, ValueError) as e:
            raise BaselineLoadError(f"Cannot read baseline file {path}: {e}") from e

        store = cls.from_document(document, origin=str(path))
        logger.info(f"Loaded {len(store)} consensus baselines from {path}")
        return store

    @classmethod
    def from_document(cls, document: Any, origin: str = "<memory>") -> "BaselineStore":
        """Accepts {key: entry} or the {"metrics": {key: entry}} builder layout."""
        if isinstance(document, dict) and isinstance(document.get("metrics"), dict):
            document = document["metrics"]
        if not isinstance(document, dict):
            raise BaselineLoadError(f"Baseline document in {origin} must be a JSON object")

        entries: Dict[str, ConsensusEntry] = {}
        for key, raw_entry in document.items():
            try:
                entries[key] = ConsensusEntry.model_validate(raw_entry)
            except ValidationError as e:
                raise BaselineLoadError(f"Invalid baseline entry '{key}' in {origin}: {e}") from e
        return cls(entries)

    def get(self, key: Optional[str]) -> Optional[ConsensusEntry]:
        if not key:
            return None
        return self._entries.get(key)

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def field_similarity(expected: Any, actual: Any) -> float:
    """1.0 for equal values, word-set Jaccard for two strings, else 0.0."""
    if expected == actual:
        return 1.0
    if isinstance(expected, str) and isinstance(actual, str):
        return word_set_similarity(expected, actual)
    if isinstance(expected, (int, float, str)) and isinstance(actual, (int, float, str)):
        # "2019" vs 2019
        return 1.0 if str(expected).strip() == str(actual).strip() else 0.0
    return 0.0


def find_matching_credit(baseline_credit: Dict[str, Any], credits: List[Any]) -> Optional[Dict[str, Any]]:
    """Exact title match first, then the best title above the similarity threshold."""
    candidates = [credit for credit in credits if isinstance(credit, dict)]
    title = baseline_credit.get("title")

    for credit in candidates:
        if credit.get("title") == title:
            return credit

    best_match = None
    best_similarity = 0.0
    for credit in candidates:
        if not credit.get("title") or not title:
            continue
        similarity = word_set_similarity(str(credit["title"]), str(title))
        if similarity > best_similarity and similarity > TITLE_MATCH_THRESHOLD:
            best_match = credit
            best_similarity = similarity
    return best_match


def count_similarity(first: int, second: int) -> float:
    """min/max of two counts; two empty lists are identical."""
    if first == second:
        return 1.0
    return min(first, second) / max(first, second)


class _FieldTally:
    def __init__(self, confidence_fields: Mapping[str, float]):
        self.confidence_fields = confidence_fields
        self.weighted_total = 0.0
        self.weighted_matched = 0.0
        self.compared = 0
        self.expected = 0
        self.present = 0
        self.missing: List[str] = []

    def missing_credit(self, label: str, field_count: int) -> None:
        self.missing.append(label)
        self.expected += field_count

    def compare(self, baseline_credit: Dict[str, Any], candidate: Dict[str, Any], fields: List[str], path_prefix: str) -> None:
        for field in fields:
            self.expected += 1
            if not candidate.get(field):
                self.missing.append(f"{field} in {baseline_credit.get('title')}")
                continue

            self.present += 1
            self.compared += 1
            weight = self.confidence_fields.get(f"{path_prefix}.{field}", DEFAULT_FIELD_CONFIDENCE)
            self.weighted_total += weight
            self.weighted_matched += field_similarity(baseline_credit.get(field), candidate.get(field)) * weight


class ConsensusMatcher:
    """Scores candidates against the baselines in a BaselineStore."""

    def __init__(self, store: BaselineStore):
        self.store = store

    def evaluate(self, candidate: Dict[str, Any], key: Optional[str] = None) -> ConsensusScore:
        if key is None:
            key = _source_key(candidate)

        entry = self.store.get(key)
        if entry is None:
            logger.info(f"No consensus baseline for '{key}'")
            return _default_score()

        strength = entry.confidence.overall
        data_view = classify_extraction(candidate)
        baseline_view = classify_extraction(entry.consensus)

        if type(data_view) is not type(baseline_view) or baseline_view.shape == "unknown":
            logger.warning(
                f"Candidate shape '{data_view.shape}' does not match baseline shape '{baseline_view.shape}' for '{key}'"
            )
            return ConsensusScore(
                score=SHAPE_MISMATCH_SCORE,
                completeness=0,
                confidence=_strength_percent(strength),
                structural_fidelity=SHAPE_MISMATCH_SCORE,
                field_scores={"structural_fidelity": SHAPE_MISMATCH_SCORE, "field_accuracy": 0, "completeness": 0},
                consensus_source=key,
                consensus_strength=strength,
            )

        structural = self._structural_fidelity(data_view, baseline_view)
        tally = self._compare_fields(data_view, baseline_view, entry.confidence.fields)

        field_accuracy = round_half_up(percentage(tally.weighted_matched, tally.weighted_total))
        completeness = round_half_up(percentage(tally.present, tally.expected))
        overall = round_half_up(
            structural * STRUCTURAL_WEIGHT + field_accuracy * FIELD_ACCURACY_WEIGHT + completeness * COMPLETENESS_WEIGHT
        )

        return ConsensusScore(
            score=overall,
            completeness=completeness,
            confidence=_strength_percent(strength),
            field_scores={
                "structural_fidelity": structural,
                "field_accuracy": field_accuracy,
                "completeness": completeness,
            },
            missing_fields=list(dict.fromkeys(tally.missing))[:MAX_REPORTED_MISSING],
            structural_fidelity=structural,
            field_accuracy=field_accuracy,
            consensus_source=key,
            consensus_strength=strength,
            compared_fields=tally.compared,
        )

    @staticmethod
    def _structural_fidelity(data_view, baseline_view) -> int:
        if isinstance(baseline_view, HierarchicalExtraction):
            baseline_labels = set(baseline_view.labels())
            data_labels = set(data_view.labels())
            category_score = percentage(len(baseline_labels & data_labels), len(baseline_labels))

            credits_score = 0.0
            shared = 0
            for category in baseline_view.categories:
                if not isinstance(category, dict):
                    continue
                data_category = data_view.find_category(category.get("category"))
                if data_category is None:
                    continue
                shared += 1
                credits_score += count_similarity(
                    len(category_credits(data_category)), len(category_credits(category))
                ) * 100

            average_credits_score = credits_score / shared if shared else 0.0
            return round_half_up(category_score * 0.6 + average_credits_score * 0.4)

        if isinstance(baseline_view, FlatExtraction):
            return round_half_up(count_similarity(len(data_view.credits), len(baseline_view.credits)) * 100)

        return 0

    @staticmethod
    def _compare_fields(data_view, baseline_view, confidence_fields: Mapping[str, float]) -> _FieldTally:
        tally = _FieldTally(confidence_fields)

        if isinstance(baseline_view, HierarchicalExtraction):
            for category in baseline_view.categories:
                if not isinstance(category, dict):
                    continue
                label = category.get("category")
                baseline_credits = [c for c in category_credits(category) if isinstance(c, dict)]
                data_category = data_view.find_category(label)
                if data_category is None:
                    tally.missing_credit(f"Category: {label}", len(baseline_credits) * len(HIERARCHICAL_FIELDS))
                    continue

                for index, baseline_credit in enumerate(baseline_credits):
                    match = find_matching_credit(baseline_credit, category_credits(data_category))
                    if match is None:
                        tally.missing_credit(
                            f"Credit: {baseline_credit.get('title')} in {label}", len(HIERARCHICAL_FIELDS)
                        )
                        continue
                    tally.compare(baseline_credit, match, HIERARCHICAL_FIELDS, f"{label}.credits[{index}]")

        elif isinstance(baseline_view, FlatExtraction):
            baseline_credits = [c for c in baseline_view.credits if isinstance(c, dict)]
            for index, baseline_credit in enumerate(baseline_credits):
                match = find_matching_credit(baseline_credit, data_view.credits)
                if match is None:
                    tally.missing_credit(f"Credit: {baseline_credit.get('title')}", len(FLAT_FIELDS))
                    continue
                tally.compare(baseline_credit, match, FLAT_FIELDS, f"credits[{index}]")

        return tally


def _source_key(candidate: Any) -> Optional[str]:
    if not isinstance(candidate, dict):
        return None
    metadata = candidate.get("metadata")
    if isinstance(metadata, dict):
        return metadata.get("source_file")
    return None


def _strength_percent(strength: float) -> float:
    """Baselines store agreement as 0..1; scores are percentages."""
    value = strength * 100 if strength <= 1 else strength
    return round_half_up(max(0.0, min(100.0, value)), 1)


def _default_score() -> ConsensusScore:
    return ConsensusScore(
        score=0,
        completeness=0,
        confidence=0,
        consensus_source=NO_CONSENSUS,
        consensus_strength=0,
        compared_fields=0,
    )


def dump_baselines(entries: Mapping[str, ConsensusEntry]) -> Dict[str, Any]:
    return {"metrics": {key: entry.model_dump() for key, entry in entries.items()}}


def save_baseline(path: Union[str, Path], entries: Mapping[str, ConsensusEntry]) -> Path:
    """Write entries in the layout BaselineStore.load() reads."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(dump_baselines(entries), fh, indent=2, ensure_ascii=False)
    logger.info(f"Wrote {len(entries)} consensus baselines to {path}")
    return path

"""
Offline construction of consensus baselines.

Given several independent extractions of the same source document, builds
the most likely correct extraction plus a per-field agreement ratio. The
result is what ConsensusMatcher later scores new candidates against.

Confidence keys follow the paths the matcher looks up:
    <category>.credits[<i>].<field>   hierarchical
    credits[<i>].<field>              flat
"""

import json
import logging
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.core.consensus import ConsensusEntry
from app.core.extraction import (
    FlatExtraction,
    HierarchicalExtraction,
    category_credits,
    classify_extraction,
    group_credits_by_type,
)
from app.core.text_normalization import normalize_title, word_set_similarity

logger = logging.getLogger(__name__)

GROUPING_THRESHOLD = 0.8
HIERARCHICAL_CREDIT_FIELDS = ["title", "role", "year", "director", "id"]
FLAT_CREDIT_FIELDS = ["title", "role", "year", "director", "type", "id"]


def consistent_id(text: str) -> str:
    """Deterministic UUID for a given text."""
    return str(uuid.uuid5(uuid.NAMESPACE_OID, text))


def find_consensus_value(values: List[Any]) -> Tuple[Optional[Any], float]:
    """
    Most common value (case/whitespace-insensitive) and its agreement ratio.

    The original spelling of the first occurrence of the winner is returned.
    """
    if not values:
        return None, 0.0

    keys = [str(value).lower().strip() for value in values]
    counts = Counter(keys)
    winner, highest = counts.most_common(1)[0]
    original = next(value for value, key in zip(values, keys) if key == winner)
    return original, highest / len(values)


def vote_confidence(values: Iterable[Any]) -> float:
    present = [value for value in values if value is not None]
    if not present:
        return 0.0
    counts = Counter(str(value).lower().strip() if not isinstance(value, bool) else value for value in present)
    return max(counts.values()) / len(present)


def group_similar_credits(credits: List[Any]) -> List[List[Dict[str, Any]]]:
    """Group credits whose normalized titles are more than 80% similar to a group's first title."""
    groups: List[List[Dict[str, Any]]] = []
    for credit in credits:
        if not isinstance(credit, dict) or not credit.get("title"):
            continue
        title = normalize_title(str(credit["title"]))
        for group in groups:
            if word_set_similarity(title, normalize_title(str(group[0]["title"]))) > GROUPING_THRESHOLD:
                group.append(credit)
                break
        else:
            groups.append([credit])
    return groups


def build_credit_consensus(credits: List[Dict[str, Any]], fields: List[str]) -> Tuple[Dict[str, Any], Dict[str, float]]:
    result: Dict[str, Any] = {}
    confidence: Dict[str, float] = {}

    for field in fields:
        values = [credit.get(field) for credit in credits if credit.get(field)]
        value, agreement = find_consensus_value(values)
        if value is not None:
            result[field] = value
            confidence[field] = agreement
        elif field == "id":
            result[field] = consistent_id(json.dumps(result, sort_keys=True, default=str))
            confidence[field] = 1.0

    result["attached_media"] = []
    confidence["attached_media"] = 1.0
    return result, confidence


def _determine_show_years(views: List[Any]) -> bool:
    values = [view.show_years for view in views if view.show_years is not None]
    if not values:
        return True
    return sum(1 for value in values if value) >= len(values) / 2


def _build_hierarchical(views: List[HierarchicalExtraction]) -> Tuple[Dict[str, Any], Dict[str, float]]:
    result: Dict[str, Any] = {"resume": [], "resume_show_years": _determine_show_years(views)}
    confidence: Dict[str, float] = {
        "resume_show_years": vote_confidence(view.show_years for view in views),
    }

    labels: List[str] = []
    for view in views:
        for label in view.labels():
            if label and label not in labels:
                labels.append(label)

    for label in labels:
        pooled: List[Any] = []
        for view in views:
            category = view.find_category(label)
            if category is not None:
                pooled.extend(category_credits(category))

        consensus_credits = []
        category_confidence: Dict[str, float] = {"category": 1.0}
        for index, group in enumerate(group_similar_credits(pooled)):
            credit, credit_confidence = build_credit_consensus(group, HIERARCHICAL_CREDIT_FIELDS)
            consensus_credits.append(credit)
            for field, value in credit_confidence.items():
                category_confidence[f"credits[{index}].{field}"] = value

        if not consensus_credits:
            continue
        result["resume"].append({
            "category": label,
            "category_id": consistent_id(label),
            "credits": consensus_credits,
        })
        for key, value in category_confidence.items():
            confidence[f"{label}.{key}"] = value

    return result, confidence


def _build_flat(views: List[FlatExtraction]) -> Tuple[Dict[str, Any], Dict[str, float]]:
    pooled: List[Any] = []
    for view in views:
        pooled.extend(view.credits)

    result: Dict[str, Any] = {"credits": []}
    confidence: Dict[str, float] = {}
    for index, group in enumerate(group_similar_credits(pooled)):
        credit, credit_confidence = build_credit_consensus(group, FLAT_CREDIT_FIELDS)
        result["credits"].append(credit)
        for field, value in credit_confidence.items():
            confidence[f"credits[{index}].{field}"] = value
    return result, confidence


def build_consensus(extractions: Iterable[Any]) -> ConsensusEntry:
    """
    Build a consensus baseline from independent extractions of one document.

    The hierarchical shape wins when any input uses it. Flat inputs then take
    part in the vote after being grouped into categories by credit type.
    Inputs of no recognised shape are ignored.
    """
    views = [classify_extraction(data) for data in extractions]
    hierarchical = [view for view in views if isinstance(view, HierarchicalExtraction)]
    flat = [view for view in views if isinstance(view, FlatExtraction)]

    if hierarchical:
        hierarchical += [classify_extraction(group_credits_by_type({"credits": view.credits})) for view in flat]
        consensus, fields = _build_hierarchical(hierarchical)
        used = len(hierarchical)
    elif flat:
        consensus, fields = _build_flat(flat)
        used = len(flat)
    else:
        raise ValueError("No extraction with a recognised shape to build consensus from")

    strength = round(sum(fields.values()) / len(fields), 2) if fields else 0.0
    logger.info(f"Built consensus from {used} extractions, strength {strength}")

    return ConsensusEntry(
        consensus=consensus,
        confidence={"overall": strength, "fields": fields},
        metadata={
            "provider_count": used,
            "consensus_strength": strength,
            "generated_at": datetime.now(timezone.utc).isoformat(),
        },
    )

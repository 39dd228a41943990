"""
The two extraction shapes the generator can return, as an explicit variant.

    hierarchical: {"resume": [{"category", "category_id", "credits": [...]}],
                   "resume_show_years": bool}
    flat:         {"credits": [{..., "type": "Film"}]}

classify_extraction() is the single place that looks at the raw dict to
decide which shape it is. Scorers dispatch on the returned variant instead
of re-testing keys.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union


HIERARCHICAL = "hierarchical"
FLAT = "flat"
UNKNOWN = "unknown"


@dataclass(frozen=True)
class HierarchicalExtraction:
    categories: List[Any]
    show_years: Optional[bool] = None
    shape: str = HIERARCHICAL

    def find_category(self, label: Any) -> Optional[Dict[str, Any]]:
        for category in self.categories:
            if isinstance(category, dict) and category.get("category") == label:
                return category
        return None

    def labels(self) -> List[Any]:
        return [c.get("category") for c in self.categories if isinstance(c, dict)]


@dataclass(frozen=True)
class FlatExtraction:
    credits: List[Any]
    shape: str = FLAT


@dataclass(frozen=True)
class UnrecognizedExtraction:
    raw: Any = None
    shape: str = UNKNOWN


Extraction = Union[HierarchicalExtraction, FlatExtraction, UnrecognizedExtraction]


def classify_extraction(data: Any) -> Extraction:
    """Hierarchical wins when both 'resume' and 'credits' lists are present."""
    if isinstance(data, dict):
        resume = data.get("resume")
        if isinstance(resume, list):
            show_years = data.get("resume_show_years")
            return HierarchicalExtraction(
                categories=resume,
                show_years=show_years if isinstance(show_years, bool) else None,
            )
        credits = data.get("credits")
        if isinstance(credits, list):
            return FlatExtraction(credits=credits)
    return UnrecognizedExtraction(raw=data)


def category_credits(category: Any) -> List[Any]:
    """Credits list of a category, or [] when the category is malformed."""
    if isinstance(category, dict) and isinstance(category.get("credits"), list):
        return category["credits"]
    return []


def empty_extraction() -> Dict[str, Any]:
    """Structurally valid record with no content."""
    return {"resume": [], "resume_show_years": False}


def group_credits_by_type(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert a flat {"credits": [...]} result into the hierarchical shape.

    Credits are grouped by their 'type' (default 'Uncategorized') in first-seen
    order. A 'project_title' / 'projectTitle' key is renamed to 'title'.
    """
    credits = data.get("credits") if isinstance(data, dict) else None
    if not isinstance(credits, list):
        return {"resume": []}

    grouped: Dict[str, Dict[str, Any]] = {}
    for credit in credits:
        if not isinstance(credit, dict):
            continue
        credit_type = credit.get("type") or "Uncategorized"
        if credit_type not in grouped:
            grouped[credit_type] = {
                "category": credit_type,
                "category_id": str(uuid.uuid4()),
                "credits": [],
            }

        converted = dict(credit)
        for legacy_key in ("project_title", "projectTitle"):
            if legacy_key in converted:
                legacy_title = converted.pop(legacy_key)
                converted.setdefault("title", legacy_title)
        grouped[credit_type]["credits"].append(converted)

    return {"resume": list(grouped.values())}

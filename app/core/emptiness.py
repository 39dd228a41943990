"""
How much of a JSON-like tree is actually filled in.

Independent of résumé semantics. Lists contribute the counts of their
items, dicts the counts of their values, and every scalar leaf is one field.
The engine's own bookkeeping ('metadata', 'tokenUsage') is never counted.
"""

from typing import Any, Optional, Tuple

from app.core.schemas import EmptinessResult
from app.core.scoring_utils import round_half_up

SKIPPED_KEYS = frozenset({"metadata", "tokenUsage"})


def is_non_empty(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and value.strip() == "":
        return False
    if isinstance(value, list) and not any(is_non_empty(item) for item in value):
        return False
    return True


def count_fields(value: Any) -> Tuple[int, int]:
    """(total_fields, non_empty_fields) for value."""
    if value is None:
        return 0, 0

    if isinstance(value, list):
        total = non_empty = 0
        for item in value:
            item_total, item_non_empty = count_fields(item)
            total += item_total
            non_empty += item_non_empty
        return total, non_empty

    if isinstance(value, dict):
        total = non_empty = 0
        for key, item in value.items():
            if key in SKIPPED_KEYS:
                continue
            if isinstance(item, (dict, list)):
                item_total, item_non_empty = count_fields(item)
            else:
                # A null value inside an object is a field that exists but is empty.
                item_total, item_non_empty = 1, int(is_non_empty(item))
            total += item_total
            non_empty += item_non_empty
        return total, non_empty

    return 1, int(is_non_empty(value))


def measure_emptiness(value: Any, expected_total_fields: Optional[int] = None) -> EmptinessResult:
    """
    Percentage of non-empty fields in value.

    With expected_total_fields (a schema's field count), expected_percentage
    compares against that instead; it exceeds 100 when the response filled
    more fields than the schema requires.
    """
    total, non_empty = count_fields(value)
    result = EmptinessResult(
        percentage=round_half_up(non_empty / total * 100) if total > 0 else 0,
        total_fields=total,
        non_empty_fields=non_empty,
    )

    if expected_total_fields is not None:
        result.expected_total_fields = expected_total_fields
        result.expected_percentage = (
            round_half_up(non_empty / expected_total_fields * 100) if expected_total_fields > 0 else 0
        )
    return result

"""
Text normalization helpers shared by the scorers.

Titles and free-text fields coming back from the generator vary in case,
spacing and punctuation. Everything that compares two strings goes through
these helpers so the consensus matcher and the consensus builder agree on
what "the same title" means.
"""

import re
from typing import Any, Optional, Set


_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_YEAR_RE = re.compile(r"(?<!\d)(\d{4})(?!\d)")


def normalize_text(value: str) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    return _WHITESPACE_RE.sub(" ", value.lower().strip())


def normalize_title(value: str) -> str:
    """normalize_text() plus punctuation removal, used for credit grouping."""
    return _WHITESPACE_RE.sub(" ", _PUNCTUATION_RE.sub("", normalize_text(value))).strip()


def _word_set(value: str) -> Set[str]:
    return set(value.split(" ")) if value else set()


def word_set_similarity(first: Optional[str], second: Optional[str]) -> float:
    """
    Jaccard similarity of the word sets of two strings.

    Both strings are normalized first; identical normalized strings score 1.0
    and a missing/empty side scores 0.0.
    """
    if not first or not second:
        return 0.0

    norm_first = normalize_text(first)
    norm_second = normalize_text(second)
    if norm_first == norm_second:
        return 1.0

    words_first = _word_set(norm_first)
    words_second = _word_set(norm_second)
    union = words_first | words_second
    if not union:
        return 0.0
    return len(words_first & words_second) / len(union)


def extract_year(value: Any) -> Optional[int]:
    """Return the first standalone four-digit number in value, if any."""
    if value is None:
        return None
    match = _YEAR_RE.search(str(value))
    return int(match.group(1)) if match else None


def is_blank(value: Any) -> bool:
    """True for None, empty/whitespace strings and empty containers."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, dict, tuple, set)):
        return len(value) == 0
    return False

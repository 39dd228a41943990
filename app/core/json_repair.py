"""
Repair cascade: raw generator text -> parsed JSON value.

Tiers run in increasing order of destructiveness. Each tier is a pure
``str -> Optional[str]`` transform applied to the text the previous tier
left behind; ``None`` means the tier does not apply. A candidate that
parses ends the cascade, so valid JSON always returns from the first tier
untouched.

    1. direct                   text as-is
    2. markdown_unwrap          content of a ``` / ```json fence
    3. syntactic_normalization  trailing commas, bare keys, single quotes, ...
    4. structural_balancing     known bad substrings, missing closers
    5. minimal_extraction       first '{' .. last '}'

If all five fail, recover() can ask the generator once more with a stricter
prompt and rerun the five tiers on the reply. If that fails too the caller
gets an empty but structurally valid record, never an exception.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

from app.core.extraction import empty_extraction
from app.core.generator import GenerationError, TextGenerator, build_strict_prompt, estimate_tokens
from app.core.schemas import RepairReport, TokenUsage

logger = logging.getLogger(__name__)

FALLBACK_TIER = "empty_fallback"

_UNPARSED = object()

_FENCE_RE = re.compile(r"```[ \t]*(?:json)?[ \t]*\r?\n?(.*?)(?:```|\Z)", re.DOTALL | re.IGNORECASE)

# Tier 3
_BLANK_LINES_RE = re.compile(r"\n\s*\n")
_LEADING_NOISE_RE = re.compile(r"^[^{\[]+")
_TRAILING_COMMA_ARRAY_RE = re.compile(r",\s*(\])")
_TRAILING_COMMA_OBJECT_RE = re.compile(r",\s*(\})")
_ADJACENT_ARRAYS_RE = re.compile(r"\](\s*)\[")
_ADJACENT_OBJECTS_RE = re.compile(r"\}(\s*)\{")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)")
_SINGLE_QUOTED_RE = re.compile(r"'([^'\\]*(?:\\.[^'\\]*)*)'")

# Tier 4
_EMPTY_ARRAY_THEN_KEY_RE = re.compile(r'(\[\s*\])([ \t]*)("[^"\n]*"\s*:)')  # "attached_media": [] "id": ...
_VALUE_NEWLINE_KEY_RE = re.compile(r'(["\]}\d]|true|false|null)(\s*\n\s*)("[^"\n]*"\s*:)')
_LEADING_ARRAY_COMMA_RE = re.compile(r"\[\s*,")
_DOUBLE_COMMA_RE = re.compile(r",\s*,")
_DANGLING_COMMA_RE = re.compile(r",\s*$")

_CLOSERS = {"{": "}", "[": "]"}


@dataclass(frozen=True)
class RepairTier:
    name: str
    transform: Callable[[str], Optional[str]]


@dataclass
class RepairOutcome:
    value: Any
    tier: str
    recovered: bool = True
    escalated: bool = False
    attempted_tiers: List[str] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=TokenUsage)

    def report(self) -> RepairReport:
        return RepairReport(
            tier=self.tier,
            escalated=self.escalated,
            recovered=self.recovered,
            attempted_tiers=list(self.attempted_tiers),
        )


def unwrap_markdown(text: str) -> Optional[str]:
    """Content of the first fenced code block, preferring no language or json."""
    if "```" not in text:
        return None
    match = _FENCE_RE.search(text)
    if not match:
        return None
    return match.group(1).strip()


def split_strings(text: str) -> List[Tuple[bool, str]]:
    """
    Split text into (is_string, chunk) pieces.

    String chunks keep their double quotes. An unterminated string runs to
    the end of the text.
    """
    pieces: List[Tuple[bool, str]] = []
    start = 0
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                pieces.append((True, text[start:index + 1]))
                start = index + 1
                in_string = False
            continue

        if char == '"':
            if index > start:
                pieces.append((False, text[start:index]))
            start = index
            in_string = True

    if start < len(text):
        pieces.append((in_string, text[start:]))
    return pieces


def rewrite_outside_strings(text: str, rewrites: Sequence[Tuple["re.Pattern[str]", str]]) -> str:
    """Apply regex substitutions to everything except double-quoted strings."""
    parts = []
    for is_string, chunk in split_strings(text):
        if not is_string:
            for pattern, replacement in rewrites:
                chunk = pattern.sub(replacement, chunk)
        parts.append(chunk)
    return "".join(parts)


def strip_trailing_noise(text: str) -> str:
    """
    Drop whatever follows the last complete top-level value.

    Text that never closes its top-level value is returned unchanged so the
    balancing tier can still close it.
    """
    depth = 0
    end = None
    offset = 0
    for is_string, chunk in split_strings(text):
        if not is_string:
            for index, char in enumerate(chunk):
                if char in _CLOSERS:
                    depth += 1
                elif char in ("}", "]") and depth > 0:
                    depth -= 1
                    if depth == 0:
                        end = offset + index
        offset += len(chunk)

    if end is None or depth > 0:
        return text
    return text[:end + 1]


_SYNTAX_REWRITES = (
    (_TRAILING_COMMA_ARRAY_RE, r"\1"),
    (_TRAILING_COMMA_OBJECT_RE, r"\1"),
    (_ADJACENT_ARRAYS_RE, r"],\1["),
    (_ADJACENT_OBJECTS_RE, r"},\1{"),
    (_BARE_KEY_RE, r'\1"\2"\3'),
    (_SINGLE_QUOTED_RE, r'"\1"'),
)

_BALANCING_REWRITES = (
    (_LEADING_ARRAY_COMMA_RE, "["),
    (_DOUBLE_COMMA_RE, ","),
)


def normalize_syntax(text: str) -> Optional[str]:
    repaired = _BLANK_LINES_RE.sub("\n", text)
    repaired = _LEADING_NOISE_RE.sub("", repaired)
    repaired = strip_trailing_noise(repaired)
    return rewrite_outside_strings(repaired, _SYNTAX_REWRITES)


def close_open_structures(text: str) -> str:
    """
    Append whatever closing tokens are missing, innermost first.

    Brackets inside string literals are ignored. An unterminated string is
    closed before the containers around it. Stray closers are left alone.
    """
    stack: List[str] = []
    in_string = False
    escaped = False

    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(char)
        elif char in ("}", "]") and stack and _CLOSERS[stack[-1]] == char:
            stack.pop()

    if not stack and not in_string:
        return text

    suffix = '"' if in_string else ""
    body = text + suffix
    if not in_string:
        body = _DANGLING_COMMA_RE.sub("", body)
    return body + "".join(_CLOSERS[opener] for opener in reversed(stack))


def balance_structure(text: str) -> Optional[str]:
    repaired = _EMPTY_ARRAY_THEN_KEY_RE.sub(r"\1,\2\3", text)
    repaired = _VALUE_NEWLINE_KEY_RE.sub(r"\1,\2\3", repaired)
    repaired = rewrite_outside_strings(repaired, _BALANCING_REWRITES)
    return close_open_structures(repaired)


def extract_outer_object(text: str) -> Optional[str]:
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last == -1 or first >= last:
        return None
    return text[first:last + 1]


DEFAULT_TIERS: Tuple[RepairTier, ...] = (
    RepairTier("direct", lambda text: text),
    RepairTier("markdown_unwrap", unwrap_markdown),
    RepairTier("syntactic_normalization", normalize_syntax),
    RepairTier("structural_balancing", balance_structure),
    RepairTier("minimal_extraction", extract_outer_object),
)


def _try_parse(candidate: str, tier_name: str) -> Any:
    try:
        return json.loads(candidate)
    except ValueError as e:
        position = getattr(e, "pos", None)
        if position is not None:
            start = max(0, position - 30)
            logger.debug(
                f"[{tier_name}] parse failed at {position}: "
                f"{candidate[start:position]!r}<<<HERE>>>{candidate[position:position + 30]!r}"
            )
        else:
            logger.debug(f"[{tier_name}] parse failed: {e}")
        return _UNPARSED


class RepairCascade:
    """Runs the repair tiers, the optional escalation and the fallback."""

    def __init__(self, tiers: Sequence[RepairTier] = DEFAULT_TIERS):
        self.tiers = tuple(tiers)

    def _run_tiers(self, raw: str) -> Tuple[Any, Optional[str], List[str]]:
        attempted: List[str] = []
        text = raw
        for tier in self.tiers:
            candidate = tier.transform(text)
            if candidate is None:
                continue
            attempted.append(tier.name)
            value = _try_parse(candidate, tier.name)
            if value is not _UNPARSED:
                return value, tier.name, attempted
            text = candidate
        return _UNPARSED, None, attempted

    def repair_local(self, raw: Optional[str]) -> Optional[RepairOutcome]:
        """Tiers 1-5 only. Returns None when nothing parsed."""
        value, tier_name, attempted = self._run_tiers(raw or "")
        if tier_name is None:
            logger.warning(f"Local repair failed after tiers: {', '.join(attempted) or 'none'}")
            return None

        if tier_name != self.tiers[0].name:
            logger.info(f"Recovered JSON with tier '{tier_name}'")
        return RepairOutcome(
            value=value,
            tier=tier_name,
            attempted_tiers=attempted,
            token_usage=TokenUsage(
                completion_tokens=estimate_tokens(raw),
                total_tokens=estimate_tokens(raw),
            ),
        )

    def fallback(self, attempted: Optional[List[str]] = None, escalated: bool = False) -> RepairOutcome:
        return RepairOutcome(
            value=empty_extraction(),
            tier=FALLBACK_TIER,
            recovered=False,
            escalated=escalated,
            attempted_tiers=list(attempted or []),
        )

    async def recover(
        self,
        raw: Optional[str],
        generator: Optional[TextGenerator] = None,
        prompt: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> RepairOutcome:
        """
        Full cascade: local tiers, one regeneration, then the empty fallback.

        The generator is called at most once. GenerationError degrades to the
        fallback; cancellation of the awaiting task propagates.
        """
        local = self.repair_local(raw)
        if local is not None:
            return local

        attempted = [tier.name for tier in self.tiers]
        if generator is None:
            logger.warning("No generator configured for escalation; returning empty record")
            return self.fallback(attempted)

        strict_prompt = prompt
        if not strict_prompt:
            if not raw or not raw.strip():
                logger.warning("Empty response and no prompt to regenerate from; returning empty record")
                return self.fallback(attempted)
            strict_prompt = build_strict_prompt(malformed_response=raw)

        logger.info("Escalating to regeneration with strict JSON prompt")
        try:
            response = await generator.generate(strict_prompt, timeout=timeout)
        except GenerationError as e:
            logger.warning(f"Regeneration failed: {e}; returning empty record")
            return self.fallback(attempted, escalated=True)

        retried = self.repair_local(response)
        if retried is None:
            logger.warning("Regenerated response was unrecoverable; returning empty record")
            return self.fallback(attempted, escalated=True)

        prompt_tokens = estimate_tokens(strict_prompt)
        completion_tokens = estimate_tokens(response)
        retried.escalated = True
        retried.attempted_tiers = attempted + ["regeneration"] + retried.attempted_tiers
        retried.token_usage = TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )
        return retried


def repair_json(raw: Optional[str]) -> Any:
    """Convenience wrapper: local tiers, falling back to the empty record."""
    outcome = RepairCascade().repair_local(raw)
    if outcome is None:
        return empty_extraction()
    return outcome.value

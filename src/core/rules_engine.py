"""Allow-rule validation and matching logic (core domain)."""

from __future__ import annotations

import functools
import re
from typing import Any, Iterable, List

from core.errors import InvalidPattern
from core.fingerprint import normalize_content
from core.models import AllowRule, PatternType

WILDCARD = "*"


def parse_pattern_type(value: Any) -> PatternType:
    """Coerce a raw pattern type, raising InvalidPattern for unknown types."""

    if isinstance(value, PatternType):
        return value
    try:
        return PatternType(str(value).strip().lower())
    except ValueError:
        raise InvalidPattern(f"Unsupported pattern type: {value!r}") from None


def normalize_rule_value(value: str) -> str:
    """Normalize a rule value the same way notice content is normalized.

    Raises InvalidPattern when nothing is left, so empty rules never reach
    a store.
    """

    normalized = normalize_content(value or "")
    if not normalized:
        raise InvalidPattern("Rule value is empty after normalization")
    return normalized


def parse_rule_entries(entries: Iterable[dict]) -> List[tuple[PatternType, str]]:
    """Validate allowlist entries from config.json.

    Disabled entries are skipped; anything else must carry a known type and
    a non-empty value.
    """

    parsed: List[tuple[PatternType, str]] = []
    for entry in entries:
        if not entry.get("enabled", True):
            continue
        pattern_type = parse_pattern_type(entry.get("type", PatternType.EXACT.value))
        parsed.append((pattern_type, normalize_rule_value(entry.get("value", ""))))
    return parsed


@functools.lru_cache(maxsize=512)
def compile_wildcard(value: str) -> re.Pattern:
    """Translate a glob-style value into an anchored regex.

    Only "*" is special; every other character, regex metacharacters
    included, is matched literally.
    """

    body = ".*".join(re.escape(part) for part in value.split(WILDCARD))
    return re.compile(body, re.DOTALL)


def _matches_normalized(normalized: str, rule: AllowRule) -> bool:
    if not rule.value:
        return False
    if rule.pattern_type is PatternType.EXACT:
        return normalized == rule.value
    if rule.pattern_type is PatternType.WILDCARD:
        return compile_wildcard(rule.value).fullmatch(normalized) is not None
    return False


def matches(content: str, rule: AllowRule) -> bool:
    """Return True when the normalized content matches a single rule."""

    return _matches_normalized(normalize_content(content), rule)


def matching_rules(content: str, rules: Iterable[AllowRule]) -> List[AllowRule]:
    """Return every rule matching the content, ordered by rule id."""

    normalized = normalize_content(content)
    hits = [rule for rule in rules if _matches_normalized(normalized, rule)]
    return sorted(hits, key=lambda rule: rule.id)


def matches_any(content: str, rules: Iterable[AllowRule]) -> bool:
    """Return True if at least one rule matches.

    Rule order has no effect on the result; this is a pure predicate over
    the content and the rule set.
    """

    normalized = normalize_content(content)
    return any(_matches_normalized(normalized, rule) for rule in rules)

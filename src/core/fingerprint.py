"""Notice normalization and fingerprinting (core domain)."""

from __future__ import annotations

import hashlib
import html
import re

from core.errors import InvalidNotice

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")


def _strip_markup(text: str) -> str:
    # Tags become spaces so "<p>a</p><p>b</p>" does not glue words together.
    return html.unescape(_TAG_RE.sub(" ", text))


def _collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_content(text: str) -> str:
    """Return the case-preserving form used for pattern matching."""

    return _collapse_whitespace(_strip_markup(text))


def normalize_for_fingerprint(text: str) -> str:
    """Normalize text for deterministic fingerprinting."""

    return normalize_content(text).lower()


def fingerprint(raw_content: str) -> str:
    """Return the SHA-256 fingerprint of a notice.

    Formatting differences (markup, whitespace, case) do not change the
    result, and the digest is stable across process restarts.
    """

    normalized = normalize_for_fingerprint(raw_content)
    if not normalized:
        raise InvalidNotice("Notice content is empty after normalization")
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()

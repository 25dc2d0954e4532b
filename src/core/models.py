"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any storage or UI specific types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

UNKNOWN_SOURCE = "unknown"

UserId = Union[int, str]


class PatternType(str, Enum):
    EXACT = "exact"
    WILDCARD = "wildcard"


class Decision(str, Enum):
    KEEP = "keep"
    SUPPRESS = "suppress"


@dataclass(frozen=True)
class Notice:
    """One logged notice, keyed by its content fingerprint."""

    fingerprint: str
    raw_content: str
    source_hint: str
    first_seen: datetime
    last_seen: datetime
    occurrence_count: int
    suppressed: bool = False


@dataclass(frozen=True)
class AllowRule:
    """An operator-maintained exact or wildcard pattern."""

    id: int
    pattern_type: PatternType
    value: str
    created_by: str
    created_at: datetime
    source_fingerprint: Optional[str] = None
    active: bool = True


@dataclass(frozen=True)
class CapturedNotice:
    """Notice output as handed over by the capture collaborator.

    source_hint is either a ready-made name or the callback that printed the
    notice; core.source_hints turns it into a name.
    """

    raw_content: str
    source_hint: Any = UNKNOWN_SOURCE
    requesting_user_id: Optional[UserId] = None


@dataclass(frozen=True)
class SuppressionOutcome:
    """Decision for a single captured notice and why it was taken."""

    decision: Decision
    reason: str
    fingerprint: Optional[str] = None
    notice: Optional[Notice] = None
    matched_rule_ids: tuple[int, ...] = ()

    @property
    def suppressed(self) -> bool:
        return self.decision is Decision.SUPPRESS


@dataclass(frozen=True)
class LogStatistics:
    """Aggregate numbers over the notice log for reporting."""

    total_notices: int
    total_occurrences: int
    suppressed_notices: int
    top_sources: list[tuple[str, int]]

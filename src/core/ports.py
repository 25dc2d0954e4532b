"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage and authorization adapters so
that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Optional, Protocol

from core.models import AllowRule, LogStatistics, Notice, PatternType, UserId


class NoticeLogPort(Protocol):
    """Bounded log of notices keyed by fingerprint."""

    def record(self, raw_content: str, source_hint: str) -> Notice:
        ...

    def get(self, fingerprint: str) -> Optional[Notice]:
        ...

    def list_notices(self, limit: Optional[int] = None, offset: int = 0) -> list[Notice]:
        ...

    def set_decision(self, fingerprint: str, suppressed: bool) -> None:
        ...

    def evict_if_over_capacity(self) -> int:
        ...

    def cleanup_older_than(self, days: int) -> int:
        ...

    def statistics(self, top: int = 10) -> LogStatistics:
        ...


class AllowlistPort(Protocol):
    """Ordered collection of allow-rules."""

    def add_rule(
        self,
        pattern_type: PatternType,
        value: str,
        created_by: str,
        source_fingerprint: Optional[str] = None,
    ) -> AllowRule:
        ...

    def remove_rule(self, rule_id: int) -> bool:
        ...

    def remove_rule_by_value(self, pattern_type: PatternType, value: str) -> bool:
        ...

    def get_rule(self, rule_id: int) -> Optional[AllowRule]:
        ...

    def set_rule_active(self, rule_id: int, active: bool) -> bool:
        ...

    def list_rules(self) -> list[AllowRule]:
        ...

    def rules_snapshot(self) -> frozenset[AllowRule]:
        ...


class VisibilityPort(Protocol):
    """Per-user switch for participating in global suppression."""

    def get_state(self, user_id: UserId, default: bool) -> bool:
        ...

    def set_state(self, user_id: UserId, enabled: bool) -> bool:
        ...


class AuthorizationPort(Protocol):
    """Yes/no gate consulted before any mutating administrative call."""

    def may_administer(self, actor_id: Optional[UserId]) -> bool:
        ...

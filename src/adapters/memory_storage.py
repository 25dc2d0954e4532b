"""In-memory storage adapter.

Process-local implementation of the core storage ports, used for tests and
for short-lived runs that do not need a database file.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import Counter
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from core.errors import DuplicateRule
from core.fingerprint import fingerprint
from core.models import (
    UNKNOWN_SOURCE,
    AllowRule,
    LogStatistics,
    Notice,
    PatternType,
    UserId,
)
from core.rules_engine import normalize_rule_value, parse_pattern_type

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Fingerprints hash onto a fixed set of locks: the same fingerprint always
# maps to the same lock, while unrelated fingerprints rarely contend.
LOCK_STRIPES = 64


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryNoticeLog:
    """Bounded notice log with per-fingerprint serialization."""

    def __init__(self, capacity: int, clock: Clock = _utcnow) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._clock = clock
        self._entries: dict[str, Notice] = {}
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count(1)
        self._index_lock = threading.Lock()
        self._stripes = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, notice_fingerprint: str) -> threading.Lock:
        return self._stripes[int(notice_fingerprint[:8], 16) % LOCK_STRIPES]

    @staticmethod
    def _merge(
        existing: Optional[Notice],
        notice_fingerprint: str,
        raw_content: str,
        hint: str,
        now: datetime,
    ) -> Notice:
        if existing is None:
            return Notice(
                fingerprint=notice_fingerprint,
                raw_content=raw_content,
                source_hint=hint,
                first_seen=now,
                last_seen=now,
                occurrence_count=1,
            )
        return replace(
            existing,
            last_seen=now,
            occurrence_count=existing.occurrence_count + 1,
            source_hint=hint if existing.source_hint == UNKNOWN_SOURCE else existing.source_hint,
        )

    def record(self, raw_content: str, source_hint: str) -> Notice:
        notice_fingerprint = fingerprint(raw_content)
        hint = source_hint or UNKNOWN_SOURCE
        with self._lock_for(notice_fingerprint):
            now = self._clock()
            existing = self._entries.get(notice_fingerprint)
            notice = self._merge(existing, notice_fingerprint, raw_content, hint, now)
            with self._index_lock:
                # Eviction only holds the index lock, so the entry may have
                # been dropped since it was read; it then starts over at 1.
                current = self._entries.get(notice_fingerprint)
                if current is not existing:
                    notice = self._merge(current, notice_fingerprint, raw_content, hint, now)
                self._entries[notice_fingerprint] = notice
                self._sequence[notice_fingerprint] = next(self._counter)
        self.evict_if_over_capacity()
        return notice

    def get(self, fingerprint: str) -> Optional[Notice]:
        return self._entries.get(fingerprint)

    def _ordered_locked(self) -> list[Notice]:
        # Caller holds _index_lock.
        return sorted(
            self._entries.values(),
            key=lambda notice: (notice.last_seen, self._sequence.get(notice.fingerprint, 0)),
            reverse=True,
        )

    def _ordered(self) -> list[Notice]:
        with self._index_lock:
            return self._ordered_locked()

    def list_notices(self, limit: Optional[int] = None, offset: int = 0) -> list[Notice]:
        ordered = self._ordered()[max(offset, 0):]
        if limit is None:
            return ordered
        return ordered[: max(limit, 0)]

    def count(self) -> int:
        return len(self._entries)

    def set_decision(self, fingerprint: str, suppressed: bool) -> None:
        with self._lock_for(fingerprint), self._index_lock:
            # Evicted notices stay evicted.
            existing = self._entries.get(fingerprint)
            if existing is None:
                return
            self._entries[fingerprint] = replace(existing, suppressed=suppressed)

    def _drop_locked(self, fingerprints: list[str]) -> None:
        for key in fingerprints:
            self._entries.pop(key, None)
            self._sequence.pop(key, None)

    def evict_if_over_capacity(self) -> int:
        # Victims are picked and dropped under one hold of the index lock.
        with self._index_lock:
            ordered = self._ordered_locked()
            if len(ordered) <= self._capacity:
                return 0
            evicted = [notice.fingerprint for notice in ordered[self._capacity:]]
            self._drop_locked(evicted)
        LOGGER.info("Evicted %s notices over capacity %s", len(evicted), self._capacity)
        return len(evicted)

    def cleanup_older_than(self, days: int) -> int:
        cutoff = self._clock() - timedelta(days=days)
        with self._index_lock:
            stale = [key for key, notice in self._entries.items() if notice.last_seen < cutoff]
            self._drop_locked(stale)
        return len(stale)

    def statistics(self, top: int = 10) -> LogStatistics:
        notices = self._ordered()
        per_source: Counter[str] = Counter()
        for notice in notices:
            per_source[notice.source_hint] += notice.occurrence_count
        ranked = sorted(per_source.items(), key=lambda item: (-item[1], item[0]))
        return LogStatistics(
            total_notices=len(notices),
            total_occurrences=sum(notice.occurrence_count for notice in notices),
            suppressed_notices=sum(1 for notice in notices if notice.suppressed),
            top_sources=ranked[:top],
        )


class InMemoryAllowlist:
    """Allow-rules held in an immutable tuple that is swapped on every change.

    Readers always see either the old or the new tuple, never a partially
    applied mutation.
    """

    def __init__(self, clock: Clock = _utcnow) -> None:
        self._clock = clock
        self._rules: tuple[AllowRule, ...] = ()
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def add_rule(
        self,
        pattern_type: PatternType,
        value: str,
        created_by: str,
        source_fingerprint: Optional[str] = None,
    ) -> AllowRule:
        normalized = normalize_rule_value(value)
        pattern_type = parse_pattern_type(pattern_type)
        with self._lock:
            for rule in self._rules:
                if rule.pattern_type is pattern_type and rule.value == normalized:
                    raise DuplicateRule(f"{pattern_type.value} rule {normalized!r} already exists")
            rule = AllowRule(
                id=next(self._ids),
                pattern_type=pattern_type,
                value=normalized,
                created_by=created_by,
                created_at=self._clock(),
                source_fingerprint=source_fingerprint,
            )
            self._rules = self._rules + (rule,)
        return rule

    def _remove_where(self, predicate: Callable[[AllowRule], bool]) -> bool:
        with self._lock:
            kept = tuple(rule for rule in self._rules if not predicate(rule))
            removed = len(kept) != len(self._rules)
            self._rules = kept
        return removed

    def remove_rule(self, rule_id: int) -> bool:
        return self._remove_where(lambda rule: rule.id == rule_id)

    def remove_rule_by_value(self, pattern_type: PatternType, value: str) -> bool:
        normalized = normalize_rule_value(value)
        pattern_type = parse_pattern_type(pattern_type)
        return self._remove_where(
            lambda rule: rule.pattern_type is pattern_type and rule.value == normalized
        )

    def get_rule(self, rule_id: int) -> Optional[AllowRule]:
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        return None

    def set_rule_active(self, rule_id: int, active: bool) -> bool:
        with self._lock:
            updated = tuple(
                replace(rule, active=active) if rule.id == rule_id else rule for rule in self._rules
            )
            found = any(rule.id == rule_id for rule in self._rules)
            self._rules = updated
        return found

    def list_rules(self) -> list[AllowRule]:
        return list(self._rules)

    def rules_snapshot(self) -> frozenset[AllowRule]:
        rules = self._rules
        return frozenset(rule for rule in rules if rule.active)


class InMemoryVisibilityStore:
    """Per-user suppression switch kept in a dict."""

    def __init__(self) -> None:
        self._states: dict[str, bool] = {}
        self._lock = threading.Lock()

    def get_state(self, user_id: Optional[UserId], default: bool) -> bool:
        if user_id is None:
            return default
        return self._states.get(str(user_id), default)

    def set_state(self, user_id: UserId, enabled: bool) -> bool:
        if user_id is None:
            raise ValueError("user_id is required to store a visibility state")
        with self._lock:
            self._states[str(user_id)] = bool(enabled)
        return True

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from adapters.memory_storage import InMemoryAllowlist, InMemoryNoticeLog, InMemoryVisibilityStore
from core.errors import DuplicateRule, InvalidNotice, InvalidPattern
from core.fingerprint import fingerprint
from core.models import PatternType


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


def test_record_creates_then_increments() -> None:
    clock = Clock()
    log = InMemoryNoticeLog(capacity=10, clock=clock)

    first = log.record("Plugin X updated.", "unknown")
    clock.advance(seconds=5)
    second = log.record(" Plugin   X updated. ", "Updater::notice")

    assert first.occurrence_count == 1
    assert second.occurrence_count == 2
    assert second.first_seen == first.first_seen
    assert second.last_seen == first.last_seen + timedelta(seconds=5)
    # The first capture's text is kept; an unknown hint is replaced once known.
    assert second.raw_content == "Plugin X updated."
    assert second.source_hint == "Updater::notice"


def test_record_keeps_first_known_source_hint() -> None:
    log = InMemoryNoticeLog(capacity=10)
    log.record("same", "First::hint")
    notice = log.record("same", "Second::hint")

    assert notice.source_hint == "First::hint"


def test_record_rejects_empty_content() -> None:
    log = InMemoryNoticeLog(capacity=10)

    with pytest.raises(InvalidNotice):
        log.record("  ", "unknown")
    assert log.count() == 0


def test_capacity_evicts_least_recently_seen() -> None:
    clock = Clock()
    log = InMemoryNoticeLog(capacity=3, clock=clock)
    for text in ("a", "b", "c"):
        log.record(text, "unknown")
        clock.advance(seconds=1)
    # Touching "a" makes "b" the least recently seen.
    log.record("a", "unknown")
    clock.advance(seconds=1)
    log.record("d", "unknown")

    contents = [notice.raw_content for notice in log.list_notices()]
    assert contents == ["d", "a", "c"]
    assert log.count() == 3


def test_capacity_holds_with_identical_timestamps() -> None:
    clock = Clock()
    log = InMemoryNoticeLog(capacity=2, clock=clock)
    for text in ("a", "b", "c", "d"):
        log.record(text, "unknown")

    assert [notice.raw_content for notice in log.list_notices()] == ["d", "c"]


def test_list_notices_paginates() -> None:
    clock = Clock()
    log = InMemoryNoticeLog(capacity=10, clock=clock)
    for index in range(5):
        log.record(f"notice {index}", "unknown")
        clock.advance(minutes=1)

    page = log.list_notices(limit=2, offset=1)

    assert [notice.raw_content for notice in page] == ["notice 3", "notice 2"]
    assert log.list_notices(limit=0) == []
    assert len(log.list_notices(offset=10)) == 0


def test_set_decision_updates_reporting_flag() -> None:
    log = InMemoryNoticeLog(capacity=10)
    notice = log.record("x", "unknown")

    log.set_decision(notice.fingerprint, True)
    assert log.get(notice.fingerprint).suppressed is True
    # Unknown fingerprints are ignored.
    log.set_decision("0" * 64, True)


def test_cleanup_older_than_uses_last_seen() -> None:
    clock = Clock()
    log = InMemoryNoticeLog(capacity=10, clock=clock)
    log.record("old", "unknown")
    clock.advance(days=10)
    log.record("fresh", "unknown")
    clock.advance(days=25)

    removed = log.cleanup_older_than(30)

    assert removed == 1
    assert [notice.raw_content for notice in log.list_notices()] == ["fresh"]


def test_statistics_ranks_sources_by_occurrences() -> None:
    log = InMemoryNoticeLog(capacity=10)
    log.record("a", "Alpha::run")
    log.record("a", "Alpha::run")
    log.record("b", "Beta::run")
    notice = log.record("c", "Beta::run")
    log.record("d", "Gamma::run")
    log.set_decision(notice.fingerprint, True)

    stats = log.statistics(top=2)

    assert stats.total_notices == 4
    assert stats.total_occurrences == 5
    assert stats.suppressed_notices == 1
    assert stats.top_sources == [("Alpha::run", 2), ("Beta::run", 2)]


def test_concurrent_records_never_lose_increments() -> None:
    log = InMemoryNoticeLog(capacity=10)
    workers = 8
    per_worker = 200
    barrier = threading.Barrier(workers)

    def worker() -> None:
        barrier.wait()
        for _ in range(per_worker):
            log.record("Plugin X updated.", "unknown")

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    [notice] = log.list_notices()
    assert notice.occurrence_count == workers * per_worker


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        InMemoryNoticeLog(capacity=0)


def test_allowlist_round_trip_and_snapshot() -> None:
    allowlist = InMemoryAllowlist()
    first = allowlist.add_rule(PatternType.WILDCARD, "*updated*", created_by="admin")
    second = allowlist.add_rule(PatternType.EXACT, "MyClass::method", created_by="admin", source_fingerprint="abc")

    assert [rule.id for rule in allowlist.list_rules()] == [first.id, second.id]
    assert second.source_fingerprint == "abc"
    assert allowlist.rules_snapshot() == frozenset({first, second})

    allowlist.set_rule_active(first.id, False)
    snapshot = allowlist.rules_snapshot()
    assert [rule.id for rule in snapshot] == [second.id]

    assert allowlist.remove_rule_by_value("exact", " MyClass::method ") is True
    assert allowlist.remove_rule_by_value(PatternType.EXACT, "MyClass::method") is False
    assert allowlist.remove_rule(999) is False
    # A snapshot taken earlier is not affected by later changes.
    assert [rule.id for rule in snapshot] == [second.id]


def test_allowlist_validation() -> None:
    allowlist = InMemoryAllowlist()
    allowlist.add_rule(PatternType.EXACT, "value", created_by="admin")

    with pytest.raises(DuplicateRule):
        allowlist.add_rule(PatternType.EXACT, "value", created_by="other")
    with pytest.raises(InvalidPattern):
        allowlist.add_rule(PatternType.EXACT, "", created_by="admin")
    with pytest.raises(InvalidPattern):
        allowlist.add_rule("glob", "value", created_by="admin")


def test_concurrent_rule_adds_keep_unique_values() -> None:
    allowlist = InMemoryAllowlist()
    errors: list[Exception] = []

    def worker(index: int) -> None:
        for value in range(20):
            try:
                allowlist.add_rule(PatternType.EXACT, f"rule {value}", created_by=str(index))
            except DuplicateRule as exc:
                errors.append(exc)

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    rules = allowlist.list_rules()
    assert len(rules) == 20
    assert len({rule.id for rule in rules}) == 20
    assert len(errors) == 60


def test_visibility_defaults_and_updates() -> None:
    visibility = InMemoryVisibilityStore()

    assert visibility.get_state(None, default=True) is True
    assert visibility.get_state("5", default=False) is False

    visibility.set_state(5, False)
    assert visibility.get_state("5", default=True) is False
    visibility.set_state("5", True)
    assert visibility.get_state(5, default=False) is True

    with pytest.raises(ValueError):
        visibility.set_state(None, True)


class HookedEntries(dict):
    """Runs a callback once, right after `key` is read outside the index lock."""

    def __init__(self, data: dict, lock, key: str, callback) -> None:
        super().__init__(data)
        self._lock = lock
        self._key = key
        self._callback = callback

    def get(self, key, default=None):
        value = super().get(key, default)
        if key == self._key and self._callback is not None and not self._lock.locked():
            callback, self._callback = self._callback, None
            callback()
        return value


def _text_on_other_stripe(log: InMemoryNoticeLog, notice_fingerprint: str) -> str:
    for index in range(1000):
        text = f"other notice {index}"
        if log._lock_for(fingerprint(text)) is not log._lock_for(notice_fingerprint):
            return text
    raise AssertionError("no text on another lock stripe")


def test_record_racing_eviction_starts_over() -> None:
    log = InMemoryNoticeLog(capacity=1, clock=Clock())
    log.record("a", "unknown")
    first = log.record("a", "unknown")
    assert first.occurrence_count == 2
    other = _text_on_other_stripe(log, first.fingerprint)
    log._entries = HookedEntries(
        log._entries, log._index_lock, first.fingerprint, lambda: log.record(other, "unknown")
    )

    notice = log.record("a", "unknown")

    assert notice.occurrence_count == 1
    assert log.count() == 1
    assert [entry.fingerprint for entry in log.list_notices()] == [first.fingerprint]


def test_set_decision_does_not_restore_evicted_notice() -> None:
    log = InMemoryNoticeLog(capacity=1, clock=Clock())
    evicted = log.record("a", "unknown")
    log.record("b", "unknown")

    log.set_decision(evicted.fingerprint, True)

    assert log.get(evicted.fingerprint) is None
    assert log.count() == 1


def test_capacity_holds_under_concurrent_records_and_decisions() -> None:
    log = InMemoryNoticeLog(capacity=5)
    workers = 6
    barrier = threading.Barrier(workers)

    def worker(index: int) -> None:
        barrier.wait()
        for step in range(100):
            notice = log.record(f"notice {index} {step % 10}", "unknown")
            log.set_decision(notice.fingerprint, step % 2 == 0)

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert log.count() <= 5
    assert len(log.list_notices()) == log.count()

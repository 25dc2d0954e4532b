from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from adapters.sqlite_storage import SQLiteStorage
from core.errors import DuplicateRule, ErrorKind, InvalidNotice, InvalidPattern, StorageUnavailable
from core.models import PatternType


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


def _storage(tmp_path: Path, capacity: int = 10, clock: Clock | None = None) -> SQLiteStorage:
    kwargs = {"clock": clock} if clock is not None else {}
    storage = SQLiteStorage(str(tmp_path / "noticeguard.db"), log_capacity=capacity, timeout=30.0, **kwargs)
    storage.init_db()
    return storage


def test_record_increments_existing_notice(tmp_path: Path) -> None:
    clock = Clock()
    storage = _storage(tmp_path, clock=clock)

    first = storage.notices.record("Plugin X updated.", "unknown")
    clock.advance(seconds=3)
    second = storage.notices.record("<p>Plugin   X updated.</p>", "Updater::notice")

    assert first.fingerprint == second.fingerprint
    assert second.occurrence_count == 2
    assert second.first_seen == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert second.last_seen == datetime(2024, 1, 1, 0, 0, 3, tzinfo=timezone.utc)
    assert second.raw_content == "Plugin X updated."
    assert second.source_hint == "Updater::notice"
    assert storage.notices.count() == 1


def test_record_rejects_empty_content(tmp_path: Path) -> None:
    storage = _storage(tmp_path)

    with pytest.raises(InvalidNotice):
        storage.notices.record("<div> </div>", "unknown")
    assert storage.notices.count() == 0


def test_capacity_evicts_least_recently_seen(tmp_path: Path) -> None:
    clock = Clock()
    storage = _storage(tmp_path, capacity=3, clock=clock)
    for text in ("a", "b", "c"):
        storage.notices.record(text, "unknown")
        clock.advance(seconds=1)
    storage.notices.record("a", "unknown")
    clock.advance(seconds=1)
    storage.notices.record("d", "unknown")

    contents = [notice.raw_content for notice in storage.notices.list_notices()]
    assert contents == ["d", "a", "c"]


def test_capacity_holds_with_identical_timestamps(tmp_path: Path) -> None:
    storage = _storage(tmp_path, capacity=2, clock=Clock())
    for text in ("a", "b", "c", "d"):
        storage.notices.record(text, "unknown")

    assert [notice.raw_content for notice in storage.notices.list_notices()] == ["d", "c"]
    assert storage.notices.evict_if_over_capacity() == 0


def test_list_notices_paginates(tmp_path: Path) -> None:
    clock = Clock()
    storage = _storage(tmp_path, clock=clock)
    for index in range(5):
        storage.notices.record(f"notice {index}", "unknown")
        clock.advance(minutes=1)

    page = storage.notices.list_notices(limit=2, offset=1)

    assert [notice.raw_content for notice in page] == ["notice 3", "notice 2"]
    assert len(storage.notices.list_notices()) == 5
    assert storage.notices.list_notices(limit=0) == []


def test_set_decision_and_statistics(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    storage.notices.record("a", "Alpha::run")
    storage.notices.record("a", "Alpha::run")
    notice = storage.notices.record("b", "Beta::run")
    storage.notices.record("c", "unknown")
    storage.notices.set_decision(notice.fingerprint, True)

    stats = storage.notices.statistics(top=2)

    assert storage.notices.get(notice.fingerprint).suppressed is True
    assert stats.total_notices == 3
    assert stats.total_occurrences == 4
    assert stats.suppressed_notices == 1
    assert stats.top_sources == [("Alpha::run", 2), ("Beta::run", 1)]


def test_statistics_on_empty_log(tmp_path: Path) -> None:
    stats = _storage(tmp_path).notices.statistics()

    assert stats.total_notices == 0
    assert stats.total_occurrences == 0
    assert stats.top_sources == []


def test_cleanup_older_than(tmp_path: Path) -> None:
    clock = Clock()
    storage = _storage(tmp_path, clock=clock)
    storage.notices.record("old", "unknown")
    clock.advance(days=10)
    storage.notices.record("fresh", "unknown")
    clock.advance(days=25)

    assert storage.notices.cleanup_older_than(30) == 1
    assert [notice.raw_content for notice in storage.notices.list_notices()] == ["fresh"]


def test_concurrent_records_never_lose_increments(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    workers = 4
    per_worker = 25
    failures: list[Exception] = []

    def worker() -> None:
        for _ in range(per_worker):
            try:
                storage.notices.record("Plugin X updated.", "unknown")
            except StorageUnavailable as exc:
                failures.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert failures == []
    [notice] = storage.notices.list_notices()
    assert notice.occurrence_count == workers * per_worker


def test_allowlist_round_trip(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    allowlist = storage.allowlist

    wildcard = allowlist.add_rule(PatternType.WILDCARD, " *Category  added* ", created_by="admin")
    exact = allowlist.add_rule(PatternType.EXACT, "MyClass::method", created_by="admin", source_fingerprint="f" * 64)

    assert wildcard.value == "*Category added*"
    assert exact.source_fingerprint == "f" * 64
    assert allowlist.list_rules() == [wildcard, exact]
    assert allowlist.get_rule(exact.id) == exact

    assert allowlist.remove_rule(wildcard.id) is True
    assert allowlist.remove_rule(wildcard.id) is False
    assert allowlist.list_rules() == [exact]

    assert allowlist.remove_rule_by_value("exact", "MyClass::method") is True
    assert allowlist.list_rules() == []


def test_allowlist_rejects_duplicates_and_invalid_values(tmp_path: Path) -> None:
    allowlist = _storage(tmp_path).allowlist
    allowlist.add_rule(PatternType.EXACT, "value", created_by="admin")

    with pytest.raises(DuplicateRule) as excinfo:
        allowlist.add_rule(PatternType.EXACT, "  value ", created_by="admin")
    assert excinfo.value.kind is ErrorKind.DUPLICATE_RULE
    with pytest.raises(InvalidPattern):
        allowlist.add_rule(PatternType.WILDCARD, "", created_by="admin")
    with pytest.raises(InvalidPattern):
        allowlist.add_rule("regex", "value", created_by="admin")
    assert len(allowlist.list_rules()) == 1


def test_snapshot_excludes_inactive_rules(tmp_path: Path) -> None:
    allowlist = _storage(tmp_path).allowlist
    first = allowlist.add_rule(PatternType.WILDCARD, "*a*", created_by="admin")
    second = allowlist.add_rule(PatternType.WILDCARD, "*b*", created_by="admin")

    assert allowlist.set_rule_active(first.id, False) is True
    assert allowlist.set_rule_active(999, False) is False

    snapshot = allowlist.rules_snapshot()
    assert {rule.id for rule in snapshot} == {second.id}
    assert allowlist.get_rule(first.id).active is False


def test_visibility_defaults_and_updates(tmp_path: Path) -> None:
    visibility = _storage(tmp_path).visibility

    assert visibility.get_state(None, default=True) is True
    assert visibility.get_state("5", default=False) is False

    visibility.set_state(5, False)
    assert visibility.get_state("5", default=True) is False
    visibility.set_state("5", True)
    assert visibility.get_state(5, default=False) is True

    with pytest.raises(ValueError):
        visibility.set_state(None, True)


def test_data_survives_reopen(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    notice = storage.notices.record("Plugin X updated.", "unknown")
    rule = storage.allowlist.add_rule(PatternType.EXACT, "Plugin X updated.", created_by="admin")

    reopened = _storage(tmp_path)

    assert reopened.notices.get(notice.fingerprint) == notice
    assert reopened.allowlist.list_rules() == [rule]


def test_unreachable_database_raises_storage_unavailable(tmp_path: Path) -> None:
    storage = SQLiteStorage(str(tmp_path / "missing" / "noticeguard.db"), log_capacity=10)

    with pytest.raises(StorageUnavailable) as excinfo:
        storage.init_db()
    assert excinfo.value.retryable


def test_locked_database_raises_storage_unavailable(tmp_path: Path) -> None:
    storage = _storage(tmp_path)
    storage = SQLiteStorage(storage.db_path, log_capacity=10, timeout=0.05)
    blocker = sqlite3.connect(storage.db_path)
    try:
        blocker.execute("BEGIN EXCLUSIVE")
        with pytest.raises(StorageUnavailable):
            storage.notices.record("Plugin X updated.", "unknown")
    finally:
        blocker.rollback()
        blocker.close()

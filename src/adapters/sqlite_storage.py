"""SQLite storage adapter.

Implements the core NoticeLogPort, AllowlistPort and VisibilityPort using a
single SQLite database with one table per store.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional

from core.errors import DuplicateRule, StorageUnavailable
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


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value: datetime) -> str:
    # Fixed-width ISO strings keep lexical and chronological order in sync.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db(value: str) -> datetime:
    return datetime.fromisoformat(value)


class _SQLiteStore:
    """Connection handling shared by the three stores."""

    def __init__(self, db_path: str, timeout: float = 5.0, clock: Clock = _utcnow) -> None:
        self._db_path = db_path
        self._timeout = timeout
        self._clock = clock

    @property
    def db_path(self) -> str:
        return self._db_path

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside one transaction.

        Any sqlite3 failure, including lock timeouts, rolls the transaction
        back and surfaces as StorageUnavailable.
        """

        try:
            conn = sqlite3.connect(self._db_path, timeout=self._timeout)
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Cannot open {self._db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            LOGGER.warning("SQLite operation failed on %s: %s", self._db_path, exc)
            raise StorageUnavailable(f"SQLite operation failed: {exc}") from exc
        finally:
            conn.close()


class SQLiteNoticeLog(_SQLiteStore):
    """Bounded notice log; least recently seen entries are evicted first."""

    def __init__(
        self,
        db_path: str,
        capacity: int,
        timeout: float = 5.0,
        clock: Clock = _utcnow,
    ) -> None:
        super().__init__(db_path, timeout=timeout, clock=clock)
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._capacity = capacity

    @staticmethod
    def _row_to_notice(row: sqlite3.Row) -> Notice:
        return Notice(
            fingerprint=row["fingerprint"],
            raw_content=row["raw_content"],
            source_hint=row["source_hint"],
            first_seen=_from_db(row["first_seen"]),
            last_seen=_from_db(row["last_seen"]),
            occurrence_count=int(row["occurrence_count"]),
            suppressed=bool(row["suppressed"]),
        )

    def record(self, raw_content: str, source_hint: str) -> Notice:
        """Insert a notice or bump the counters of an existing one.

        The increment happens inside one UPSERT statement, so concurrent
        writers of the same fingerprint never lose an update. SQLite holds a
        single write lock per file, so records of unrelated fingerprints
        also wait on each other.
        """

        notice_fingerprint = fingerprint(raw_content)
        now = _to_db(self._clock())
        hint = source_hint or UNKNOWN_SOURCE
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO notices (
                    fingerprint,
                    raw_content,
                    source_hint,
                    first_seen,
                    last_seen,
                    occurrence_count,
                    suppressed,
                    seen_seq
                ) VALUES (?, ?, ?, ?, ?, 1, 0, (SELECT COALESCE(MAX(seen_seq), 0) + 1 FROM notices))
                ON CONFLICT(fingerprint) DO UPDATE SET
                    last_seen = excluded.last_seen,
                    occurrence_count = notices.occurrence_count + 1,
                    seen_seq = excluded.seen_seq,
                    source_hint = CASE
                        WHEN notices.source_hint = ? THEN excluded.source_hint
                        ELSE notices.source_hint
                    END
                """,
                (notice_fingerprint, raw_content, hint, now, now, UNKNOWN_SOURCE),
            )
            row = conn.execute(
                "SELECT * FROM notices WHERE fingerprint = ?",
                (notice_fingerprint,),
            ).fetchone()
            self._evict(conn)
        return self._row_to_notice(row)

    def get(self, fingerprint: str) -> Optional[Notice]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM notices WHERE fingerprint = ?",
                (fingerprint,),
            ).fetchone()
        return self._row_to_notice(row) if row else None

    def list_notices(self, limit: Optional[int] = None, offset: int = 0) -> list[Notice]:
        """Return notices, most recently seen first."""

        # SQLite treats a negative LIMIT as "no limit".
        sql_limit = -1 if limit is None else max(limit, 0)
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM notices
                ORDER BY last_seen DESC, seen_seq DESC
                LIMIT ? OFFSET ?
                """,
                (sql_limit, max(offset, 0)),
            ).fetchall()
        return [self._row_to_notice(row) for row in rows]

    def count(self) -> int:
        with self._transaction() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM notices").fetchone()
        return int(row["total"])

    def set_decision(self, fingerprint: str, suppressed: bool) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE notices SET suppressed = ? WHERE fingerprint = ?",
                (int(suppressed), fingerprint),
            )

    def _evict(self, conn: sqlite3.Connection) -> int:
        cur = conn.execute(
            """
            DELETE FROM notices WHERE fingerprint IN (
                SELECT fingerprint FROM notices
                ORDER BY last_seen DESC, seen_seq DESC
                LIMIT -1 OFFSET ?
            )
            """,
            (self._capacity,),
        )
        if cur.rowcount > 0:
            LOGGER.info("Evicted %s notices over capacity %s", cur.rowcount, self._capacity)
        return max(cur.rowcount, 0)

    def evict_if_over_capacity(self) -> int:
        """Drop least recently seen notices until the log fits its capacity."""

        with self._transaction() as conn:
            return self._evict(conn)

    def cleanup_older_than(self, days: int) -> int:
        """Delete notices not seen for `days` days and return the number removed."""

        cutoff = self._clock() - timedelta(days=days)
        with self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM notices WHERE last_seen < ?",
                (_to_db(cutoff),),
            )
            return cur.rowcount

    def statistics(self, top: int = 10) -> LogStatistics:
        with self._transaction() as conn:
            totals = conn.execute(
                """
                SELECT
                    COUNT(*) AS notices,
                    COALESCE(SUM(occurrence_count), 0) AS occurrences,
                    COALESCE(SUM(suppressed), 0) AS suppressed
                FROM notices
                """
            ).fetchone()
            sources = conn.execute(
                """
                SELECT source_hint, SUM(occurrence_count) AS total
                FROM notices
                GROUP BY source_hint
                ORDER BY total DESC, source_hint ASC
                LIMIT ?
                """,
                (top,),
            ).fetchall()
        return LogStatistics(
            total_notices=int(totals["notices"]),
            total_occurrences=int(totals["occurrences"]),
            suppressed_notices=int(totals["suppressed"]),
            top_sources=[(row["source_hint"], int(row["total"])) for row in sources],
        )


class SQLiteAllowlist(_SQLiteStore):
    """Allow-rules with a unique (pattern_type, value) index."""

    @staticmethod
    def _row_to_rule(row: sqlite3.Row) -> AllowRule:
        return AllowRule(
            id=int(row["id"]),
            pattern_type=PatternType(row["pattern_type"]),
            value=row["value"],
            created_by=row["created_by"],
            created_at=_from_db(row["created_at"]),
            source_fingerprint=row["source_fingerprint"],
            active=bool(row["active"]),
        )

    def add_rule(
        self,
        pattern_type: PatternType,
        value: str,
        created_by: str,
        source_fingerprint: Optional[str] = None,
    ) -> AllowRule:
        normalized = normalize_rule_value(value)
        pattern_type = parse_pattern_type(pattern_type)
        with self._transaction() as conn:
            try:
                cur = conn.execute(
                    """
                    INSERT INTO allow_rules (
                        pattern_type,
                        value,
                        created_by,
                        created_at,
                        source_fingerprint,
                        active
                    ) VALUES (?, ?, ?, ?, ?, 1)
                    """,
                    (
                        pattern_type.value,
                        normalized,
                        created_by,
                        _to_db(self._clock()),
                        source_fingerprint,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateRule(
                    f"{pattern_type.value} rule {normalized!r} already exists"
                ) from exc
            row = conn.execute(
                "SELECT * FROM allow_rules WHERE id = ?",
                (cur.lastrowid,),
            ).fetchone()
        return self._row_to_rule(row)

    def remove_rule(self, rule_id: int) -> bool:
        with self._transaction() as conn:
            cur = conn.execute("DELETE FROM allow_rules WHERE id = ?", (rule_id,))
            return cur.rowcount > 0

    def remove_rule_by_value(self, pattern_type: PatternType, value: str) -> bool:
        normalized = normalize_rule_value(value)
        with self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM allow_rules WHERE pattern_type = ? AND value = ?",
                (parse_pattern_type(pattern_type).value, normalized),
            )
            return cur.rowcount > 0

    def get_rule(self, rule_id: int) -> Optional[AllowRule]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM allow_rules WHERE id = ?", (rule_id,)).fetchone()
        return self._row_to_rule(row) if row else None

    def set_rule_active(self, rule_id: int, active: bool) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE allow_rules SET active = ? WHERE id = ?",
                (int(active), rule_id),
            )
            return cur.rowcount > 0

    def list_rules(self) -> list[AllowRule]:
        """Return all rules in insertion order, inactive ones included."""

        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM allow_rules ORDER BY id ASC").fetchall()
        return [self._row_to_rule(row) for row in rows]

    def rules_snapshot(self) -> frozenset[AllowRule]:
        """Return the active rules as read by one SELECT."""

        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM allow_rules WHERE active = 1").fetchall()
        return frozenset(self._row_to_rule(row) for row in rows)


class SQLiteVisibilityStore(_SQLiteStore):
    """Per-user suppression switch."""

    def get_state(self, user_id: Optional[UserId], default: bool) -> bool:
        if user_id is None:
            return default
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT enabled FROM user_visibility WHERE user_id = ?",
                (str(user_id),),
            ).fetchone()
        return bool(row["enabled"]) if row else default

    def set_state(self, user_id: UserId, enabled: bool) -> bool:
        if user_id is None:
            raise ValueError("user_id is required to store a visibility state")
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO user_visibility (user_id, enabled, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    enabled = excluded.enabled,
                    updated_at = excluded.updated_at
                """,
                (str(user_id), int(enabled), _to_db(self._clock())),
            )
        return True


class SQLiteStorage(_SQLiteStore):
    """Owns the database file and hands out the three stores."""

    def __init__(
        self,
        db_path: str,
        log_capacity: int,
        timeout: float = 5.0,
        clock: Clock = _utcnow,
    ) -> None:
        super().__init__(db_path, timeout=timeout, clock=clock)
        self.notices = SQLiteNoticeLog(db_path, log_capacity, timeout=timeout, clock=clock)
        self.allowlist = SQLiteAllowlist(db_path, timeout=timeout, clock=clock)
        self.visibility = SQLiteVisibilityStore(db_path, timeout=timeout, clock=clock)

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - notices: one row per fingerprint with counters and last decision
        - allow_rules: operator rules with provenance
        - user_visibility: per-user suppression switch
        """

        with self._transaction() as conn:
            # notices is bounded by capacity; seen_seq orders records that
            # share a last_seen timestamp.
            # Fields:
            # - fingerprint: SHA-256 of normalized content (PRIMARY KEY)
            # - raw_content: text of the first capture
            # - source_hint: originating component or "unknown"
            # - first_seen / last_seen: UTC ISO timestamps
            # - occurrence_count: number of captures
            # - suppressed: last decision, for reporting only
            # - seen_seq: global record sequence
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notices (
                    fingerprint TEXT PRIMARY KEY,
                    raw_content TEXT NOT NULL,
                    source_hint TEXT NOT NULL,
                    first_seen TIMESTAMP NOT NULL,
                    last_seen TIMESTAMP NOT NULL,
                    occurrence_count INTEGER NOT NULL,
                    suppressed INTEGER NOT NULL DEFAULT 0,
                    seen_seq INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_notices_recency ON notices (last_seen, seen_seq)"
            )
            # allow_rules keeps insertion order through its autoincrement id.
            # source_fingerprint is a plain column, not a foreign key; it may
            # point at a notice that has since been evicted.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS allow_rules (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    pattern_type TEXT NOT NULL,
                    value TEXT NOT NULL,
                    created_by TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    source_fingerprint TEXT,
                    active INTEGER NOT NULL DEFAULT 1,
                    UNIQUE (pattern_type, value)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS user_visibility (
                    user_id TEXT PRIMARY KEY,
                    enabled INTEGER NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )

"""SQLite database management for specs and their full-text index."""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from spec_mcp.errors import VersionConflictError
from spec_mcp.store.models import (
    SORT_FIELDS,
    SORT_ORDERS,
    ExecLog,
    IndexStats,
    IntegrityReport,
    IssueLog,
    Spec,
    SpecPage,
    Todo,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"

SCHEMA_SQL = """
-- specmcp schema v1.0
-- specs is authoritative; specs_fts is a derived projection kept in lockstep by triggers

PRAGMA journal_mode = WAL;

CREATE TABLE IF NOT EXISTS specs (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    title       TEXT NOT NULL,
    body_md     TEXT NOT NULL,
    status      TEXT NOT NULL DEFAULT 'draft'
                CHECK (status IN ('draft', 'todo', 'in-progress', 'done')),
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    version     INTEGER NOT NULL DEFAULT 1,
    category    TEXT NOT NULL DEFAULT 'general',
    priority    TEXT NOT NULL DEFAULT 'medium'
                CHECK (priority IN ('low', 'medium', 'high')),
    -- JSON array of spec ids
    related_specs   TEXT NOT NULL DEFAULT '[]',
    parent_spec_id  INTEGER REFERENCES specs(id) ON DELETE SET NULL
);

CREATE INDEX IF NOT EXISTS idx_specs_status ON specs(status);
CREATE INDEX IF NOT EXISTS idx_specs_category ON specs(category);
CREATE INDEX IF NOT EXISTS idx_specs_parent ON specs(parent_spec_id);
CREATE INDEX IF NOT EXISTS idx_specs_created ON specs(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_specs_updated ON specs(updated_at DESC);

CREATE TABLE IF NOT EXISTS todos (
    id       INTEGER PRIMARY KEY AUTOINCREMENT,
    spec_id  INTEGER NOT NULL,
    step_no  INTEGER,
    text     TEXT,
    status   TEXT NOT NULL DEFAULT 'pending'
             CHECK (status IN ('pending', 'in-progress', 'completed')),
    FOREIGN KEY (spec_id) REFERENCES specs(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_todos_spec ON todos(spec_id, step_no);

CREATE TABLE IF NOT EXISTS exec_logs (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    spec_id          INTEGER NOT NULL,
    layer            TEXT NOT NULL,
    status           TEXT NOT NULL,
    summary          TEXT,
    tasks_completed  TEXT,
    created_at       TEXT NOT NULL,
    FOREIGN KEY (spec_id) REFERENCES specs(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_exec_logs_spec ON exec_logs(spec_id);

CREATE TABLE IF NOT EXISTS issue_logs (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    spec_id           INTEGER NOT NULL,
    task_id           TEXT NOT NULL,
    task_description  TEXT NOT NULL,
    layer             TEXT NOT NULL,
    status            TEXT NOT NULL,
    error             TEXT,
    root_cause        TEXT,
    resolution        TEXT,
    created_at        TEXT NOT NULL,
    FOREIGN KEY (spec_id) REFERENCES specs(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_issue_logs_spec ON issue_logs(spec_id);

-- FTS5 projection of (id, title, body_md); rowid is the spec id
CREATE VIRTUAL TABLE IF NOT EXISTS specs_fts USING fts5(
    title,
    body_md
);

-- Term vocabulary for suggestions
CREATE VIRTUAL TABLE IF NOT EXISTS specs_fts_vocab USING fts5vocab(specs_fts, 'row');

-- Triggers to keep FTS5 synchronized inside the spec write transaction
CREATE TRIGGER IF NOT EXISTS specs_fts_insert AFTER INSERT ON specs BEGIN
    INSERT INTO specs_fts(rowid, title, body_md)
    VALUES (NEW.id, NEW.title, NEW.body_md);
END;

CREATE TRIGGER IF NOT EXISTS specs_fts_update AFTER UPDATE OF title, body_md ON specs BEGIN
    UPDATE specs_fts
    SET title = NEW.title, body_md = NEW.body_md
    WHERE rowid = OLD.id;
END;

CREATE TRIGGER IF NOT EXISTS specs_fts_delete AFTER DELETE ON specs BEGIN
    DELETE FROM specs_fts WHERE rowid = OLD.id;
END;

CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT
);

INSERT OR REPLACE INTO meta (key, value) VALUES ('schema_version', '1.0');
INSERT OR IGNORE INTO meta (key, value) VALUES ('created_at', datetime('now'));
"""

SPEC_COLUMNS = (
    "title",
    "body_md",
    "status",
    "category",
    "priority",
    "related_specs",
    "parent_spec_id",
)
TODO_COLUMNS = ("step_no", "text", "status")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class Database:
    """SQLite store for specs, their children and the FTS5 index."""

    # bm25() column weights: title matches count double
    BM25_WEIGHTS = (2.0, 1.0)

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self._local = threading.local()
        self._write_lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path))
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            self._local.conn = conn
        return self._local.conn

    @contextmanager
    def _read_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for read operations."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    @contextmanager
    def _write_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for write operations with locking."""
        with self._write_lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def initialize(self) -> None:
        """Initialize the database schema."""
        with self._write_cursor() as cursor:
            cursor.executescript(SCHEMA_SQL)
        logger.info("Database ready at %s", self.db_path)

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, "conn") and self._local.conn:
            self._local.conn.close()
            self._local.conn = None

    # Spec operations

    def create_spec(self, spec: Spec) -> Spec:
        """Insert a spec (the FTS5 row is written by trigger), returning the stored record."""
        now = _now()
        with self._write_cursor() as cursor:
            cursor.execute(
                """INSERT INTO specs
                (title, body_md, status, created_at, updated_at, version,
                 category, priority, related_specs, parent_spec_id)
                VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?, ?)""",
                (
                    spec.title,
                    spec.body_md,
                    spec.status,
                    now,
                    now,
                    spec.category,
                    spec.priority,
                    json.dumps(spec.related_specs),
                    spec.parent_spec_id,
                ),
            )
            spec_id = cursor.lastrowid
            cursor.execute("SELECT * FROM specs WHERE id = ?", (spec_id,))
            return self._row_to_spec(cursor.fetchone())

    def get_spec(self, spec_id: int, include_relations: bool = False) -> Spec | None:
        """Get a spec by id, optionally with todos and logs."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT * FROM specs WHERE id = ?", (spec_id,))
            row = cursor.fetchone()
        if row is None:
            return None

        spec = self._row_to_spec(row)
        if include_relations:
            spec.todos = self.list_todos(spec_id)
            spec.exec_logs = self.list_exec_logs(spec_id)
            spec.issue_logs = self.list_issue_logs(spec_id)
        return spec

    def update_spec(
        self,
        spec_id: int,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> tuple[Spec, Spec] | None:
        """
        Apply changes to a spec, returning (previous, updated) or None if absent.

        The new version is the previous version + 1. When expected_version is
        given the write is a compare-and-swap and a mismatch raises
        VersionConflictError; otherwise the increment is blind and a writer
        holding a stale copy silently overwrites newer fields.
        """
        unknown = set(changes) - set(SPEC_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown spec fields: {', '.join(sorted(unknown))}")

        with self._write_cursor() as cursor:
            cursor.execute("SELECT * FROM specs WHERE id = ?", (spec_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            previous = self._row_to_spec(row)

            if expected_version is not None and expected_version != previous.version:
                raise VersionConflictError(spec_id, expected_version, previous.version)

            assignments = [f"{column} = ?" for column in changes]
            params: list[Any] = [
                json.dumps(value) if column == "related_specs" else value
                for column, value in changes.items()
            ]
            assignments += ["updated_at = ?", "version = ?"]
            params += [_now(), previous.version + 1]

            query = f"UPDATE specs SET {', '.join(assignments)} WHERE id = ?"
            params.append(spec_id)
            if expected_version is not None:
                query += " AND version = ?"
                params.append(expected_version)

            cursor.execute(query, params)
            if cursor.rowcount == 0:
                raise VersionConflictError(spec_id, expected_version or 0, previous.version)

            cursor.execute("SELECT * FROM specs WHERE id = ?", (spec_id,))
            return previous, self._row_to_spec(cursor.fetchone())

    def delete_spec(self, spec_id: int) -> Spec | None:
        """Delete a spec with its todos and logs, returning the deleted record.

        Specs naming it as parent_spec_id keep existing with the parent cleared.
        """
        with self._write_cursor() as cursor:
            cursor.execute("SELECT * FROM specs WHERE id = ?", (spec_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            cursor.execute("DELETE FROM specs WHERE id = ?", (spec_id,))
            return self._row_to_spec(row)

    def list_specs(
        self,
        status: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        limit: int = 50,
        offset: int = 0,
        category: str | None = None,
        priority: str | None = None,
    ) -> SpecPage:
        """List specs filtered by status, category and priority, sorted and paginated."""
        if sort_by not in SORT_FIELDS:
            raise ValueError(f"Invalid sort field: {sort_by}")
        if sort_order not in SORT_ORDERS:
            raise ValueError(f"Invalid sort order: {sort_order}")

        filters = {"status": status, "category": category, "priority": priority}
        clauses = [f"{column} = ?" for column, value in filters.items() if value]
        params: list[Any] = [value for value in filters.values() if value]
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._read_cursor() as cursor:
            cursor.execute(
                f"SELECT * FROM specs{where} ORDER BY {sort_by} {sort_order.upper()}, id"
                " LIMIT ? OFFSET ?",
                [*params, limit, offset],
            )
            specs = [self._row_to_spec(row) for row in cursor.fetchall()]
            cursor.execute(f"SELECT COUNT(*) AS total FROM specs{where}", params)
            total = cursor.fetchone()["total"]

        return SpecPage(specs=specs, total=total, limit=limit, offset=offset)

    def count_by_status(self) -> dict[str, int]:
        """Count specs per status."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT status, COUNT(*) AS count FROM specs GROUP BY status")
            return {row["status"]: row["count"] for row in cursor.fetchall()}

    def count_recent(self, since: datetime) -> int:
        """Count specs updated at or after the given time."""
        with self._read_cursor() as cursor:
            cursor.execute(
                "SELECT COUNT(*) AS count FROM specs WHERE updated_at >= ?",
                (since.isoformat(timespec="microseconds"),),
            )
            return cursor.fetchone()["count"]

    def _row_to_spec(self, row: sqlite3.Row) -> Spec:
        """Convert a database row to a Spec."""
        return Spec(
            id=row["id"],
            title=row["title"],
            body_md=row["body_md"],
            status=row["status"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
            version=row["version"],
            category=row["category"],
            priority=row["priority"],
            related_specs=json.loads(row["related_specs"]),
            parent_spec_id=row["parent_spec_id"],
        )

    # Todo operations

    def add_todo(self, todo: Todo) -> Todo:
        """Insert a todo for a spec."""
        with self._write_cursor() as cursor:
            cursor.execute(
                "INSERT INTO todos (spec_id, step_no, text, status) VALUES (?, ?, ?, ?)",
                (todo.spec_id, todo.step_no, todo.text, todo.status),
            )
            cursor.execute("SELECT * FROM todos WHERE id = ?", (cursor.lastrowid,))
            return self._row_to_todo(cursor.fetchone())

    def update_todo(self, spec_id: int, todo_id: int, changes: dict[str, Any]) -> Todo | None:
        """Update a todo of a spec, returning None if it does not exist."""
        unknown = set(changes) - set(TODO_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown todo fields: {', '.join(sorted(unknown))}")

        with self._write_cursor() as cursor:
            if changes:
                assignments = ", ".join(f"{column} = ?" for column in changes)
                cursor.execute(
                    f"UPDATE todos SET {assignments} WHERE id = ? AND spec_id = ?",
                    [*changes.values(), todo_id, spec_id],
                )
            cursor.execute(
                "SELECT * FROM todos WHERE id = ? AND spec_id = ?", (todo_id, spec_id)
            )
            row = cursor.fetchone()
            return self._row_to_todo(row) if row else None

    def list_todos(self, spec_id: int) -> list[Todo]:
        """List todos of a spec ordered by step number."""
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT * FROM todos WHERE spec_id = ?
                ORDER BY step_no IS NULL, step_no, id""",
                (spec_id,),
            )
            return [self._row_to_todo(row) for row in cursor.fetchall()]

    def _row_to_todo(self, row: sqlite3.Row) -> Todo:
        return Todo(
            id=row["id"],
            spec_id=row["spec_id"],
            step_no=row["step_no"],
            text=row["text"],
            status=row["status"],
        )

    # Log operations

    def add_exec_log(self, log: ExecLog) -> ExecLog:
        """Append an execution log entry."""
        with self._write_cursor() as cursor:
            cursor.execute(
                """INSERT INTO exec_logs
                (spec_id, layer, status, summary, tasks_completed, created_at)
                VALUES (?, ?, ?, ?, ?, ?)""",
                (log.spec_id, log.layer, log.status, log.summary, log.tasks_completed, _now()),
            )
            cursor.execute("SELECT * FROM exec_logs WHERE id = ?", (cursor.lastrowid,))
            return self._row_to_exec_log(cursor.fetchone())

    def list_exec_logs(self, spec_id: int) -> list[ExecLog]:
        with self._read_cursor() as cursor:
            cursor.execute(
                "SELECT * FROM exec_logs WHERE spec_id = ? ORDER BY id", (spec_id,)
            )
            return [self._row_to_exec_log(row) for row in cursor.fetchall()]

    def add_issue_log(self, log: IssueLog) -> IssueLog:
        """Append an issue log entry."""
        with self._write_cursor() as cursor:
            cursor.execute(
                """INSERT INTO issue_logs
                (spec_id, task_id, task_description, layer, status, error,
                 root_cause, resolution, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    log.spec_id,
                    log.task_id,
                    log.task_description,
                    log.layer,
                    log.status,
                    log.error,
                    log.root_cause,
                    log.resolution,
                    _now(),
                ),
            )
            cursor.execute("SELECT * FROM issue_logs WHERE id = ?", (cursor.lastrowid,))
            return self._row_to_issue_log(cursor.fetchone())

    def list_issue_logs(self, spec_id: int) -> list[IssueLog]:
        with self._read_cursor() as cursor:
            cursor.execute(
                "SELECT * FROM issue_logs WHERE spec_id = ? ORDER BY id", (spec_id,)
            )
            return [self._row_to_issue_log(row) for row in cursor.fetchall()]

    def _row_to_exec_log(self, row: sqlite3.Row) -> ExecLog:
        return ExecLog(
            id=row["id"],
            spec_id=row["spec_id"],
            layer=row["layer"],
            status=row["status"],
            summary=row["summary"],
            tasks_completed=row["tasks_completed"],
            created_at=_parse_ts(row["created_at"]),
        )

    def _row_to_issue_log(self, row: sqlite3.Row) -> IssueLog:
        return IssueLog(
            id=row["id"],
            spec_id=row["spec_id"],
            task_id=row["task_id"],
            task_description=row["task_description"],
            layer=row["layer"],
            status=row["status"],
            error=row["error"],
            root_cause=row["root_cause"],
            resolution=row["resolution"],
            created_at=_parse_ts(row["created_at"]),
        )

    # Search operations

    def search(
        self,
        fts_query: str,
        min_score: float = 0.0,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[tuple[Spec, float]], int]:
        """
        Run an FTS5 MATCH and return ((spec, score) pairs, total matches).

        bm25() is lower-is-better; it is negated here so scores grow with
        relevance. Rows scoring under min_score are excluded from both the
        page and the total. Ties are broken by spec id.
        """
        title_weight, body_weight = self.BM25_WEIGHTS
        score_expr = f"-bm25(specs_fts, {title_weight}, {body_weight})"

        with self._read_cursor() as cursor:
            cursor.execute(
                f"""SELECT s.*, {score_expr} AS score
                FROM specs_fts
                JOIN specs s ON s.id = specs_fts.rowid
                WHERE specs_fts MATCH ? AND {score_expr} >= ?
                ORDER BY score DESC, s.id ASC
                LIMIT ? OFFSET ?""",
                (fts_query, min_score, limit, offset),
            )
            hits = [(self._row_to_spec(row), row["score"]) for row in cursor.fetchall()]

            cursor.execute(
                f"""SELECT COUNT(*) AS total
                FROM specs_fts
                WHERE specs_fts MATCH ? AND {score_expr} >= ?""",
                (fts_query, min_score),
            )
            total = cursor.fetchone()["total"]

        return hits, total

    def suggest_terms(self, like_pattern: str, limit: int = 10) -> list[tuple[str, int]]:
        """Return (term, occurrences) from the index vocabulary matching a LIKE pattern."""
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT term, cnt FROM specs_fts_vocab
                WHERE term LIKE ? ESCAPE '\\'
                ORDER BY cnt DESC, term ASC
                LIMIT ?""",
                (like_pattern, limit),
            )
            return [(row["term"], row["cnt"]) for row in cursor.fetchall()]

    def index_stats(self) -> IndexStats:
        """Aggregate statistics over the FTS5 table. Never writes."""
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT COUNT(*) AS total,
                COALESCE(AVG(LENGTH(title) + LENGTH(body_md)), 0) AS avg_length
                FROM specs_fts"""
            )
            row = cursor.fetchone()
            total, avg_length = row["total"], row["avg_length"]

            try:
                cursor.execute(
                    "SELECT COALESCE(SUM(pgsize), 0) AS size FROM dbstat WHERE name LIKE 'specs_fts%'"
                )
                size = cursor.fetchone()["size"]
            except sqlite3.OperationalError:
                # dbstat is an optional compile-time module; fall back to segment bytes
                cursor.execute(
                    "SELECT COALESCE(SUM(LENGTH(block)), 0) AS size FROM specs_fts_data"
                )
                size = cursor.fetchone()["size"]

            cursor.execute("SELECT value FROM meta WHERE key = 'fts_last_optimized'")
            meta = cursor.fetchone()

        return IndexStats(
            total_documents=total,
            avg_document_length=round(avg_length),
            index_size_bytes=int(size),
            last_optimized=_parse_ts(meta["value"]) if meta else None,
        )

    def list_index_entries(self) -> list[tuple[int, str, str]]:
        """Return every (id, title, body_md) row held by the FTS5 table."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT rowid, title, body_md FROM specs_fts ORDER BY rowid")
            return [(row[0], row[1], row[2]) for row in cursor.fetchall()]

    def rebuild_fts(self) -> int:
        """Regenerate the FTS5 table from specs in one transaction."""
        with self._write_cursor() as cursor:
            cursor.execute("DELETE FROM specs_fts")
            cursor.execute(
                """INSERT INTO specs_fts(rowid, title, body_md)
                SELECT id, title, body_md FROM specs ORDER BY id"""
            )
            # Drop merge history so the segment layout does not depend on past writes
            cursor.execute("INSERT INTO specs_fts(specs_fts) VALUES('rebuild')")
            cursor.execute(
                "INSERT OR REPLACE INTO meta (key, value) VALUES ('fts_last_rebuilt', ?)",
                (_now(),),
            )
            cursor.execute("SELECT COUNT(*) AS count FROM specs")
            return cursor.fetchone()["count"]

    def optimize_fts(self) -> None:
        """Merge FTS5 segments into one b-tree."""
        with self._write_cursor() as cursor:
            cursor.execute("INSERT INTO specs_fts(specs_fts) VALUES('optimize')")
            cursor.execute(
                "INSERT OR REPLACE INTO meta (key, value) VALUES ('fts_last_optimized', ?)",
                (_now(),),
            )

    def check_fts_integrity(self) -> IntegrityReport:
        """Compare the FTS5 table with specs: ids, orphans and content drift."""
        with self._read_cursor() as cursor:
            cursor.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'specs_fts'"
            )
            if cursor.fetchone() is None:
                return IntegrityReport(False, "FTS table specs_fts does not exist")

        try:
            with self._write_cursor() as cursor:
                cursor.execute("INSERT INTO specs_fts(specs_fts) VALUES('integrity-check')")
        except sqlite3.DatabaseError as e:
            logger.warning("FTS5 integrity-check failed: %s", e)
            return IntegrityReport(False, f"FTS index is corrupt: {e}")

        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT s.id FROM specs s
                WHERE NOT EXISTS (SELECT 1 FROM specs_fts f WHERE f.rowid = s.id)
                ORDER BY s.id"""
            )
            missing = [row[0] for row in cursor.fetchall()]

            cursor.execute(
                """SELECT f.rowid FROM specs_fts f
                WHERE NOT EXISTS (SELECT 1 FROM specs s WHERE s.id = f.rowid)
                ORDER BY f.rowid"""
            )
            orphans = [row[0] for row in cursor.fetchall()]

            cursor.execute(
                """SELECT s.id FROM specs s
                JOIN specs_fts f ON f.rowid = s.id
                WHERE f.title IS NOT s.title OR f.body_md IS NOT s.body_md
                ORDER BY s.id"""
            )
            drifted = [row[0] for row in cursor.fetchall()]

        if missing or orphans or drifted:
            message = (
                f"FTS index out of sync: {len(missing)} missing, "
                f"{len(orphans)} orphaned, {len(drifted)} drifted"
            )
            return IntegrityReport(False, message, missing, orphans, drifted)
        return IntegrityReport(True, "FTS index is consistent with specs")

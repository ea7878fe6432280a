"""File-backed spec store: one markdown file per spec plus a TF-IDF index.

Layout under the docs directory:

    <docs_dir>/
    ├── index.json          # next_id and index bookkeeping
    └── specs/
        ├── 001-auth-service.md
        └── 002-billing.md

Each spec file carries every field except the body in YAML frontmatter
(todos and logs included). The markdown files are the source of truth; the
TF-IDF index is rebuilt from them on startup and updated in the same locked
write path as the file on every change.
"""

import json
import logging
import os
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from spec_mcp.errors import VersionConflictError
from spec_mcp.store.database import SPEC_COLUMNS, TODO_COLUMNS
from spec_mcp.store.frontmatter import (
    parse_frontmatter,
    render_frontmatter,
    slugify,
    to_datetime,
)
from spec_mcp.store.models import (
    SORT_FIELDS,
    SORT_ORDERS,
    DEFAULT_CATEGORY,
    ExecLog,
    IndexStats,
    IntegrityReport,
    IssueLog,
    Spec,
    SpecPage,
    Todo,
)
from spec_mcp.store.tfidf import TfidfIndex

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"
SPECS_FOLDER = "specs"
INDEX_VERSION = "1.0"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat(timespec="microseconds") if value else None


class FileSpecStore:
    """Markdown-file spec store with an in-process TF-IDF search index."""

    def __init__(self, docs_dir: Path):
        self.docs_dir = docs_dir
        self.specs_dir = docs_dir / SPECS_FOLDER
        self.index = TfidfIndex()
        self._paths: dict[int, Path] = {}
        self._meta: dict[str, Any] = {}
        self._write_lock = threading.RLock()

    # Lifecycle

    def initialize(self) -> None:
        """Create the folder layout, load bookkeeping and build the index."""
        self.specs_dir.mkdir(parents=True, exist_ok=True)
        index_path = self.docs_dir / INDEX_FILE
        if index_path.exists():
            self._meta = json.loads(index_path.read_text(encoding="utf-8"))
        else:
            self._meta = {"version": INDEX_VERSION, "next_id": 1, "search_index": {}}
            self._save_meta()

        count = self.rebuild_index()
        logger.info("File store ready at %s (%d specs)", self.docs_dir, count)

    def close(self) -> None:
        self.index.clear()
        self._paths.clear()

    def _save_meta(self) -> None:
        self._atomic_write(
            self.docs_dir / INDEX_FILE, json.dumps(self._meta, indent=2, sort_keys=True)
        )

    @staticmethod
    def _atomic_write(path: Path, content: str) -> None:
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(content, encoding="utf-8", newline="")
        os.replace(tmp, path)

    @staticmethod
    def _read_text(path: Path) -> str:
        # No newline translation: bodies keep their \r\n and \r as written
        return path.read_bytes().decode("utf-8")

    def _scan(self) -> dict[int, Path]:
        """Map spec ids to files by reading every frontmatter block."""
        paths: dict[int, Path] = {}
        for file_path in sorted(self.specs_dir.glob("*.md")):
            data, _ = parse_frontmatter(self._read_text(file_path), str(file_path))
            spec_id = data.get("id")
            if not isinstance(spec_id, int):
                logger.warning("Skipping spec file without an id: %s", file_path.name)
                continue
            paths[spec_id] = file_path
        return paths

    # Serialization

    def _read(self, spec_id: int) -> Spec | None:
        path = self._paths.get(spec_id)
        if path is None or not path.exists():
            return None
        data, body = parse_frontmatter(self._read_text(path), str(path))
        return self._to_spec(data, body)

    def _write(self, spec: Spec) -> None:
        path = self.specs_dir / f"{spec.id:03d}-{slugify(spec.title)}.md"
        old_path = self._paths.get(spec.id)
        self._atomic_write(path, render_frontmatter(self._to_frontmatter(spec), spec.body_md))
        if old_path is not None and old_path != path and old_path.exists():
            old_path.unlink()
        self._paths[spec.id] = path
        self.index.put(spec.id, spec.title, spec.body_md, spec.category)

    def _to_frontmatter(self, spec: Spec) -> dict[str, Any]:
        def _dump(item: Any) -> dict[str, Any]:
            data = asdict(item)
            data.pop("spec_id", None)
            if "created_at" in data:
                data["created_at"] = _iso(data["created_at"])
            return data

        return {
            "id": spec.id,
            "title": spec.title,
            "status": spec.status,
            "version": spec.version,
            "category": spec.category,
            "priority": spec.priority,
            "related_specs": list(spec.related_specs),
            "parent_spec_id": spec.parent_spec_id,
            "created_at": _iso(spec.created_at),
            "updated_at": _iso(spec.updated_at),
            "todos": [_dump(todo) for todo in spec.todos],
            "exec_logs": [_dump(log) for log in spec.exec_logs],
            "issue_logs": [_dump(log) for log in spec.issue_logs],
        }

    def _to_spec(self, data: dict[str, Any], body: str) -> Spec:
        spec_id = data["id"]
        return Spec(
            id=spec_id,
            title=str(data.get("title", "")),
            body_md=body,
            status=data.get("status", "draft"),
            created_at=to_datetime(data.get("created_at")),
            updated_at=to_datetime(data.get("updated_at")),
            version=int(data.get("version", 1)),
            category=str(data.get("category") or DEFAULT_CATEGORY),
            priority=data.get("priority") or "medium",
            related_specs=[int(item) for item in data.get("related_specs") or []],
            parent_spec_id=data.get("parent_spec_id"),
            todos=[Todo(spec_id=spec_id, **item) for item in data.get("todos") or []],
            exec_logs=[
                ExecLog(
                    spec_id=spec_id,
                    **{**item, "created_at": to_datetime(item.get("created_at"))},
                )
                for item in data.get("exec_logs") or []
            ],
            issue_logs=[
                IssueLog(
                    spec_id=spec_id,
                    **{**item, "created_at": to_datetime(item.get("created_at"))},
                )
                for item in data.get("issue_logs") or []
            ],
        )

    @staticmethod
    def _strip_relations(spec: Spec) -> Spec:
        spec.todos, spec.exec_logs, spec.issue_logs = [], [], []
        return spec

    # Spec operations

    def create_spec(self, spec: Spec) -> Spec:
        with self._write_lock:
            now = _now()
            stored = Spec(
                id=self._meta["next_id"],
                title=spec.title,
                body_md=spec.body_md,
                status=spec.status,
                created_at=now,
                updated_at=now,
                version=1,
                category=spec.category,
                priority=spec.priority,
                related_specs=list(spec.related_specs),
                parent_spec_id=spec.parent_spec_id,
            )
            self._meta["next_id"] = stored.id + 1
            self._save_meta()
            self._write(stored)
            return stored

    def get_spec(self, spec_id: int, include_relations: bool = False) -> Spec | None:
        spec = self._read(spec_id)
        if spec is None or include_relations:
            return spec
        return self._strip_relations(spec)

    def update_spec(
        self,
        spec_id: int,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> tuple[Spec, Spec] | None:
        """Apply changes; same version semantics as Database.update_spec."""
        unknown = set(changes) - set(SPEC_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown spec fields: {', '.join(sorted(unknown))}")

        with self._write_lock:
            current = self._read(spec_id)
            if current is None:
                return None
            if expected_version is not None and expected_version != current.version:
                raise VersionConflictError(spec_id, expected_version, current.version)

            previous = self._strip_relations(self._read(spec_id))
            for column, value in changes.items():
                setattr(current, column, value)
            current.updated_at = _now()
            current.version = previous.version + 1
            self._write(current)
            return previous, self._strip_relations(current)

    def delete_spec(self, spec_id: int) -> Spec | None:
        with self._write_lock:
            spec = self._read(spec_id)
            if spec is None:
                return None
            self._paths.pop(spec_id).unlink()
            self.index.remove(spec_id)
            for other_id in sorted(self._paths):
                child = self._read(other_id)
                if child is not None and child.parent_spec_id == spec_id:
                    child.parent_spec_id = None
                    self._write(child)
            return self._strip_relations(spec)

    def _all_specs(self) -> list[Spec]:
        specs = []
        for spec_id in sorted(self._paths):
            spec = self._read(spec_id)
            if spec is not None:
                specs.append(self._strip_relations(spec))
        return specs

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
        if sort_by not in SORT_FIELDS:
            raise ValueError(f"Invalid sort field: {sort_by}")
        if sort_order not in SORT_ORDERS:
            raise ValueError(f"Invalid sort order: {sort_order}")

        filters = {"status": status, "category": category, "priority": priority}
        specs = [
            s
            for s in self._all_specs()
            if all(not value or getattr(s, name) == value for name, value in filters.items())
        ]
        # Stable sorts: id first as the tie-break, then the requested key
        specs.sort(key=lambda s: s.id)
        specs.sort(key=lambda s: getattr(s, sort_by), reverse=sort_order == "desc")
        return SpecPage(
            specs=specs[offset:offset + limit],
            total=len(specs),
            limit=limit,
            offset=offset,
        )

    def count_by_status(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for spec in self._all_specs():
            counts[spec.status] = counts.get(spec.status, 0) + 1
        return counts

    def count_recent(self, since: datetime) -> int:
        return sum(
            1 for spec in self._all_specs() if spec.updated_at and spec.updated_at >= since
        )

    # Children

    def _mutate_children(self, spec_id: int, mutate) -> Any:
        with self._write_lock:
            spec = self._read(spec_id)
            if spec is None:
                return None
            result = mutate(spec)
            if result is not None:
                self._write(spec)
            return result

    @staticmethod
    def _next_id(items: list) -> int:
        return max((item.id for item in items), default=0) + 1

    def add_todo(self, todo: Todo) -> Todo | None:
        def _add(spec: Spec) -> Todo:
            stored = Todo(
                id=self._next_id(spec.todos),
                spec_id=spec.id,
                step_no=todo.step_no,
                text=todo.text,
                status=todo.status,
            )
            spec.todos.append(stored)
            return stored

        return self._mutate_children(todo.spec_id, _add)

    def update_todo(self, spec_id: int, todo_id: int, changes: dict[str, Any]) -> Todo | None:
        unknown = set(changes) - set(TODO_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown todo fields: {', '.join(sorted(unknown))}")

        def _update(spec: Spec) -> Todo | None:
            for todo in spec.todos:
                if todo.id == todo_id:
                    for column, value in changes.items():
                        setattr(todo, column, value)
                    return todo
            return None

        return self._mutate_children(spec_id, _update)

    def list_todos(self, spec_id: int) -> list[Todo]:
        spec = self._read(spec_id)
        if spec is None:
            return []
        return sorted(
            spec.todos,
            key=lambda t: (t.step_no is None, t.step_no or 0, t.id),
        )

    def add_exec_log(self, log: ExecLog) -> ExecLog | None:
        def _add(spec: Spec) -> ExecLog:
            stored = ExecLog(
                id=self._next_id(spec.exec_logs),
                spec_id=spec.id,
                layer=log.layer,
                status=log.status,
                summary=log.summary,
                tasks_completed=log.tasks_completed,
                created_at=_now(),
            )
            spec.exec_logs.append(stored)
            return stored

        return self._mutate_children(log.spec_id, _add)

    def list_exec_logs(self, spec_id: int) -> list[ExecLog]:
        spec = self._read(spec_id)
        return spec.exec_logs if spec else []

    def add_issue_log(self, log: IssueLog) -> IssueLog | None:
        def _add(spec: Spec) -> IssueLog:
            stored = IssueLog(
                id=self._next_id(spec.issue_logs),
                spec_id=spec.id,
                task_id=log.task_id,
                task_description=log.task_description,
                layer=log.layer,
                status=log.status,
                error=log.error,
                root_cause=log.root_cause,
                resolution=log.resolution,
                created_at=_now(),
            )
            spec.issue_logs.append(stored)
            return stored

        return self._mutate_children(log.spec_id, _add)

    def list_issue_logs(self, spec_id: int) -> list[IssueLog]:
        spec = self._read(spec_id)
        return spec.issue_logs if spec else []

    # Index operations

    def rebuild_index(self) -> int:
        """Re-read every spec file and regenerate the TF-IDF index from scratch."""
        with self._write_lock:
            self._paths = self._scan()
            self.index.clear()
            for spec_id in sorted(self._paths):
                spec = self._read(spec_id)
                if spec is not None:
                    self.index.put(spec_id, spec.title, spec.body_md, spec.category)
            self._meta.setdefault("search_index", {})["last_rebuilt"] = _iso(_now())
            self._save_meta()
            return len(self.index)

    def optimize_index(self) -> None:
        with self._write_lock:
            self.index.compact()
            self._meta.setdefault("search_index", {})["last_optimized"] = _iso(_now())
            self._save_meta()

    def index_stats(self) -> IndexStats:
        last = self._meta.get("search_index", {}).get("last_optimized")
        return IndexStats(
            total_documents=len(self.index),
            avg_document_length=self.index.average_length(),
            index_size_bytes=self.index.size_bytes(),
            last_optimized=to_datetime(last),
        )

    def check_index_integrity(self) -> IntegrityReport:
        """Compare the TF-IDF index with the spec files on disk."""
        on_disk = self._scan()
        indexed = set(self.index.doc_ids())

        missing = sorted(set(on_disk) - indexed)
        orphans = sorted(indexed - set(on_disk))
        drifted = []
        for spec_id in sorted(set(on_disk) & indexed):
            path = on_disk[spec_id]
            data, body = parse_frontmatter(self._read_text(path), str(path))
            if self.index.entry(spec_id) != (str(data.get("title", "")), body):
                drifted.append(spec_id)
            elif self.index.category(spec_id) != str(data.get("category") or DEFAULT_CATEGORY):
                drifted.append(spec_id)

        if missing or orphans or drifted:
            message = (
                f"Search index out of sync: {len(missing)} missing, "
                f"{len(orphans)} orphaned, {len(drifted)} drifted"
            )
            return IntegrityReport(False, message, missing, orphans, drifted)
        return IntegrityReport(True, "Search index is consistent with spec files")

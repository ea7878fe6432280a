"""Spec service: validated CRUD over a spec store plus lifecycle notifications."""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from spec_mcp.categories import detect_category
from spec_mcp.errors import NotFoundError, ValidationError, storage_errors
from spec_mcp.store.database import Database
from spec_mcp.store.file_store import FileSpecStore
from spec_mcp.store.models import (
    PRIORITIES,
    SORT_FIELDS,
    SORT_ORDERS,
    SPEC_STATUSES,
    TODO_STATUSES,
    ExecLog,
    IssueLog,
    Spec,
    SpecPage,
    SpecStats,
    Todo,
    spec_to_dict,
)

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 255
MAX_PAGE_SIZE = 100
RECENT_ACTIVITY_DAYS = 7
LATEST_SPECS = 5
MAX_CATEGORY_LENGTH = 50

_CATEGORY = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


class Notifier(Protocol):
    def publish(self, event_type: str, data: dict[str, Any] | None = None) -> None: ...


def _require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    return text


def _require_choice(value: str, choices: tuple[str, ...], field: str) -> str:
    if value not in choices:
        raise ValidationError(
            f"Invalid {field} '{value}'. Must be one of: {', '.join(choices)}", field=field
        )
    return value


def validate_page(limit: int, offset: int, max_limit: int = MAX_PAGE_SIZE) -> None:
    """Reject non-positive page sizes, oversized pages and negative offsets."""
    if limit < 1 or limit > max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}", field="limit")
    if offset < 0:
        raise ValidationError("offset must be >= 0", field="offset")


class SpecService:
    """
    Validation boundary and write path for specs, todos and logs.

    Every write is committed by the store before any event is published, and
    publishing never blocks or fails the write.
    """

    def __init__(
        self,
        store: Database | FileSpecStore,
        notifier: Notifier | None = None,
        enforce_version: bool = False,
        max_body_size: int = 1048576,
    ):
        self.store = store
        self.notifier = notifier
        self.enforce_version = enforce_version
        self.max_body_size = max_body_size

    def _notify(self, event_type: str, data: dict[str, Any]) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.publish(event_type, data)
        except Exception:
            # Delivery is best-effort; the write has already been committed
            logger.exception("Failed to publish %s event", event_type)

    def _notify_stats(self) -> None:
        if self.notifier is None:
            return
        try:
            stats = self.get_stats()
        except Exception:
            logger.exception("Failed to read stats for stats_updated event")
            return
        self._notify(
            "stats_updated",
            {"total_specs": stats.total_specs, "by_status": stats.by_status},
        )

    # Validation

    def _validate_title(self, title: str | None) -> str:
        text = _require_text(title, "title")
        if len(text) > MAX_TITLE_LENGTH:
            raise ValidationError(
                f"title must be at most {MAX_TITLE_LENGTH} characters", field="title"
            )
        return text

    def _validate_body(self, body_md: str | None) -> str:
        _require_text(body_md, "body_md")
        if len(body_md) > self.max_body_size:
            raise ValidationError(
                f"body_md must be at most {self.max_body_size} characters", field="body_md"
            )
        return body_md

    def _validate_category(self, category: str) -> str:
        text = (category or "").strip().lower()
        if not _CATEGORY.match(text) or len(text) > MAX_CATEGORY_LENGTH:
            raise ValidationError(
                f"category must be 1-{MAX_CATEGORY_LENGTH} lowercase letters, digits, "
                "'-' or '_'",
                field="category",
            )
        return text

    def _validate_parent(self, parent_spec_id: int, spec_id: int | None = None) -> int:
        """Check the parent exists and that linking it would not create a cycle."""
        ancestor: int | None = parent_spec_id
        while ancestor is not None:
            if ancestor == spec_id:
                raise ValidationError(
                    "A spec cannot be its own ancestor", field="parent_spec_id"
                )
            with storage_errors("get_spec", spec_id=ancestor):
                parent = self.store.get_spec(ancestor)
            if parent is None:
                raise ValidationError(
                    f"Parent spec {ancestor} not found", field="parent_spec_id"
                )
            ancestor = parent.parent_spec_id
        return parent_spec_id

    def _validate_related(
        self, related_specs: list[int], spec_id: int | None = None
    ) -> list[int]:
        ids = list(dict.fromkeys(related_specs))
        for related_id in ids:
            if related_id == spec_id:
                raise ValidationError("A spec cannot relate to itself", field="related_specs")
            with storage_errors("get_spec", spec_id=related_id):
                found = self.store.get_spec(related_id)
            if found is None:
                raise ValidationError(
                    f"Related spec {related_id} not found", field="related_specs"
                )
        return ids

    def _require_spec(self, spec_id: int) -> Spec:
        with storage_errors("get_spec", spec_id=spec_id):
            spec = self.store.get_spec(spec_id)
        if spec is None:
            raise NotFoundError("Spec", spec_id)
        return spec

    # Specs

    def create_spec(
        self,
        title: str,
        body_md: str,
        status: str = "draft",
        category: str | None = None,
        priority: str = "medium",
        related_specs: list[int] | None = None,
        parent_spec_id: int | None = None,
    ) -> Spec:
        """Create a spec; without a category one is detected from title and body."""
        spec = Spec(
            title=self._validate_title(title),
            body_md=self._validate_body(body_md),
            status=_require_choice(status, SPEC_STATUSES, "status"),
            priority=_require_choice(priority, PRIORITIES, "priority"),
        )
        if category is None:
            spec.category = detect_category(spec.title, spec.body_md)
        else:
            spec.category = self._validate_category(category)
        if related_specs:
            spec.related_specs = self._validate_related(related_specs)
        if parent_spec_id is not None:
            spec.parent_spec_id = self._validate_parent(parent_spec_id)

        with storage_errors("create_spec", title=spec.title):
            created = self.store.create_spec(spec)
        logger.info("Created spec %d: %s", created.id, created.title)

        self._notify("spec_created", spec_to_dict(created))
        self._notify_stats()
        return created

    def get_spec(self, spec_id: int, include_relations: bool = False) -> Spec:
        with storage_errors("get_spec", spec_id=spec_id):
            spec = self.store.get_spec(spec_id, include_relations=include_relations)
        if spec is None:
            raise NotFoundError("Spec", spec_id)
        return spec

    def update_spec(
        self,
        spec_id: int,
        title: str | None = None,
        body_md: str | None = None,
        status: str | None = None,
        expected_version: int | None = None,
        category: str | None = None,
        priority: str | None = None,
        related_specs: list[int] | None = None,
        parent_spec_id: int | None = None,
    ) -> Spec:
        """
        Update fields of a spec.

        A parent_spec_id of 0 detaches the spec from its parent.

        Without version enforcement expected_version is ignored and the
        version is bumped blindly, so concurrent writers holding the same
        stale copy both succeed and the last one wins. With enforcement the
        caller must send the version it read; a mismatch raises
        VersionConflictError.
        """
        changes: dict[str, Any] = {}
        if title is not None:
            changes["title"] = self._validate_title(title)
        if body_md is not None:
            changes["body_md"] = self._validate_body(body_md)
        if status is not None:
            changes["status"] = _require_choice(status, SPEC_STATUSES, "status")
        if category is not None:
            changes["category"] = self._validate_category(category)
        if priority is not None:
            changes["priority"] = _require_choice(priority, PRIORITIES, "priority")
        if related_specs is not None:
            changes["related_specs"] = self._validate_related(related_specs, spec_id)
        if parent_spec_id == 0:
            changes["parent_spec_id"] = None
        elif parent_spec_id is not None:
            changes["parent_spec_id"] = self._validate_parent(parent_spec_id, spec_id)
        if not changes:
            raise ValidationError("At least one field must be provided for update")

        if self.enforce_version:
            if expected_version is None:
                raise ValidationError(
                    "expected_version is required when version enforcement is enabled",
                    field="expected_version",
                )
        else:
            expected_version = None

        with storage_errors("update_spec", spec_id=spec_id):
            result = self.store.update_spec(spec_id, changes, expected_version=expected_version)
        if result is None:
            raise NotFoundError("Spec", spec_id)
        previous, updated = result
        logger.info("Updated spec %d to version %d", spec_id, updated.version)

        self._notify("spec_updated", spec_to_dict(updated))
        if previous.status != updated.status:
            self._notify(
                "spec_status_changed",
                {"id": spec_id, "old_status": previous.status, "new_status": updated.status},
            )
            self._notify_stats()
        return updated

    def delete_spec(self, spec_id: int) -> Spec:
        with storage_errors("delete_spec", spec_id=spec_id):
            deleted = self.store.delete_spec(spec_id)
        if deleted is None:
            raise NotFoundError("Spec", spec_id)
        logger.info("Deleted spec %d", spec_id)

        self._notify("spec_deleted", {"id": spec_id, "title": deleted.title})
        self._notify_stats()
        return deleted

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
        if status is not None:
            _require_choice(status, SPEC_STATUSES, "status")
        if category is not None:
            category = self._validate_category(category)
        if priority is not None:
            _require_choice(priority, PRIORITIES, "priority")
        _require_choice(sort_by, SORT_FIELDS, "sort_by")
        _require_choice(sort_order, SORT_ORDERS, "sort_order")
        validate_page(limit, offset)

        with storage_errors("list_specs", status=status, limit=limit, offset=offset):
            return self.store.list_specs(
                status, sort_by, sort_order, limit, offset, category=category, priority=priority
            )

    def get_stats(self, include_details: bool = False) -> SpecStats:
        """Counts per status; recent activity and latest specs when include_details."""
        with storage_errors("get_stats"):
            counts = self.store.count_by_status()
            by_status = {status: counts.get(status, 0) for status in SPEC_STATUSES}
            stats = SpecStats(total_specs=sum(counts.values()), by_status=by_status)
            if include_details:
                since = datetime.now(timezone.utc) - timedelta(days=RECENT_ACTIVITY_DAYS)
                stats.recent_activity = self.store.count_recent(since)
                stats.latest_specs = self.store.list_specs(
                    sort_by="updated_at", sort_order="desc", limit=LATEST_SPECS
                ).specs
        return stats

    # Todos

    def add_todo(
        self,
        spec_id: int,
        text: str | None = None,
        step_no: int | None = None,
        status: str = "pending",
    ) -> Todo:
        self._require_spec(spec_id)
        todo = Todo(
            spec_id=spec_id,
            step_no=step_no,
            text=text,
            status=_require_choice(status, TODO_STATUSES, "status"),
        )
        with storage_errors("add_todo", spec_id=spec_id):
            stored = self.store.add_todo(todo)
        if stored is None:
            raise NotFoundError("Spec", spec_id)
        return stored

    def update_todo(
        self,
        spec_id: int,
        todo_id: int,
        text: str | None = None,
        step_no: int | None = None,
        status: str | None = None,
    ) -> Todo:
        changes: dict[str, Any] = {}
        if text is not None:
            changes["text"] = text
        if step_no is not None:
            changes["step_no"] = step_no
        if status is not None:
            changes["status"] = _require_choice(status, TODO_STATUSES, "status")
        if not changes:
            raise ValidationError("At least one field must be provided for update")

        self._require_spec(spec_id)
        with storage_errors("update_todo", spec_id=spec_id, todo_id=todo_id):
            todo = self.store.update_todo(spec_id, todo_id, changes)
        if todo is None:
            raise NotFoundError("Todo", todo_id)
        return todo

    def list_todos(self, spec_id: int) -> list[Todo]:
        self._require_spec(spec_id)
        with storage_errors("list_todos", spec_id=spec_id):
            return self.store.list_todos(spec_id)

    # Logs

    def log_execution(
        self,
        spec_id: int,
        layer: str,
        status: str,
        summary: str | None = None,
        tasks_completed: str | None = None,
    ) -> ExecLog:
        self._require_spec(spec_id)
        log = ExecLog(
            spec_id=spec_id,
            layer=_require_text(layer, "layer"),
            status=_require_text(status, "status"),
            summary=summary,
            tasks_completed=tasks_completed,
        )
        with storage_errors("log_execution", spec_id=spec_id):
            stored = self.store.add_exec_log(log)
        if stored is None:
            raise NotFoundError("Spec", spec_id)
        return stored

    def list_exec_logs(self, spec_id: int) -> list[ExecLog]:
        self._require_spec(spec_id)
        with storage_errors("list_exec_logs", spec_id=spec_id):
            return self.store.list_exec_logs(spec_id)

    def log_issue(
        self,
        spec_id: int,
        task_id: str,
        task_description: str,
        layer: str,
        status: str,
        error: str | None = None,
        root_cause: str | None = None,
        resolution: str | None = None,
    ) -> IssueLog:
        self._require_spec(spec_id)
        log = IssueLog(
            spec_id=spec_id,
            task_id=_require_text(task_id, "task_id"),
            task_description=_require_text(task_description, "task_description"),
            layer=_require_text(layer, "layer"),
            status=_require_text(status, "status"),
            error=error,
            root_cause=root_cause,
            resolution=resolution,
        )
        with storage_errors("log_issue", spec_id=spec_id):
            stored = self.store.add_issue_log(log)
        if stored is None:
            raise NotFoundError("Spec", spec_id)
        return stored

    def list_issue_logs(self, spec_id: int) -> list[IssueLog]:
        self._require_spec(spec_id)
        with storage_errors("list_issue_logs", spec_id=spec_id):
            return self.store.list_issue_logs(spec_id)

"""Data models for the spec store."""

from dataclasses import dataclass, field
from datetime import datetime

SPEC_STATUSES = ("draft", "todo", "in-progress", "done")
TODO_STATUSES = ("pending", "in-progress", "completed")
PRIORITIES = ("low", "medium", "high")
DEFAULT_CATEGORY = "general"
SORT_FIELDS = ("id", "title", "created_at", "updated_at")
SORT_ORDERS = ("asc", "desc")


@dataclass
class Todo:
    """A task item belonging to a spec."""

    id: int | None = None
    spec_id: int = 0
    step_no: int | None = None
    text: str | None = None
    status: str = "pending"


@dataclass
class ExecLog:
    """Append-only record of an implementation run."""

    id: int | None = None
    spec_id: int = 0
    layer: str = ""
    status: str = ""
    summary: str | None = None
    tasks_completed: str | None = None
    created_at: datetime | None = None


@dataclass
class IssueLog:
    """Append-only record of a problem hit while implementing a spec."""

    id: int | None = None
    spec_id: int = 0
    task_id: str = ""
    task_description: str = ""
    layer: str = ""
    status: str = ""
    error: str | None = None
    root_cause: str | None = None
    resolution: str | None = None
    created_at: datetime | None = None


@dataclass
class Spec:
    """A specification document."""

    id: int | None = None
    title: str = ""
    body_md: str = ""
    status: str = "draft"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 1
    category: str = DEFAULT_CATEGORY
    priority: str = "medium"
    related_specs: list[int] = field(default_factory=list)
    parent_spec_id: int | None = None
    todos: list[Todo] = field(default_factory=list)
    exec_logs: list[ExecLog] = field(default_factory=list)
    issue_logs: list[IssueLog] = field(default_factory=list)


@dataclass
class SpecPage:
    """One page of a spec listing."""

    specs: list[Spec]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.specs) < self.total


@dataclass
class SpecStats:
    """Aggregate counts over the spec store."""

    total_specs: int
    by_status: dict[str, int]
    recent_activity: int | None = None
    latest_specs: list[Spec] | None = None


@dataclass
class SearchResult:
    """A spec matched by a search, with its relevance score (higher is better)."""

    id: int
    title: str
    status: str
    score: float
    snippet: str
    created_at: datetime | None
    updated_at: datetime | None


@dataclass
class SearchResponse:
    """A ranked, paginated page of search results."""

    query: str
    results: list[SearchResult]
    total: int
    limit: int
    offset: int
    search_time_ms: float

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.results) < self.total


@dataclass
class Suggestion:
    """An indexed term matching a prefix."""

    term: str
    frequency: int


@dataclass
class IndexStats:
    """Read-only aggregates over the search index."""

    total_documents: int
    avg_document_length: int
    index_size_bytes: int
    last_optimized: datetime | None = None


@dataclass
class IntegrityReport:
    """Outcome of comparing the search index against the spec store."""

    is_healthy: bool
    message: str
    missing_ids: list[int] = field(default_factory=list)
    orphan_ids: list[int] = field(default_factory=list)
    drifted_ids: list[int] = field(default_factory=list)


# Plain-dict views shared by MCP tools, the REST API and notifications


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def todo_to_dict(todo: Todo) -> dict:
    return {
        "id": todo.id,
        "spec_id": todo.spec_id,
        "step_no": todo.step_no,
        "text": todo.text,
        "status": todo.status,
    }


def exec_log_to_dict(log: ExecLog) -> dict:
    return {
        "id": log.id,
        "spec_id": log.spec_id,
        "layer": log.layer,
        "status": log.status,
        "summary": log.summary,
        "tasks_completed": log.tasks_completed,
        "created_at": _iso(log.created_at),
    }


def issue_log_to_dict(log: IssueLog) -> dict:
    return {
        "id": log.id,
        "spec_id": log.spec_id,
        "task_id": log.task_id,
        "task_description": log.task_description,
        "layer": log.layer,
        "status": log.status,
        "error": log.error,
        "root_cause": log.root_cause,
        "resolution": log.resolution,
        "created_at": _iso(log.created_at),
    }


def spec_to_dict(spec: Spec, include_relations: bool = False) -> dict:
    data = {
        "id": spec.id,
        "title": spec.title,
        "body_md": spec.body_md,
        "status": spec.status,
        "created_at": _iso(spec.created_at),
        "updated_at": _iso(spec.updated_at),
        "version": spec.version,
        "category": spec.category,
        "priority": spec.priority,
        "related_specs": list(spec.related_specs),
        "parent_spec_id": spec.parent_spec_id,
    }
    if include_relations:
        data["todos"] = [todo_to_dict(todo) for todo in spec.todos]
        data["exec_logs"] = [exec_log_to_dict(log) for log in spec.exec_logs]
        data["issue_logs"] = [issue_log_to_dict(log) for log in spec.issue_logs]
    return data


def search_response_to_dict(response: SearchResponse) -> dict:
    return {
        "query": response.query,
        "results": [
            {
                "id": result.id,
                "title": result.title,
                "status": result.status,
                "score": result.score,
                "snippet": result.snippet,
                "created_at": _iso(result.created_at),
                "updated_at": _iso(result.updated_at),
            }
            for result in response.results
        ],
        "pagination": {
            "total": response.total,
            "limit": response.limit,
            "offset": response.offset,
            "has_more": response.has_more,
        },
        "search_time_ms": response.search_time_ms,
    }


def index_stats_to_dict(stats: IndexStats) -> dict:
    return {
        "total_documents": stats.total_documents,
        "avg_document_length": stats.avg_document_length,
        "index_size_bytes": stats.index_size_bytes,
        "last_optimized": _iso(stats.last_optimized),
    }

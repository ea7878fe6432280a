"""Spec CRUD endpoints plus todos, execution logs and issue logs."""

from fastapi import APIRouter, Query, Request, status

from spec_mcp.api.envelope import ok
from spec_mcp.api.schemas import (
    ExecLogCreate,
    IssueLogCreate,
    SpecCreate,
    SpecUpdate,
    TodoCreate,
    TodoUpdate,
)
from spec_mcp.auth import check_write_permission
from spec_mcp.specs import SpecService
from spec_mcp.store.models import (
    exec_log_to_dict,
    issue_log_to_dict,
    spec_to_dict,
    todo_to_dict,
)

router = APIRouter(prefix="/specs", tags=["specs"])


def _specs(request: Request) -> SpecService:
    return request.app.state.specs


def _writable_specs(request: Request) -> SpecService:
    check_write_permission(request.app.state.config)
    return request.app.state.specs


@router.get("")
def list_specs(
    request: Request,
    status_filter: str | None = Query(default=None, alias="status"),
    sort_by: str = Query(default="created_at"),
    sort_order: str = Query(default="desc"),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    category: str | None = Query(default=None),
    priority: str | None = Query(default=None),
) -> dict:
    """List specs with status, category and priority filters, sorting and pagination."""
    page = _specs(request).list_specs(
        status_filter,
        sort_by,
        sort_order,
        limit,
        offset,
        category=category,
        priority=priority,
    )
    return ok(
        {
            "specs": [spec_to_dict(spec) for spec in page.specs],
            "pagination": {
                "total": page.total,
                "limit": page.limit,
                "offset": page.offset,
                "has_more": page.has_more,
            },
        }
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_spec(request: Request, body: SpecCreate) -> dict:
    spec = _writable_specs(request).create_spec(
        body.title,
        body.body_md,
        body.status,
        category=body.category,
        priority=body.priority,
        related_specs=body.related_specs,
        parent_spec_id=body.parent_spec_id,
    )
    return ok(spec_to_dict(spec))


@router.get("/{spec_id}")
def get_spec(
    request: Request,
    spec_id: int,
    include_relations: bool = Query(default=False),
) -> dict:
    spec = _specs(request).get_spec(spec_id, include_relations=include_relations)
    return ok(spec_to_dict(spec, include_relations))


@router.patch("/{spec_id}")
def update_spec(request: Request, spec_id: int, body: SpecUpdate) -> dict:
    spec = _writable_specs(request).update_spec(
        spec_id,
        title=body.title,
        body_md=body.body_md,
        status=body.status,
        expected_version=body.expected_version,
        category=body.category,
        priority=body.priority,
        related_specs=body.related_specs,
        parent_spec_id=body.parent_spec_id,
    )
    return ok(spec_to_dict(spec))


@router.delete("/{spec_id}")
def delete_spec(request: Request, spec_id: int) -> dict:
    spec = _writable_specs(request).delete_spec(spec_id)
    return ok({"id": spec.id, "title": spec.title}, message=f"Spec {spec.id} deleted")


# Todos


@router.get("/{spec_id}/todos")
def list_todos(request: Request, spec_id: int) -> dict:
    return ok([todo_to_dict(todo) for todo in _specs(request).list_todos(spec_id)])


@router.post("/{spec_id}/todos", status_code=status.HTTP_201_CREATED)
def add_todo(request: Request, spec_id: int, body: TodoCreate) -> dict:
    todo = _writable_specs(request).add_todo(
        spec_id, text=body.text, step_no=body.step_no, status=body.status
    )
    return ok(todo_to_dict(todo))


@router.patch("/{spec_id}/todos/{todo_id}")
def update_todo(request: Request, spec_id: int, todo_id: int, body: TodoUpdate) -> dict:
    todo = _writable_specs(request).update_todo(
        spec_id, todo_id, text=body.text, step_no=body.step_no, status=body.status
    )
    return ok(todo_to_dict(todo))


# Logs


@router.get("/{spec_id}/exec-logs")
def list_exec_logs(request: Request, spec_id: int) -> dict:
    return ok([exec_log_to_dict(log) for log in _specs(request).list_exec_logs(spec_id)])


@router.post("/{spec_id}/exec-logs", status_code=status.HTTP_201_CREATED)
def log_execution(request: Request, spec_id: int, body: ExecLogCreate) -> dict:
    log = _writable_specs(request).log_execution(
        spec_id, body.layer, body.status, body.summary, body.tasks_completed
    )
    return ok(exec_log_to_dict(log))


@router.get("/{spec_id}/issue-logs")
def list_issue_logs(request: Request, spec_id: int) -> dict:
    return ok([issue_log_to_dict(log) for log in _specs(request).list_issue_logs(spec_id)])


@router.post("/{spec_id}/issue-logs", status_code=status.HTTP_201_CREATED)
def log_issue(request: Request, spec_id: int, body: IssueLogCreate) -> dict:
    log = _writable_specs(request).log_issue(
        spec_id,
        body.task_id,
        body.task_description,
        body.layer,
        body.status,
        error=body.error,
        root_cause=body.root_cause,
        resolution=body.resolution,
    )
    return ok(issue_log_to_dict(log))

"""Request bodies for the REST API."""

from typing import Literal

from pydantic import BaseModel, Field

SpecStatus = Literal["draft", "todo", "in-progress", "done"]
TodoStatus = Literal["pending", "in-progress", "completed"]
Priority = Literal["low", "medium", "high"]


class SpecCreate(BaseModel):
    """Body of POST /specs."""

    title: str
    body_md: str
    status: SpecStatus = "draft"
    category: str | None = None
    priority: Priority = "medium"
    related_specs: list[int] | None = None
    parent_spec_id: int | None = Field(default=None, ge=1)


class SpecUpdate(BaseModel):
    """Body of PATCH /specs/{id}; at least one field is required."""

    title: str | None = None
    body_md: str | None = None
    status: SpecStatus | None = None
    expected_version: int | None = Field(default=None, ge=1)
    category: str | None = None
    priority: Priority | None = None
    related_specs: list[int] | None = None
    # 0 detaches the spec from its parent
    parent_spec_id: int | None = Field(default=None, ge=0)


class TodoCreate(BaseModel):
    """Body of POST /specs/{id}/todos."""

    text: str | None = None
    step_no: int | None = None
    status: TodoStatus = "pending"


class TodoUpdate(BaseModel):
    """Body of PATCH /specs/{id}/todos/{todo_id}."""

    text: str | None = None
    step_no: int | None = None
    status: TodoStatus | None = None


class ExecLogCreate(BaseModel):
    """Body of POST /specs/{id}/exec-logs."""

    layer: str
    status: str
    summary: str | None = None
    tasks_completed: str | None = None


class IssueLogCreate(BaseModel):
    """Body of POST /specs/{id}/issue-logs."""

    task_id: str
    task_description: str
    layer: str
    status: str
    error: str | None = None
    root_cause: str | None = None
    resolution: str | None = None

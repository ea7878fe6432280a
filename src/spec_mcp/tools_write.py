"""MCP write tools for specmcp: create, change and delete specs, todos and logs."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from spec_mcp.auth import check_write_permission
from spec_mcp.config import Config
from spec_mcp.errors import SpecError, ValidationError
from spec_mcp.search import BaseSearchService
from spec_mcp.specs import SpecService
from spec_mcp.store.models import (
    exec_log_to_dict,
    issue_log_to_dict,
    spec_to_dict,
    todo_to_dict,
)
from spec_mcp.tools import tool_error

if TYPE_CHECKING:
    from fastmcp import FastMCP

logger = logging.getLogger(__name__)

MAINTENANCE_OPERATIONS = ("rebuild", "optimize")


def register_tools_write(
    mcp: "FastMCP",
    config: Config,
    specs: SpecService,
    search: BaseSearchService,
) -> None:
    """Register all write tools with the FastMCP server.

    Args:
        mcp: FastMCP server instance
        config: Config instance for the read-only check
        specs: SpecService performing validated writes
        search: Search service for index maintenance
    """

    @mcp.tool()
    def create_spec(
        title: str,
        body_md: str,
        status: str = "draft",
        category: str | None = None,
        priority: str = "medium",
        related_specs: list[int] | None = None,
        parent_spec_id: int | None = None,
    ) -> dict:
        """Create a new spec.

        Args:
            title: Spec title (1-255 characters)
            body_md: Markdown body
            status: draft, todo, in-progress or done (default: draft)
            category: Category such as "authentication" or "payments"; detected
                from the title and body when omitted
            priority: low, medium or high (default: medium)
            related_specs: Ids of related specs
            parent_spec_id: Id of the parent spec

        Returns:
            Dict with success flag and the created spec
        """
        try:
            check_write_permission(config)
            spec = specs.create_spec(
                title,
                body_md,
                status,
                category=category,
                priority=priority,
                related_specs=related_specs,
                parent_spec_id=parent_spec_id,
            )
        except SpecError as e:
            return tool_error("create_spec", e)
        return {"success": True, "spec": spec_to_dict(spec)}

    @mcp.tool()
    def update_spec(
        spec_id: int,
        title: str | None = None,
        body_md: str | None = None,
        status: str | None = None,
        expected_version: int | None = None,
        category: str | None = None,
        priority: str | None = None,
        related_specs: list[int] | None = None,
        parent_spec_id: int | None = None,
    ) -> dict:
        """Update the fields of a spec.

        Args:
            spec_id: Id of the spec
            title: New title
            body_md: New markdown body
            status: New status (draft/todo/in-progress/done)
            expected_version: Version the change is based on; required when the
                server enforces versions, ignored otherwise
            category: New category
            priority: New priority (low/medium/high)
            related_specs: Replacement list of related spec ids
            parent_spec_id: New parent spec id; 0 detaches the spec from its parent

        Returns:
            Dict with success flag and the updated spec
        """
        try:
            check_write_permission(config)
            spec = specs.update_spec(
                spec_id,
                title=title,
                body_md=body_md,
                status=status,
                expected_version=expected_version,
                category=category,
                priority=priority,
                related_specs=related_specs,
                parent_spec_id=parent_spec_id,
            )
        except SpecError as e:
            return tool_error("update_spec", e)
        return {"success": True, "spec": spec_to_dict(spec)}

    @mcp.tool()
    def delete_spec(spec_id: int) -> dict:
        """Delete a spec together with its todos and logs.

        Args:
            spec_id: Id of the spec

        Returns:
            Dict with success flag and the deleted spec's id and title
        """
        try:
            check_write_permission(config)
            spec = specs.delete_spec(spec_id)
        except SpecError as e:
            return tool_error("delete_spec", e)
        return {"success": True, "deleted": {"id": spec.id, "title": spec.title}}

    @mcp.tool()
    def add_todo(
        spec_id: int,
        text: str | None = None,
        step_no: int | None = None,
        status: str = "pending",
    ) -> dict:
        """Add a todo to a spec.

        Args:
            spec_id: Id of the spec
            text: Todo text
            step_no: Optional step number used for ordering
            status: pending, in-progress or completed (default: pending)

        Returns:
            Dict with success flag and the created todo
        """
        try:
            check_write_permission(config)
            todo = specs.add_todo(spec_id, text=text, step_no=step_no, status=status)
        except SpecError as e:
            return tool_error("add_todo", e)
        return {"success": True, "todo": todo_to_dict(todo)}

    @mcp.tool()
    def update_todo(
        spec_id: int,
        todo_id: int,
        text: str | None = None,
        step_no: int | None = None,
        status: str | None = None,
    ) -> dict:
        """Update a todo of a spec.

        Args:
            spec_id: Id of the spec owning the todo
            todo_id: Id of the todo
            text: New text
            step_no: New step number
            status: New status (pending/in-progress/completed)

        Returns:
            Dict with success flag and the updated todo
        """
        try:
            check_write_permission(config)
            todo = specs.update_todo(spec_id, todo_id, text=text, step_no=step_no, status=status)
        except SpecError as e:
            return tool_error("update_todo", e)
        return {"success": True, "todo": todo_to_dict(todo)}

    @mcp.tool()
    def log_execution(
        spec_id: int,
        layer: str,
        status: str,
        summary: str | None = None,
        tasks_completed: str | None = None,
    ) -> dict:
        """Record an implementation run for a spec.

        Args:
            spec_id: Id of the spec
            layer: Layer worked on (e.g. "backend", "frontend")
            status: Outcome of the run
            summary: Free-text summary
            tasks_completed: Which tasks the run completed

        Returns:
            Dict with success flag and the stored log entry
        """
        try:
            check_write_permission(config)
            log = specs.log_execution(spec_id, layer, status, summary, tasks_completed)
        except SpecError as e:
            return tool_error("log_execution", e)
        return {"success": True, "log": exec_log_to_dict(log)}

    @mcp.tool()
    def log_issue(
        spec_id: int,
        task_id: str,
        task_description: str,
        layer: str,
        status: str,
        error: str | None = None,
        root_cause: str | None = None,
        resolution: str | None = None,
    ) -> dict:
        """Record a problem hit while implementing a spec.

        Args:
            spec_id: Id of the spec
            task_id: Identifier of the task that hit the issue
            task_description: What the task was doing
            layer: Layer the issue occurred in
            status: Issue status (e.g. "open", "resolved")
            error: Error message or symptom
            root_cause: Diagnosed cause
            resolution: How it was resolved

        Returns:
            Dict with success flag and the stored log entry
        """
        try:
            check_write_permission(config)
            log = specs.log_issue(
                spec_id,
                task_id,
                task_description,
                layer,
                status,
                error=error,
                root_cause=root_cause,
                resolution=resolution,
            )
        except SpecError as e:
            return tool_error("log_issue", e)
        return {"success": True, "log": issue_log_to_dict(log)}

    @mcp.tool()
    def db_maintenance(operation: str) -> dict:
        """Run a search index maintenance operation.

        Args:
            operation: "rebuild" regenerates the index from the stored specs;
                "optimize" compacts it without changing results

        Returns:
            Dict with success flag, the operation and a message
        """
        try:
            check_write_permission(config)
            if operation not in MAINTENANCE_OPERATIONS:
                raise ValidationError(
                    f"Invalid operation '{operation}'. "
                    f"Must be one of: {', '.join(MAINTENANCE_OPERATIONS)}",
                    field="operation",
                )
            if operation == "rebuild":
                count = search.rebuild()
                message = f"Search index rebuilt: {count} specs indexed"
            else:
                search.optimize()
                message = "Search index optimized"
        except SpecError as e:
            return tool_error("db_maintenance", e)

        logger.info("Maintenance %s complete", operation)
        return {"success": True, "operation": operation, "message": message}

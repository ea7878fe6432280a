"""MCP Resources for specmcp.

Resources expose specs as read-only markdown documents.
"""

from datetime import datetime

from spec_mcp.errors import ValidationError
from spec_mcp.specs import SpecService
from spec_mcp.store.models import SPEC_STATUSES

# Page size used when walking every spec for the overview
_OVERVIEW_PAGE = 100

_TODO_MARKS = {"pending": " ", "in-progress": "~", "completed": "x"}


def _format_ts(value: datetime | None) -> str:
    return value.isoformat() if value else "unknown"


def get_specs_resource(specs: SpecService) -> str:
    """Resource: spec://specs

    Lists all specs grouped by status.
    """
    stats = specs.get_stats()

    result_lines = ["# Specs\n\n"]
    result_lines.append(f"Total specs: {stats.total_specs}\n")
    for status in SPEC_STATUSES:
        result_lines.append(f"- {status}: {stats.by_status[status]}\n")
    result_lines.append("\n")

    for status in SPEC_STATUSES:
        if not stats.by_status[status]:
            continue
        result_lines.append(f"## {status}\n\n")
        offset = 0
        while True:
            page = specs.list_specs(
                status=status, sort_by="id", sort_order="asc",
                limit=_OVERVIEW_PAGE, offset=offset,
            )
            for spec in page.specs:
                result_lines.append(
                    f"- [{spec.id}] {spec.title} (v{spec.version}, "
                    f"updated {_format_ts(spec.updated_at)})\n"
                )
            if not page.has_more:
                break
            offset += _OVERVIEW_PAGE
        result_lines.append("\n")

    return "".join(result_lines)


def get_spec_resource(specs: SpecService, spec_id: int) -> str:
    """Resource: spec://specs/{spec_id}

    Full spec document with its todos and logs. Raises NotFoundError for
    unknown ids.
    """
    spec = specs.get_spec(spec_id, include_relations=True)

    result_lines = [f"# {spec.title}\n\n"]
    result_lines.append(f"**Id:** {spec.id}\n")
    result_lines.append(f"**Status:** {spec.status}\n")
    result_lines.append(f"**Version:** {spec.version}\n")
    result_lines.append(f"**Category:** {spec.category}\n")
    result_lines.append(f"**Priority:** {spec.priority}\n")
    if spec.parent_spec_id is not None:
        result_lines.append(f"**Parent:** {spec.parent_spec_id}\n")
    if spec.related_specs:
        related = ", ".join(str(related_id) for related_id in spec.related_specs)
        result_lines.append(f"**Related:** {related}\n")
    result_lines.append(f"**Created:** {_format_ts(spec.created_at)}\n")
    result_lines.append(f"**Updated:** {_format_ts(spec.updated_at)}\n\n")
    result_lines.append(spec.body_md.rstrip("\n") + "\n\n")

    if spec.todos:
        result_lines.append("## Todos\n\n")
        for todo in spec.todos:
            mark = _TODO_MARKS.get(todo.status, " ")
            step = f"{todo.step_no}. " if todo.step_no is not None else ""
            result_lines.append(f"- [{mark}] {step}{todo.text or ''}\n")
        result_lines.append("\n")

    if spec.exec_logs:
        result_lines.append("## Execution Log\n\n")
        for log in spec.exec_logs:
            line = f"- {_format_ts(log.created_at)} [{log.layer}] {log.status}"
            if log.summary:
                line += f": {log.summary}"
            result_lines.append(line + "\n")
        result_lines.append("\n")

    if spec.issue_logs:
        result_lines.append("## Issues\n\n")
        for issue in spec.issue_logs:
            result_lines.append(
                f"- {issue.task_id} [{issue.layer}] {issue.status}: {issue.task_description}\n"
            )
            if issue.error:
                result_lines.append(f"  - Error: {issue.error}\n")
            if issue.root_cause:
                result_lines.append(f"  - Root cause: {issue.root_cause}\n")
            if issue.resolution:
                result_lines.append(f"  - Resolution: {issue.resolution}\n")
        result_lines.append("\n")

    return "".join(result_lines)


def register_resources(mcp, specs: SpecService):
    """Register all resources with the MCP server.

    Args:
        mcp: FastMCP server instance
        specs: SpecService used to read specs
    """

    @mcp.resource("spec://specs")
    def list_specs():
        return get_specs_resource(specs)

    @mcp.resource("spec://specs/{spec_id}")
    def spec_detail(spec_id: str):
        if not spec_id.isdigit():
            raise ValidationError(f"Invalid spec id '{spec_id}'", field="spec_id")
        return get_spec_resource(specs, int(spec_id))

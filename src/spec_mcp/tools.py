"""MCP read tools for the specmcp server.

This module defines the read-only tools exposed by the MCP server:
- get_spec / list_specs: fetch one spec or a page of specs
- search_specs / suggest_terms: ranked full-text search and term completion
- get_spec_stats: counts per status and recent activity
- db_health_check / db_metrics: search index integrity and size

Every tool returns {"success": True, ...}. Known failures (bad input, missing
records, storage errors) come back as {"success": False, "error", "tool",
"timestamp"} instead of raising.
"""

import logging
from datetime import datetime, timezone

from fastmcp import FastMCP

from spec_mcp.errors import SpecError
from spec_mcp.search import BaseSearchService
from spec_mcp.specs import SpecService, validate_page
from spec_mcp.store.models import (
    index_stats_to_dict,
    search_response_to_dict,
    spec_to_dict,
)

logger = logging.getLogger(__name__)


def tool_error(tool: str, error: SpecError) -> dict:
    """Build the error envelope returned by a failed tool call."""
    logger.warning("Tool %s failed: %s", tool, error)
    return {
        "success": False,
        "error": str(error),
        "tool": tool,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def register_tools(mcp: FastMCP, specs: SpecService, search: BaseSearchService) -> None:
    """Register all read tools with the FastMCP server.

    Args:
        mcp: FastMCP server instance
        specs: SpecService for spec lookups and stats
        search: Search service over the active store's index
    """

    @mcp.tool()
    def get_spec(spec_id: int, include_relations: bool = False) -> dict:
        """Get a spec by id.

        Args:
            spec_id: Id of the spec
            include_relations: Also return its todos, execution logs and issue logs

        Returns:
            Dict with success flag and the spec (id, title, body_md, status,
            created_at, updated_at, version, category, priority, related_specs,
            parent_spec_id)
        """
        try:
            spec = specs.get_spec(spec_id, include_relations=include_relations)
        except SpecError as e:
            return tool_error("get_spec", e)
        return {"success": True, "spec": spec_to_dict(spec, include_relations)}

    @mcp.tool()
    def list_specs(
        status: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        limit: int = 20,
        offset: int = 0,
        category: str | None = None,
        priority: str | None = None,
    ) -> dict:
        """List specs with optional status, category and priority filters and pagination.

        Args:
            status: Optional status filter (draft/todo/in-progress/done)
            sort_by: id, title, created_at or updated_at (default: created_at)
            sort_order: asc or desc (default: desc)
            limit: Page size, 1-100 (default: 20)
            offset: Number of specs to skip (default: 0)
            category: Optional category filter (e.g. "authentication")
            priority: Optional priority filter (low/medium/high)

        Returns:
            Dict with the specs (without body) and pagination info
        """
        try:
            page = specs.list_specs(
                status, sort_by, sort_order, limit, offset, category=category, priority=priority
            )
        except SpecError as e:
            return tool_error("list_specs", e)

        items = []
        for spec in page.specs:
            item = spec_to_dict(spec)
            item.pop("body_md")
            items.append(item)
        return {
            "success": True,
            "specs": items,
            "pagination": {
                "total": page.total,
                "limit": page.limit,
                "offset": page.offset,
                "has_more": page.has_more,
            },
        }

    @mcp.tool()
    def search_specs(
        query: str,
        limit: int = 20,
        offset: int = 0,
        min_score: float = 0.0,
    ) -> dict:
        """Search specs by title and body using full-text search.

        A single word matches as a prefix, two or three words as a phrase and
        longer queries require every word. Scores are higher for better matches;
        title matches weigh more than body matches.

        Args:
            query: Search text (1-1000 characters)
            limit: Maximum number of results, 1-100 (default: 20)
            offset: Number of results to skip (default: 0)
            min_score: Drop results scoring below this (default: 0.0)

        Returns:
            Dict with results (id, title, status, score, snippet, created_at,
            updated_at), pagination and search_time_ms
        """
        try:
            validate_page(limit, offset)
            response = search.search(query, limit=limit, offset=offset, min_score=min_score)
        except SpecError as e:
            return tool_error("search_specs", e)
        return {"success": True, **search_response_to_dict(response)}

    @mcp.tool()
    def suggest_terms(prefix: str, limit: int = 10) -> dict:
        """Suggest indexed terms starting with a prefix, most frequent first.

        Args:
            prefix: Term prefix (1-100 characters)
            limit: Maximum number of suggestions, 1-50 (default: 10)

        Returns:
            Dict with the prefix and suggestions (term, frequency)
        """
        try:
            validate_page(limit, 0, max_limit=50)
            suggestions = search.suggest(prefix, limit=limit)
        except SpecError as e:
            return tool_error("suggest_terms", e)
        return {
            "success": True,
            "query": prefix.strip().lower(),
            "suggestions": [{"term": s.term, "frequency": s.frequency} for s in suggestions],
        }

    @mcp.tool()
    def get_spec_stats(include_details: bool = False) -> dict:
        """Get spec counts per status.

        Args:
            include_details: Also return activity of the last 7 days and the
                most recently updated specs

        Returns:
            Dict with total_specs, by_status and optionally recent_activity and
            latest_specs
        """
        try:
            stats = specs.get_stats(include_details=include_details)
        except SpecError as e:
            return tool_error("get_spec_stats", e)

        result = {
            "success": True,
            "total_specs": stats.total_specs,
            "by_status": stats.by_status,
        }
        if include_details:
            result["recent_activity"] = stats.recent_activity
            result["latest_specs"] = [
                {"id": s.id, "title": s.title, "status": s.status} for s in stats.latest_specs
            ]
        return result

    @mcp.tool()
    def db_health_check() -> dict:
        """Check that the search index matches the stored specs.

        Returns:
            Dict with is_healthy, a message and the ids of specs missing from
            the index, orphaned index entries and entries whose content drifted
        """
        try:
            report = search.check_integrity()
        except SpecError as e:
            return tool_error("db_health_check", e)
        return {
            "success": True,
            "is_healthy": report.is_healthy,
            "message": report.message,
            "missing_ids": report.missing_ids,
            "orphan_ids": report.orphan_ids,
            "drifted_ids": report.drifted_ids,
        }

    @mcp.tool()
    def db_metrics() -> dict:
        """Get search index metrics.

        Returns:
            Dict with the search engine name, total_documents,
            avg_document_length, index_size_bytes, last_optimized and spec counts
        """
        try:
            index = search.stats()
            stats = specs.get_stats()
        except SpecError as e:
            return tool_error("db_metrics", e)
        return {
            "success": True,
            "engine": search.engine,
            **index_stats_to_dict(index),
            "total_specs": stats.total_specs,
            "by_status": stats.by_status,
        }

"""Tests for MCP resources."""

import pytest
from fastmcp import FastMCP

from spec_mcp.errors import NotFoundError
from spec_mcp.resources import get_spec_resource, get_specs_resource, register_resources
from spec_mcp.specs import SpecService
from spec_mcp.store.database import Database


@pytest.fixture
def specs(tmp_path):
    """Create a spec service over a temporary database with sample specs."""
    db = Database(tmp_path / "specs.db")
    db.initialize()
    service = SpecService(db)

    service.create_spec("Auth Service", "## Goal\n\nJWT token refresh\n", status="in-progress")
    service.create_spec("Billing", "Invoices", status="todo")
    service.create_spec("Caching", "Redis layer", status="in-progress")

    yield service
    db.close()


class TestSpecsResource:
    def test_lists_specs_grouped_by_status(self, specs):
        content = get_specs_resource(specs)

        assert content.startswith("# Specs")
        assert "Total specs: 3" in content
        assert "- in-progress: 2" in content
        assert "- draft: 0" in content
        assert "## in-progress" in content
        assert "## draft" not in content

        section = content.split("## in-progress")[1].split("##")[0]
        assert "[1] Auth Service (v1, updated " in section
        assert "[3] Caching" in section
        assert section.index("[1]") < section.index("[3]")

    def test_empty_store(self, tmp_path):
        db = Database(tmp_path / "empty.db")
        db.initialize()

        content = get_specs_resource(SpecService(db))

        assert "Total specs: 0" in content
        assert "## " not in content
        db.close()


class TestSpecResource:
    def test_spec_document(self, specs):
        content = get_spec_resource(specs, 1)

        assert content.startswith("# Auth Service")
        assert "**Id:** 1" in content
        assert "**Status:** in-progress" in content
        assert "**Version:** 1" in content
        assert "JWT token refresh" in content
        assert "## Todos" not in content

    def test_spec_document_with_children(self, specs):
        specs.add_todo(1, text="Design tokens", step_no=1, status="completed")
        specs.add_todo(1, text="Implement refresh", step_no=2)
        specs.log_execution(1, layer="backend", status="done", summary="Endpoints added")
        specs.log_issue(
            1,
            task_id="T2",
            task_description="Refresh rotation",
            layer="backend",
            status="resolved",
            error="Token reused",
            resolution="Rotate on every refresh",
        )

        content = get_spec_resource(specs, 1)

        assert "## Todos" in content
        assert "- [x] 1. Design tokens" in content
        assert "- [ ] 2. Implement refresh" in content
        assert "## Execution Log" in content
        assert "[backend] done: Endpoints added" in content
        assert "## Issues" in content
        assert "- T2 [backend] resolved: Refresh rotation" in content
        assert "  - Error: Token reused" in content
        assert "  - Resolution: Rotate on every refresh" in content

    def test_spec_document_metadata(self, specs):
        specs.create_spec("Refunds", "Refund flow", priority="high", related_specs=[2], parent_spec_id=2)

        content = get_spec_resource(specs, 4)

        assert "**Category:** payments" in content
        assert "**Priority:** high" in content
        assert "**Parent:** 2" in content
        assert "**Related:** 2" in content
        assert "**Parent:**" not in get_spec_resource(specs, 1)

    def test_spec_not_found(self, specs):
        with pytest.raises(NotFoundError, match="Spec 99 not found"):
            get_spec_resource(specs, 99)


class TestRegisterResources:
    @pytest.mark.asyncio
    async def test_registers_uris(self, specs):
        mcp = FastMCP()
        register_resources(mcp, specs)

        resources = await mcp.get_resources()
        templates = await mcp.get_resource_templates()

        assert "spec://specs" in resources
        assert "spec://specs/{spec_id}" in templates

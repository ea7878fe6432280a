"""
Dashboard API for specmcp.

REST endpoints over specs and search plus a WebSocket channel that pushes
spec lifecycle events to connected dashboards.
"""

from spec_mcp.api.app import create_app

__all__ = ["create_app"]

"""
specmcp - specification documents for AI agents and dashboards.

Stores specs (title, markdown body, status, version) with their todos and
execution and issue logs, and serves them over MCP tools and a REST +
WebSocket dashboard API.

Stack:
- Python + FastMCP (MCP tools and resources)
- SQLite FTS5 (search index kept in sync by triggers)
- Markdown + YAML frontmatter with an in-process TF-IDF index (file storage)
- FastAPI + uvicorn (dashboard REST and WebSocket)
"""

__version__ = "0.1.0"

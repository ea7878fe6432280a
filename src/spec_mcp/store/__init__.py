"""
Storage engines for specmcp.

Two interchangeable stores hold specs and their children: the SQLite store,
whose FTS5 index is kept in lockstep by triggers, and the markdown file store
with an in-process TF-IDF index.
"""

from spec_mcp.config import Config
from spec_mcp.store.database import Database
from spec_mcp.store.file_store import FileSpecStore
from spec_mcp.store.models import (
    ExecLog,
    IndexStats,
    IntegrityReport,
    IssueLog,
    SearchResponse,
    SearchResult,
    Spec,
    SpecPage,
    SpecStats,
    Suggestion,
    Todo,
)
from spec_mcp.store.tfidf import TfidfIndex

__all__ = [
    "Database",
    "ExecLog",
    "FileSpecStore",
    "IndexStats",
    "IntegrityReport",
    "IssueLog",
    "SearchResponse",
    "SearchResult",
    "Spec",
    "SpecPage",
    "SpecStats",
    "Suggestion",
    "TfidfIndex",
    "Todo",
    "open_store",
]


def open_store(config: Config) -> Database | FileSpecStore:
    """Build the store selected by SPEC_STORAGE and initialize it."""
    if config.storage == "file":
        store: Database | FileSpecStore = FileSpecStore(config.docs_dir)
    else:
        store = Database(config.spec_db)
    store.initialize()
    return store

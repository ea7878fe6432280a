"""Search services: ranked, paginated spec search with snippets and index upkeep.

SearchService runs on the SQLite store and its FTS5 index; TfidfSearchService
offers the same surface over the markdown file store. Both validate the raw
query text, time the lookup, build snippets and wrap storage failures into
StorageError carrying the operation name and its input.
"""

import logging
import time

from spec_mcp.errors import IntegrityError, ValidationError, storage_errors
from spec_mcp.store.database import Database
from spec_mcp.store.file_store import FileSpecStore
from spec_mcp.store.models import (
    IndexStats,
    IntegrityReport,
    SearchResponse,
    SearchResult,
    Spec,
    Suggestion,
)
from spec_mcp.store.query import (
    MAX_PREFIX_LENGTH,
    MAX_QUERY_LENGTH,
    escape_like,
    prepare_fts_query,
    query_terms,
)
from spec_mcp.store.snippet import make_snippet

logger = logging.getLogger(__name__)


def validate_query(query: str) -> str:
    """Trim a search query and enforce its length bounds."""
    text = (query or "").strip()
    if not text:
        raise ValidationError("Search query must not be empty", field="q")
    if len(text) > MAX_QUERY_LENGTH:
        raise ValidationError(
            f"Search query must be at most {MAX_QUERY_LENGTH} characters", field="q"
        )
    return text


def validate_prefix(prefix: str) -> str:
    """Trim and lower-case a suggestion prefix and enforce its length bounds."""
    text = (prefix or "").strip().lower()
    if not text:
        raise ValidationError("Suggestion prefix must not be empty", field="q")
    if len(text) > MAX_PREFIX_LENGTH:
        raise ValidationError(
            f"Suggestion prefix must be at most {MAX_PREFIX_LENGTH} characters", field="q"
        )
    return text


class BaseSearchService:
    """Shared query handling; subclasses supply the engine-specific lookups."""

    engine = "base"

    def search(
        self,
        query: str,
        limit: int = 50,
        offset: int = 0,
        min_score: float = 0.0,
    ) -> SearchResponse:
        """
        Search specs by free text.

        Args:
            query: Free-text query, 1..1000 characters after trimming
            limit: Page size (validated by the caller)
            offset: Number of ranked results to skip
            min_score: Results scoring below this are dropped from page and total

        Returns:
            SearchResponse with results best first and ties broken by id
        """
        text = validate_query(query)
        terms = query_terms(text)

        started = time.perf_counter()
        hits: list[tuple[Spec, float]] = []
        total = 0
        if terms:
            with storage_errors(
                "search", query=text, limit=limit, offset=offset, min_score=min_score
            ):
                hits, total = self._search(text, limit, offset, min_score)

        results = [
            SearchResult(
                id=spec.id,
                title=spec.title,
                status=spec.status,
                score=score,
                snippet=make_snippet(spec.body_md, terms),
                created_at=spec.created_at,
                updated_at=spec.updated_at,
            )
            for spec, score in hits
        ]
        elapsed_ms = (time.perf_counter() - started) * 1000

        logger.debug(
            "%s search %r: %d of %d results in %.2fms",
            self.engine, text, len(results), total, elapsed_ms,
        )
        return SearchResponse(
            query=text,
            results=results,
            total=total,
            limit=limit,
            offset=offset,
            search_time_ms=round(elapsed_ms, 3),
        )

    def suggest(self, prefix: str, limit: int = 10) -> list[Suggestion]:
        """Return indexed terms starting with prefix, most frequent first."""
        text = validate_prefix(prefix)
        with storage_errors("suggest", prefix=text, limit=limit):
            pairs = self._suggest(text, limit)
        return [Suggestion(term=term, frequency=count) for term, count in pairs]

    def stats(self) -> IndexStats:
        with storage_errors("stats"):
            return self._stats()

    def rebuild(self) -> int:
        """Regenerate the index from the spec store; returns the number of specs indexed."""
        started = time.perf_counter()
        with storage_errors("rebuild"):
            count = self._rebuild()
        logger.info(
            "Rebuilt %s index: %d specs in %.1fms",
            self.engine, count, (time.perf_counter() - started) * 1000,
        )
        return count

    def optimize(self) -> None:
        with storage_errors("optimize"):
            self._optimize()
        logger.info("Optimized %s index", self.engine)

    def check_integrity(self) -> IntegrityReport:
        with storage_errors("integrity"):
            report = self._check_integrity()
        if not report.is_healthy:
            logger.warning("Index integrity check failed: %s", report.message)
        return report

    def validate_integrity(self) -> bool:
        return self.check_integrity().is_healthy

    def ensure_integrity(self) -> IntegrityReport:
        """Return the healthy report, or raise IntegrityError describing the drift."""
        report = self.check_integrity()
        if not report.is_healthy:
            raise IntegrityError(
                report.message, report.missing_ids, report.orphan_ids, report.drifted_ids
            )
        return report

    # Engine hooks

    def _search(
        self, text: str, limit: int, offset: int, min_score: float
    ) -> tuple[list[tuple[Spec, float]], int]:
        raise NotImplementedError

    def _suggest(self, prefix: str, limit: int) -> list[tuple[str, int]]:
        raise NotImplementedError

    def _stats(self) -> IndexStats:
        raise NotImplementedError

    def _rebuild(self) -> int:
        raise NotImplementedError

    def _optimize(self) -> None:
        raise NotImplementedError

    def _check_integrity(self) -> IntegrityReport:
        raise NotImplementedError


class SearchService(BaseSearchService):
    """Search over the SQLite FTS5 index, ranked by negated bm25()."""

    engine = "fts5"

    def __init__(self, db: Database):
        self.db = db

    def _search(self, text, limit, offset, min_score):
        return self.db.search(prepare_fts_query(text), min_score, limit, offset)

    def _suggest(self, prefix, limit):
        return self.db.suggest_terms(escape_like(prefix) + "%", limit)

    def _stats(self):
        return self.db.index_stats()

    def _rebuild(self):
        return self.db.rebuild_fts()

    def _optimize(self):
        self.db.optimize_fts()

    def _check_integrity(self):
        return self.db.check_fts_integrity()


class TfidfSearchService(BaseSearchService):
    """Search over the file store's in-process TF-IDF index."""

    engine = "tfidf"

    def __init__(self, store: FileSpecStore):
        self.store = store

    def _search(self, text, limit, offset, min_score):
        ranked = self.store.index.search(text, min_score)
        hits = []
        for spec_id, score in ranked[offset:offset + limit]:
            spec = self.store.get_spec(spec_id)
            if spec is not None:
                hits.append((spec, score))
        return hits, len(ranked)

    def _suggest(self, prefix, limit):
        return self.store.index.vocabulary(prefix)[:limit]

    def _stats(self):
        return self.store.index_stats()

    def _rebuild(self):
        return self.store.rebuild_index()

    def _optimize(self):
        self.store.optimize_index()

    def _check_integrity(self):
        return self.store.check_index_integrity()


def create_search_service(store: Database | FileSpecStore) -> BaseSearchService:
    """Pick the search service matching a store."""
    if isinstance(store, FileSpecStore):
        return TfidfSearchService(store)
    return SearchService(store)

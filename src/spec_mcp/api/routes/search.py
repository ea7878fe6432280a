"""Full-text search endpoints and search index maintenance."""

from fastapi import APIRouter, Query, Request

from spec_mcp.api.envelope import ok
from spec_mcp.auth import check_write_permission
from spec_mcp.search import BaseSearchService
from spec_mcp.store.models import index_stats_to_dict, search_response_to_dict

router = APIRouter(prefix="/search", tags=["search"])


def _search(request: Request) -> BaseSearchService:
    return request.app.state.search


@router.get("")
def search(
    request: Request,
    q: str = Query(default="", description="Search text, 1-1000 characters"),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    min_score: float = Query(default=0.0),
) -> dict:
    """Ranked search over spec titles and bodies, best match first."""
    response = _search(request).search(q, limit=limit, offset=offset, min_score=min_score)
    return ok(search_response_to_dict(response))


@router.get("/suggestions")
def suggestions(
    request: Request,
    q: str = Query(default="", description="Term prefix, 1-100 characters"),
    limit: int = Query(default=10, ge=1, le=50),
) -> dict:
    """Indexed terms starting with a prefix, most frequent first."""
    found = _search(request).suggest(q, limit=limit)
    return ok(
        {
            "query": q.strip().lower(),
            "suggestions": [{"term": s.term, "frequency": s.frequency} for s in found],
        }
    )


@router.get("/stats")
def stats(request: Request) -> dict:
    return ok(index_stats_to_dict(_search(request).stats()))


@router.get("/integrity")
def integrity(request: Request) -> dict:
    report = _search(request).check_integrity()
    return ok({"is_healthy": report.is_healthy, "message": report.message})


@router.post("/optimize")
def optimize(request: Request) -> dict:
    check_write_permission(request.app.state.config)
    _search(request).optimize()
    return ok(message="Search index optimized")


@router.post("/rebuild")
def rebuild(request: Request) -> dict:
    check_write_permission(request.app.state.config)
    count = _search(request).rebuild()
    return ok({"indexed": count}, message=f"Search index rebuilt: {count} specs indexed")

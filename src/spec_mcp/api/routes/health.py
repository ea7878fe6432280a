"""Health and dashboard statistics endpoints."""

from fastapi import APIRouter, Query, Request, status
from fastapi.responses import JSONResponse

from spec_mcp.api.envelope import ok
from spec_mcp.errors import IntegrityError
from spec_mcp.store.models import spec_to_dict

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request) -> JSONResponse:
    """Report store, search index and observer status.

    Returns 200 when the search index matches the store, 503 otherwise.
    """
    state = request.app.state
    try:
        report = state.search.ensure_integrity()
    except IntegrityError as e:
        index = {
            "is_healthy": False,
            "message": str(e),
            "missing_ids": e.missing_ids,
            "orphan_ids": e.orphan_ids,
            "drifted_ids": e.drifted_ids,
        }
        code = e.status_code
    else:
        index = {"is_healthy": True, "message": report.message}
        code = status.HTTP_200_OK

    body = ok(
        {
            "status": "healthy" if index["is_healthy"] else "degraded",
            "storage": state.config.storage,
            "search_engine": state.search.engine,
            "index": index,
            "observers": state.hub.observer_count,
            "read_only": state.config.read_only,
        }
    )
    return JSONResponse(content=body, status_code=code)


@router.get("/stats")
def stats(request: Request, include_details: bool = Query(default=True)) -> dict:
    """Spec counts per status, recent activity and the latest specs."""
    spec_stats = request.app.state.specs.get_stats(include_details=include_details)
    data = {"total_specs": spec_stats.total_specs, "by_status": spec_stats.by_status}
    if include_details:
        data["recent_activity"] = spec_stats.recent_activity
        data["latest_specs"] = [spec_to_dict(spec) for spec in spec_stats.latest_specs]
    return ok(data)

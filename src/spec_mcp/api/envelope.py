"""Response envelopes shared by every REST route."""

from datetime import datetime, timezone
from typing import Any

from fastapi.responses import JSONResponse


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def ok(data: Any = None, **extra: Any) -> dict[str, Any]:
    """Successful response: {success, data, timestamp} plus any extra keys."""
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    body["timestamp"] = _timestamp()
    return body


def error_response(
    status_code: int, message: str, field: str | None = None
) -> JSONResponse:
    """Failed response: {success: false, error, timestamp}, with field when known."""
    body: dict[str, Any] = {"success": False, "error": message}
    if field:
        body["field"] = field
    body["timestamp"] = _timestamp()
    return JSONResponse(status_code=status_code, content=body)

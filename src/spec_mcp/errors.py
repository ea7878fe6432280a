"""Error types shared by the stores, services and outer surfaces."""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)


class SpecError(Exception):
    """Base class for all specmcp errors."""

    status_code = 500


class ValidationError(SpecError):
    """Raised when input is malformed or out of range."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(SpecError):
    """Raised when a referenced record does not exist."""

    status_code = 404

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(f"{resource} {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class VersionConflictError(SpecError):
    """Raised on a stale write when version enforcement is enabled."""

    status_code = 409

    def __init__(self, spec_id: int, expected: int, actual: int):
        super().__init__(
            f"Spec {spec_id} is at version {actual}, expected {expected}"
        )
        self.spec_id = spec_id
        self.expected = expected
        self.actual = actual


class IntegrityError(SpecError):
    """Raised when the search index has drifted from the spec store.

    Drift is reported, never repaired automatically; a rebuild fixes it.
    """

    status_code = 503

    def __init__(
        self,
        message: str,
        missing_ids: list[int] | None = None,
        orphan_ids: list[int] | None = None,
        drifted_ids: list[int] | None = None,
    ):
        super().__init__(message)
        self.missing_ids = missing_ids or []
        self.orphan_ids = orphan_ids or []
        self.drifted_ids = drifted_ids or []


class StorageError(SpecError):
    """Wraps a storage engine or I/O failure with the failing operation."""

    def __init__(self, operation: str, detail: str, context: dict | None = None):
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail
        self.context = context or {}


# Failures of a storage engine itself, as opposed to bad input
STORAGE_FAILURES = (sqlite3.Error, OSError)


@contextmanager
def storage_errors(operation: str, **context: Any) -> Iterator[None]:
    """Log and re-raise storage engine failures as StorageError."""
    try:
        yield
    except STORAGE_FAILURES as e:
        logger.exception("%s failed (%s)", operation, context)
        raise StorageError(operation, str(e), context) from e

"""
Typed errors raised by the query pipeline.

Every error carries an HTTP-style `status_code`; the API layer renders it
directly.  `stage` is filled in by the pipeline with the step that failed.
"""
from __future__ import annotations


class QueryError(Exception):
    """Base class for every failure the pipeline reports to its caller."""

    status_code: int = 500
    kind: str = "query_error"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.stage: str | None = None

    def __str__(self) -> str:
        return self.message


class NotFoundError(QueryError):
    status_code = 404
    kind = "not_found"


class InvalidParameterError(QueryError):
    status_code = 400
    kind = "invalid_parameter"


class AuthFailureError(QueryError):
    status_code = 401
    kind = "auth_failure"


class WarehouseExecutionError(QueryError):
    kind = "warehouse_error"


class MetadataQueryError(QueryError):
    kind = "metadata_query_error"


class StorageWriteError(QueryError):
    kind = "storage_write_error"

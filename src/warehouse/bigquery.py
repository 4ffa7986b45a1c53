"""
BigQuery backend.

Parameters are always sent as typed query parameters (``@name`` in SQL),
never interpolated into the statement text.
"""
from __future__ import annotations

import concurrent.futures
from typing import Any, Iterator, Mapping

from google.api_core.exceptions import GoogleAPICallError, GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import bigquery

from src.core.config import Settings
from src.core.errors import AuthFailureError, WarehouseExecutionError
from src.core.logging import get_logger, scrub
from src.warehouse.auth import get_credentials
from src.warehouse.base import QueryStream

logger = get_logger(__name__)

_PAGE_SIZE = 500

# RetryError and other non-call API errors, plus job.result() timeouts
_WAREHOUSE_ERRORS = (GoogleAPIError, GoogleAuthError, concurrent.futures.TimeoutError)


def to_query_parameter(name: str, value: Any) -> bigquery.ScalarQueryParameter:
    """Map a bound Python value to a typed BigQuery parameter."""
    if isinstance(value, bool):
        return bigquery.ScalarQueryParameter(name, "BOOL", value)
    if isinstance(value, int):
        return bigquery.ScalarQueryParameter(name, "INT64", value)
    if isinstance(value, float):
        return bigquery.ScalarQueryParameter(name, "FLOAT64", value)
    return bigquery.ScalarQueryParameter(name, "STRING", None if value is None else str(value))


def to_query_parameters(params: Mapping[str, Any]) -> list[bigquery.ScalarQueryParameter]:
    return [to_query_parameter(name, value) for name, value in params.items()]


def _status_code(exc: GoogleAPICallError) -> int:
    code = getattr(exc, "code", None)
    try:
        return int(code) if code else 500
    except (TypeError, ValueError):
        return 500


def translate_error(exc: Exception, secrets: tuple[str, ...] = ()) -> Exception:
    """Turn a Google client exception into a pipeline error without secrets."""
    if isinstance(exc, GoogleAuthError):
        return AuthFailureError(f"Unable to authenticate with BigQuery: {scrub(str(exc), secrets)}")
    if isinstance(exc, GoogleAPICallError):
        message = getattr(exc, "message", None) or str(exc)
        return WarehouseExecutionError(
            f"Unable to execute Google Query: {scrub(message, secrets)}",
            status_code=_status_code(exc),
        )
    detail = str(exc) or type(exc).__name__
    return WarehouseExecutionError(f"Unable to execute Google Query: {scrub(detail, secrets)}")


class BigQueryStream(QueryStream):
    """Rows of one BigQuery job, fetched page by page."""

    def __init__(
        self,
        client: bigquery.Client,
        sql: str,
        params: Mapping[str, Any],
        max_results: int | None = None,
        location: str | None = None,
    ):
        super().__init__()
        self._client = client
        self._sql = sql
        self._params = dict(params)
        self._max_results = max_results
        self._location = location
        self._job: bigquery.QueryJob | None = None
        self._iterator = None
        self._secrets = tuple(str(v) for k, v in self._params.items() if k == "domainkey")

    def _rows(self) -> Iterator[dict[str, Any]]:
        job_config = bigquery.QueryJobConfig(query_parameters=to_query_parameters(self._params))
        try:
            self._job = self._client.query(self._sql, job_config=job_config, location=self._location)
            self._iterator = self._job.result(max_results=self._max_results, page_size=_PAGE_SIZE)
            for row in self._iterator:
                yield dict(row.items())
        except _WAREHOUSE_ERRORS as exc:
            raise translate_error(exc, self._secrets) from None

    def details(self) -> dict[str, Any]:
        job = self._job
        if job is None:
            return {}
        return {
            "job_id": job.job_id,
            "location": job.location,
            "total_bytes_processed": job.total_bytes_processed,
            "total_bytes_billed": job.total_bytes_billed,
            "cache_hit": job.cache_hit,
            "slot_millis": job.slot_millis,
        }

    def schema(self) -> list[dict[str, str]]:
        if self._iterator is None or not self._iterator.schema:
            return []
        return [{"name": f.name, "type": f.field_type} for f in self._iterator.schema]

    def cancel(self) -> None:
        job = self._job
        if job is None or job.done():
            return
        try:
            job.cancel()
            logger.info("Cancelled BigQuery job %s", job.job_id)
        except GoogleAPICallError:
            logger.warning("Could not cancel BigQuery job %s", job.job_id)


class BigQueryWarehouse:
    """Authenticated BigQuery session for one request."""

    def __init__(self, client: bigquery.Client, location: str | None = "US"):
        self.client = client
        self.location = location

    @classmethod
    def connect(cls, settings: Settings) -> "BigQueryWarehouse":
        """Create a client from the configured service account."""
        credentials = get_credentials(settings.google_client_email, settings.private_key)
        try:
            client = bigquery.Client(project=settings.google_project_id, credentials=credentials)
        except (GoogleAuthError, ValueError) as exc:
            raise AuthFailureError(f"Unable to create BigQuery client: {scrub(str(exc))}") from None
        logger.info("BigQuery client created  project=%s", settings.google_project_id)
        return cls(client, location=settings.bigquery_location)

    def stream(
        self,
        sql: str,
        params: Mapping[str, Any],
        max_results: int | None = None,
    ) -> BigQueryStream:
        return BigQueryStream(self.client, sql, params, max_results=max_results, location=self.location)

"""
Metadata counter -- runs a template's ``# hlx:metadata`` statement.

The statement shares the main query's bound parameters and must return
exactly one row, typically ``SELECT COUNT(*) AS total_rows``.
"""
from __future__ import annotations

from typing import Any, Mapping

from src.core.errors import MetadataQueryError, QueryError
from src.core.logging import get_logger
from src.warehouse.base import Warehouse
from src.warehouse.executor import serialise_row

logger = get_logger(__name__)

TOTAL_ROWS = "total_rows"


def count_rows(
    warehouse: Warehouse,
    metadata_sql: str,
    params: Mapping[str, Any],
) -> dict[str, Any]:
    """Return the single metadata row.

    Raises
    ------
    MetadataQueryError
        If the statement fails or does not return exactly one row.
    """
    try:
        with warehouse.stream(metadata_sql, params, max_results=2) as stream:
            rows = [serialise_row(r) for r in stream]
    except QueryError as exc:
        raise MetadataQueryError(
            f"Metadata query failed: {exc.message}", status_code=exc.status_code,
        ) from exc

    if len(rows) != 1:
        raise MetadataQueryError(f"Metadata query returned {len(rows)} rows, expected 1")
    logger.debug("Metadata row: %s", rows[0])
    return rows[0]


def total_rows_of(metadata: Mapping[str, Any]) -> int | None:
    value = metadata.get(TOTAL_ROWS)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None

"""
Streaming query executor.

Rows are accumulated in memory until either the stream ends or the result
would outgrow the response budget:

  1. rows are appended as they arrive
  2. once `sample_rows` rows are held, the average compact-JSON size of a
     row is measured (once)
  3. before each further row, if ``avg * len(results) > budget`` the stream
     is cancelled and the result is marked truncated

The size check is an estimate: row sizes after the sample are never
measured individually.
"""
from __future__ import annotations

import base64
import decimal
import datetime
import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from src.core.logging import get_logger
from src.core.utils import timer
from src.warehouse.base import Warehouse

logger = get_logger(__name__)

DEFAULT_BUDGET = 1024 * 1024 * 0.9  # bytes
DEFAULT_SAMPLE_ROWS = 10


@dataclass
class ExecutionResult:
    results: list[dict[str, Any]]
    truncated: bool
    response_details: dict[str, Any] = field(default_factory=dict)
    schema: list[dict[str, str]] = field(default_factory=list)


def _serialise_value(val: Any) -> Any:
    """Convert warehouse types to JSON-serialisable Python types."""
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime, datetime.time)):
        return val.isoformat()
    if isinstance(val, datetime.timedelta):
        return str(val)
    if isinstance(val, bytes):
        return base64.b64encode(val).decode("ascii")
    if isinstance(val, list):
        return [_serialise_value(v) for v in val]
    if isinstance(val, dict):
        return {k: _serialise_value(v) for k, v in val.items()}
    return val


def serialise_row(row: Mapping[str, Any]) -> dict[str, Any]:
    return {col: _serialise_value(val) for col, val in row.items()}


def json_size(value: Any) -> int:
    """Byte length of *value* as compact JSON."""
    return len(json.dumps(value, separators=(",", ":"), default=str).encode("utf-8"))


def accumulate_rows(
    rows: Iterable[Mapping[str, Any]],
    budget: float = DEFAULT_BUDGET,
    sample_rows: int = DEFAULT_SAMPLE_ROWS,
) -> tuple[list[dict[str, Any]], bool]:
    """Collect *rows* until exhausted or the estimated size exceeds *budget*.

    Returns ``(results, truncated)``.  Streams shorter than *sample_rows* are
    never truncated.
    """
    results: list[dict[str, Any]] = []
    avg_row_size = 0.0
    for row in rows:
        if len(results) == sample_rows and not avg_row_size:
            avg_row_size = json_size(results) / len(results)
        if avg_row_size * len(results) > budget:
            return results, True
        results.append(serialise_row(row))
    return results, False


def execute_query(
    warehouse: Warehouse,
    sql: str,
    params: Mapping[str, Any],
    *,
    max_results: int | None = None,
    budget: float = DEFAULT_BUDGET,
    sample_rows: int = DEFAULT_SAMPLE_ROWS,
) -> ExecutionResult:
    """Run *sql* with bound *params* and collect rows under the size budget.

    Raises
    ------
    WarehouseExecutionError, AuthFailureError
        Propagated from the backend.
    """
    logger.info("Executing SQL (%d chars, %d params, max_results=%s)", len(sql), len(params), max_results)

    with timer() as t:
        with warehouse.stream(sql, params, max_results=max_results) as stream:
            results, truncated = accumulate_rows(stream, budget=budget, sample_rows=sample_rows)
        details = stream.details()
        schema = stream.schema()

    details["elapsed_ms"] = t["elapsed_ms"]
    if truncated:
        logger.warning("Result truncated at %d rows (budget %.0f bytes)", len(results), budget)
    logger.info("Returned %d rows  truncated=%s", len(results), truncated)
    return ExecutionResult(
        results=results,
        truncated=truncated,
        response_details=details,
        schema=schema,
    )

"""
Query audit log -- records every named-query execution.

Parameters are stored in their redacted form; the domainkey never reaches
this table.  Writes are fire-and-forget: a failing audit database is logged
and otherwise ignored.
"""
from __future__ import annotations

import json
import datetime
from typing import Any

from sqlalchemy import (
    Boolean, Column, DateTime, Integer, MetaData, String, Table, Text, insert,
)
from sqlalchemy.engine import Engine

from src.core.logging import get_logger

logger = get_logger(__name__)

_TABLE = "run_query_logs"

_metadata = MetaData()
_ensured: set[str] = set()

query_logs = Table(
    _TABLE,
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("query", String(200), nullable=False),
    Column("params", Text),             # JSON object, redacted
    Column("row_count", Integer),
    Column("truncated", Boolean, nullable=False, default=False),
    Column("total_rows", Integer),
    Column("success", Boolean, nullable=False, default=True),
    Column("error_kind", String(60)),
    Column("error_message", Text),
    Column("latency_ms", Integer),
    Column("created_at", DateTime(timezone=True), nullable=False),
)


def ensure_log_table(engine: Engine) -> None:
    """Create the query log table if it doesn't exist (once per engine URL)."""
    key = str(engine.url)
    if key in _ensured:
        return
    _metadata.create_all(engine, tables=[query_logs])
    _ensured.add(key)
    logger.info("Query log table '%s' ensured", _TABLE)


def log_query(
    engine: Engine | None,
    query: str,
    params: dict[str, Any],
    row_count: int,
    truncated: bool,
    total_rows: int | None,
    latency_ms: int,
    error_kind: str | None = None,
    error_message: str | None = None,
) -> None:
    """Insert one row into the query log table (no-op without an engine)."""
    if engine is None:
        return

    values = {
        "query": query,
        "params": json.dumps(params, default=str),
        "row_count": row_count,
        "truncated": truncated,
        "total_rows": total_rows,
        "success": error_kind is None,
        "error_kind": error_kind,
        "error_message": error_message,
        "latency_ms": latency_ms,
        "created_at": datetime.datetime.now(datetime.timezone.utc),
    }

    try:
        ensure_log_table(engine)
        with engine.begin() as conn:
            conn.execute(insert(query_logs), values)
        logger.debug("Query logged: query=%s", query)
    except Exception:
        logger.exception("Failed to log query -- continuing without logging")

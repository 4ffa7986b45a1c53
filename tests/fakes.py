"""
Test doubles -- an in-memory warehouse and sample query templates.
"""
from __future__ import annotations

from typing import Any, Iterator

from src.warehouse.base import QueryStream


PAGEVIEWS_SQL = """\
--- description: Page views per URL
--- Access-Control-Allow-Origin: *
--- url: -
--- limit: 100
--- offset: 0

WITH pages AS (
  SELECT url, COUNT(*) AS pageviews FROM rum WHERE url LIKE CONCAT(@url, "%") GROUP BY url
)

# hlx:metadata
SELECT COUNT(*) AS total_rows
FROM pages;

SELECT url, pageviews FROM pages
LIMIT @limit OFFSET @offset
--- url: the page URL
--- pageviews: number of page views
"""

PLAIN_SQL = """\
--- description: No pagination
--- limit: 10
-- ordinary comment
SELECT 1 AS n
"""

REQUIRED_SQL = """\
--- url:
--- limit: 10
SELECT @url AS url
"""


class FakeStream(QueryStream):
    def __init__(self, rows: list[dict[str, Any]], error: Exception | None = None):
        super().__init__()
        self.rows = rows
        self.error = error
        self.pulled = 0
        self.cancelled = False

    def _rows(self) -> Iterator[dict[str, Any]]:
        for row in self.rows:
            self.pulled += 1
            yield row
        if self.error is not None:
            raise self.error

    def details(self) -> dict[str, Any]:
        return {"job_id": "job-123", "cache_hit": False}

    def schema(self) -> list[dict[str, str]]:
        if not self.rows:
            return []
        return [{"name": k, "type": "STRING"} for k in self.rows[0]]

    def cancel(self) -> None:
        self.cancelled = True


class FakeWarehouse:
    """Answers metadata statements (those mentioning total_rows) and main queries separately."""

    def __init__(
        self,
        rows: list[dict[str, Any]] | None = None,
        metadata_rows: list[dict[str, Any]] | None = None,
        error: Exception | None = None,
        metadata_error: Exception | None = None,
    ):
        self.rows = rows or []
        self.metadata_rows = metadata_rows if metadata_rows is not None else [{"total_rows": len(self.rows)}]
        self.error = error
        self.metadata_error = metadata_error
        self.calls: list[tuple[str, dict[str, Any], int | None]] = []
        self.streams: list[FakeStream] = []

    def stream(self, sql: str, params: Any, max_results: int | None = None) -> FakeStream:
        self.calls.append((sql, dict(params), max_results))
        if "total_rows" in sql:
            stream = FakeStream(self.metadata_rows, self.metadata_error)
        else:
            stream = FakeStream(self.rows, self.error)
        self.streams.append(stream)
        return stream

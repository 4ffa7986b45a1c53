"""
Warehouse seam -- what the executor needs from a query backend.

A backend opens a `QueryStream` per statement.  The stream yields rows as
plain dicts, reports job statistics once consumed, and can be cancelled when
the caller stops reading early.  Used as a context manager, an unfinished
stream is cancelled on exit.
"""
from __future__ import annotations

from typing import Any, Iterator, Mapping, Protocol


class QueryStream:
    """Base class for a lazily-consumed result stream."""

    def __init__(self) -> None:
        self.exhausted = False

    def __iter__(self) -> Iterator[dict[str, Any]]:
        for row in self._rows():
            yield row
        self.exhausted = True

    def _rows(self) -> Iterator[dict[str, Any]]:
        raise NotImplementedError

    def details(self) -> dict[str, Any]:
        """Execution statistics (job id, bytes processed, cache hit ...)."""
        return {}

    def schema(self) -> list[dict[str, str]]:
        """Result columns as ``{"name", "type"}`` dicts."""
        return []

    def cancel(self) -> None:
        """Stop the underlying job.  Best effort."""

    def __enter__(self) -> "QueryStream":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if not self.exhausted:
            self.cancel()


class Warehouse(Protocol):
    def stream(
        self,
        sql: str,
        params: Mapping[str, Any],
        max_results: int | None = None,
    ) -> QueryStream:
        ...

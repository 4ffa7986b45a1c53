"""
Unit tests -- query audit log against a throwaway SQLite database.
"""
from __future__ import annotations

import json

import pytest
from sqlalchemy import create_engine, select

from src.core.config import Settings
from src.db.connection import dispose_engines, get_engine
from src.db.query_log import ensure_log_table, log_query, query_logs
from src.pipeline.service import QueryPipeline
from src.core.errors import NotFoundError
from tests.fakes import FakeWarehouse


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'audit.db'}")
    yield engine
    engine.dispose()


def _rows(engine):
    with engine.connect() as conn:
        return [dict(r._mapping) for r in conn.execute(select(query_logs))]


def test_ensure_log_table_idempotent(engine):
    ensure_log_table(engine)
    ensure_log_table(engine)
    assert _rows(engine) == []


def test_log_query_inserts_row(engine):
    log_query(
        engine,
        query="rum-pageviews",
        params={"url": "example.com", "limit": 100},
        row_count=5,
        truncated=False,
        total_rows=5,
        latency_ms=12,
    )
    [row] = _rows(engine)
    assert row["query"] == "rum-pageviews"
    assert json.loads(row["params"]) == {"url": "example.com", "limit": 100}
    assert row["success"] is True
    assert row["error_kind"] is None


def test_log_query_without_engine_is_noop():
    log_query(None, query="q", params={}, row_count=0, truncated=False, total_rows=None, latency_ms=0)


def test_log_query_failure_swallowed(tmp_path):
    bad = create_engine(f"sqlite:///{tmp_path / 'missing' / 'dir' / 'audit.db'}")
    log_query(bad, query="q", params={}, row_count=0, truncated=False, total_rows=None, latency_ms=0)


def test_pipeline_records_success_without_domainkey(settings, engine, five_rows):
    pipeline = QueryPipeline(settings, warehouse_factory=lambda: FakeWarehouse(rows=five_rows), audit_engine=engine)
    pipeline.execute_named_query("rum-pageviews", {"url": "example.com"}, domainkey="dk-audit-secret")
    [row] = _rows(engine)
    assert row["row_count"] == 5
    assert row["total_rows"] == 5
    assert "dk-audit-secret" not in row["params"]
    assert "domainkey" not in row["params"]


def test_pipeline_records_failure(settings, engine):
    pipeline = QueryPipeline(settings, warehouse_factory=FakeWarehouse, audit_engine=engine)
    with pytest.raises(NotFoundError):
        pipeline.execute_named_query("nope", {})
    [row] = _rows(engine)
    assert row["success"] is False
    assert row["error_kind"] == "not_found"


def test_get_engine_disabled_without_url():
    assert get_engine(Settings(audit_database_url="")) is None


def test_get_engine_cached(tmp_path):
    settings = Settings(audit_database_url=f"sqlite:///{tmp_path / 'a.db'}")
    try:
        assert get_engine(settings) is get_engine(settings)
    finally:
        dispose_engines()

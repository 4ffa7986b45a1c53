"""
Shared fixtures -- a throwaway query catalog and settings pointing at it.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from src.core.config import Settings
from src.queries.catalog import QueryCatalog
from tests.fakes import PAGEVIEWS_SQL, PLAIN_SQL, REQUIRED_SQL


@pytest.fixture
def catalog_dir(tmp_path: Path) -> Path:
    (tmp_path / "rum-pageviews.sql").write_text(PAGEVIEWS_SQL)
    (tmp_path / "plain.sql").write_text(PLAIN_SQL)
    (tmp_path / "required.sql").write_text(REQUIRED_SQL)
    (tmp_path / "nested").mkdir()
    (tmp_path / "nested" / "inner.sql").write_text(PLAIN_SQL)
    return tmp_path


@pytest.fixture
def catalog(catalog_dir: Path) -> QueryCatalog:
    return QueryCatalog(catalog_dir)


@pytest.fixture
def settings(catalog_dir: Path) -> Settings:
    return Settings(
        queries_dir=catalog_dir,
        audit_database_url="",
        archive_bucket="",
        google_client_email="",
        google_private_key="",
    )


@pytest.fixture
def five_rows() -> list[dict[str, Any]]:
    return [{"url": f"https://example.com/{i}", "pageviews": 100 - i} for i in range(5)]

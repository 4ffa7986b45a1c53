"""SQLAlchemy engine for the audit log database.

The audit log is optional: with no `audit_database_url` configured
`get_engine` returns None and nothing is recorded.
"""
from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from src.core.config import Settings, get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_engines: dict[str, Engine] = {}


def get_engine(settings: Settings | None = None) -> Engine | None:
    """Return the shared engine for the configured URL (lazy-created, cached)."""
    settings = settings or get_settings()
    url = settings.audit_database_url
    if not url:
        return None
    engine = _engines.get(url)
    if engine is None:
        engine = create_engine(url, pool_pre_ping=True, echo=False)
        _engines[url] = engine
        logger.info("Audit DB engine created  dialect=%s", engine.dialect.name)
    return engine


def dispose_engines() -> None:
    """Close every cached engine."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()

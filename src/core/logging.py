"""
Structured logging for the query service.

Every handler carries a `SecretRedactingFilter`.  Two kinds of value are
masked:

  - process-wide secrets registered once with `register_secret` (the
    service-account key)
  - request-scoped secrets bound with `request_secrets` (the caller's
    domainkey), held in a context variable and dropped when the request ends
"""
from __future__ import annotations

import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

from src.core.config import get_settings

_REDACTED = "***"
_MIN_SECRET_LENGTH = 4

_secrets: set[str] = set()
_secrets_lock = threading.Lock()

_request_secrets: ContextVar[tuple[str, ...]] = ContextVar("request_secrets", default=())


def _maskable(value: str | None) -> bool:
    return bool(value) and len(value) >= _MIN_SECRET_LENGTH


def register_secret(value: str | None) -> None:
    """Mask *value* in every log record emitted from now on."""
    if not _maskable(value):
        return
    with _secrets_lock:
        _secrets.add(value)


def registered_secret_count() -> int:
    with _secrets_lock:
        return len(_secrets)


@contextmanager
def request_secrets(*values: str | None) -> Iterator[None]:
    """Mask *values* in log records emitted inside the ``with`` block only."""
    token = _request_secrets.set(tuple(v for v in values if _maskable(v)))
    try:
        yield
    finally:
        _request_secrets.reset(token)


def scrub(message: str, extra: tuple[str, ...] = ()) -> str:
    """Replace every registered, request-scoped and *extra* secret in *message*."""
    with _secrets_lock:
        secrets = set(_secrets)
    secrets.update(_request_secrets.get())
    secrets.update(s for s in extra if s)
    for secret in sorted(secrets, key=len, reverse=True):
        message = message.replace(secret, _REDACTED)
    return message


class SecretRedactingFilter(logging.Filter):
    """Scrubs the formatted message and any traceback text of a record."""

    _formatter = logging.Formatter()

    def filter(self, record: logging.LogRecord) -> bool:
        if not (_secrets or _request_secrets.get()):
            return True
        record.msg = scrub(record.getMessage())
        record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = self._formatter.formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = scrub(record.exc_text)
        return True


def get_logger(name: str) -> logging.Logger:
    settings = get_settings()
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        fmt = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(fmt)
        handler.addFilter(SecretRedactingFilter())
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger

"""
Small shared utilities.
"""
from __future__ import annotations

import re
import time
from contextlib import contextmanager
from typing import Generator

_NON_HEADER_CHARS = re.compile(r"[^\x20-\x7e]")

MAX_HEADER_VALUE_LENGTH = 1024


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


def cleanup_header_value(value: str) -> str:
    """Make *value* safe to send as an HTTP header value.

    Control and non-ASCII characters become spaces and the result is capped
    at 1024 characters.
    """
    cleaned = _NON_HEADER_CHARS.sub(" ", value).strip()
    return cleaned[:MAX_HEADER_VALUE_LENGTH]

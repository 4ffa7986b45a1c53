"""
Best-effort archive of JSON results to S3.

Only queries in `settings.stored_queries` are archived, and only when the
request comes from the internal system identity.  A failed write never
fails the request.
"""
from __future__ import annotations

import time
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from src.core.config import Settings
from src.core.errors import StorageWriteError
from src.core.logging import get_logger

logger = get_logger(__name__)


class ResultArchive:
    """Thin wrapper around an S3 bucket."""

    def __init__(self, bucket: str, client: Any = None):
        self.bucket = bucket
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("s3")
        return self._client

    def put(self, path: str, body: str, content_type: str) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=body.encode("utf-8"),
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageWriteError(f"failed to store {path}: {exc}") from exc


def archive_path(query: str, org: str, site: str, now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{org}/rum/{site}/{query}/{now_ms}.json"


def store_result(
    settings: Settings,
    query: str,
    body: str,
    invoker: str | None,
    *,
    org: str | None = None,
    site: str | None = None,
    archive: ResultArchive | None = None,
) -> bool:
    """Archive *body* if the query and invoker are eligible.

    Returns True when the object was written.
    """
    if query not in settings.stored_queries or invoker != settings.internal_invoker:
        return False
    if archive is None:
        if not settings.archive_bucket:
            logger.debug("No archive bucket configured -- skipping %s", query)
            return False
        archive = ResultArchive(settings.archive_bucket)

    path = archive_path(query, org or "tmp", site or "tmp")
    try:
        archive.put(path, body, "application/json")
    except StorageWriteError as exc:
        logger.error("failed to store result: %s", exc)
        return False
    logger.info("Stored result for %s at %s", query, path)
    return True

"""GET|POST /{query} -- run a named query; the path suffix selects the format.

  /rum-pageviews          JSON (multi-sheet)
  /rum-pageviews.json     JSON (multi-sheet)
  /rum-pageviews.csv      CSV
  /rum-pageviews.chart    307 redirect to the chart service
  /rum-pageviews.txt      query description, nothing executed
"""
from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool

from src.api import renderers
from src.core.config import Settings, get_settings
from src.core.logging import get_logger
from src.pipeline.service import QueryPipeline
from src.queries.binder import clean_request_params, resolve_domainkey
from src.storage.archive import store_result

logger = get_logger(__name__)
router = APIRouter()

INVOKER_HEADER = "x-invoker"


@lru_cache
def get_pipeline() -> QueryPipeline:
    return QueryPipeline(get_settings())


def _extension(query_path: str) -> str:
    last = query_path.rsplit("/", 1)[-1]
    _, dot, ext = last.partition(".")
    return ext.lower() if dot else "json"


async def _request_params(request: Request) -> dict[str, Any]:
    params: dict[str, Any] = dict(request.query_params)
    if request.method == "POST":
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            try:
                body = await request.json()
            except json.JSONDecodeError:
                body = None
            if isinstance(body, dict):
                params.update(body)
        elif content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
            form = await request.form()
            params.update({k: v for k, v in form.items() if isinstance(v, str)})
    return params


@router.get("/", include_in_schema=False)
def list_queries(pipeline: QueryPipeline = Depends(get_pipeline)) -> dict:
    """Return the names of every available query."""
    return {"queries": pipeline.catalog.names()}


@router.api_route("/{query_path:path}", methods=["GET", "POST"])
async def run_query(
    query_path: str,
    request: Request,
    pipeline: QueryPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Run (or describe) the named query and render it by path suffix."""
    ext = _extension(query_path)
    if ext == "txt":
        description = pipeline.describe_named_query(query_path)
        return PlainTextResponse(renderers.to_description_text(description))

    params = await _request_params(request)
    domainkey = resolve_domainkey(
        request.headers.get("authorization"), params, settings.default_domainkey,
    )
    request.state.domainkey = domainkey
    envelope = await run_in_threadpool(
        pipeline.execute_named_query,
        query_path,
        clean_request_params(params),
        domainkey=domainkey,
    )

    if ext == "csv":
        return Response(
            renderers.to_csv(envelope.results),
            media_type="text/csv",
            headers=envelope.headers,
        )

    if ext == "chart":
        chart_json = json.dumps(renderers.to_chart_config(envelope.results, envelope.description))
        location = renderers.chart_redirect_url(settings.chart_service_url, chart_json, params)
        return Response(
            chart_json,
            status_code=307,
            media_type="text/plain",
            headers={**envelope.headers, "location": location},
        )

    body = renderers.to_multisheet_json(envelope)
    await run_in_threadpool(
        store_result,
        settings,
        envelope.query,
        body,
        request.headers.get(INVOKER_HEADER),
        org=params.get("org"),
        site=params.get("site"),
    )
    return Response(body, media_type="application/json", headers=envelope.headers)

"""
Output renderers for a ResultEnvelope.

  - multi-sheet JSON  (`results` + `meta` sheets)
  - CSV               (result rows only)
  - chart             (chart.js config + chart service redirect URL)
  - text              (query description for ``.txt`` requests)
"""
from __future__ import annotations

import json
from typing import Any, Mapping

import httpx
import pandas as pd

from src.pipeline.service import ResultEnvelope
from src.queries.catalog import QueryDescription

CHART_URL_PARAMS = ("width", "height", "devicePixelRatio", "backgroundColor", "format", "version")


# ── JSON ────────────────────────────────────────────────

def _columns(rows: list[dict[str, Any]], schema: list[dict[str, str]]) -> list[str]:
    if schema:
        return [c["name"] for c in schema]
    columns: list[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    return columns


def _meta_rows(envelope: ResultEnvelope) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    description = envelope.description
    if description is not None and description.description:
        rows.append({"name": "description", "value": description.description, "type": "query description"})
    for name, value in envelope.request_params.items():
        rows.append({"name": name, "value": value, "type": "request parameter"})
    for name, value in envelope.response_details.items():
        rows.append({"name": name, "value": value, "type": "response detail"})
    for name, value in envelope.response_metadata.items():
        rows.append({"name": name, "value": value, "type": "response metadata"})
    rows.append({"name": "truncated", "value": envelope.truncated, "type": "response detail"})
    if description is not None:
        for name, value in description.fields.items():
            rows.append({"name": name, "value": value, "type": "column description"})
    return rows


def to_multisheet_json(envelope: ResultEnvelope) -> str:
    meta = _meta_rows(envelope)
    body = {
        ":names": ["results", "meta"],
        ":type": "multi-sheet",
        ":version": 3,
        "results": {
            "limit": envelope.limit if envelope.limit is not None else len(envelope.results),
            "offset": envelope.offset,
            "total": envelope.total_rows if envelope.total_rows is not None else len(envelope.results),
            "data": envelope.results,
            "columns": _columns(envelope.results, envelope.schema),
        },
        "meta": {
            "limit": len(meta),
            "offset": 0,
            "total": len(meta),
            "columns": ["name", "value", "type"],
            "data": meta,
        },
    }
    return json.dumps(body, default=str)


# ── CSV ─────────────────────────────────────────────────

def to_csv(rows: list[dict[str, Any]]) -> str:
    if not rows:
        return ""
    df = pd.DataFrame(rows, columns=_columns(rows, []))
    return df.to_csv(index=False)


# ── Chart ───────────────────────────────────────────────

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_chart_config(
    rows: list[dict[str, Any]],
    description: QueryDescription | None,
    chart_type: str = "bar",
) -> dict[str, Any]:
    """Build a chart.js config: first non-numeric column as labels, numeric columns as datasets."""
    columns = _columns(rows, [])
    numeric = [c for c in columns if rows and all(_is_number(r.get(c)) for r in rows if r.get(c) is not None)]
    label_col = next((c for c in columns if c not in numeric), columns[0] if columns else None)
    datasets = [
        {"label": col, "data": [r.get(col) for r in rows]}
        for col in numeric
        if col != label_col
    ]
    config: dict[str, Any] = {
        "type": chart_type,
        "data": {
            "labels": [r.get(label_col) for r in rows] if label_col else [],
            "datasets": datasets,
        },
    }
    if description is not None and description.description:
        config["options"] = {"title": {"display": True, "text": description.description}}
    return config


def chart_redirect_url(service_url: str, chart_json: str, params: Mapping[str, Any]) -> str:
    query = {p: str(params[p]) for p in CHART_URL_PARAMS if params.get(p)}
    query["chart"] = chart_json
    return str(httpx.URL(service_url, params=query))


# ── Text ────────────────────────────────────────────────

def to_description_text(description: QueryDescription) -> str:
    lines = [f"# {description.name}", ""]
    if description.description:
        lines += [description.description, ""]
    if description.parameters:
        lines.append("Parameters:")
        for name, default in description.parameters.items():
            shown = default if default is not None else "(required)"
            lines.append(f"  * {name}: {shown}")
        lines.append("")
    if description.fields:
        lines.append("Columns:")
        for name, text in description.fields.items():
            lines.append(f"  * {name}: {text}")
        lines.append("")
    return "\n".join(lines)

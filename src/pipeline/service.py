"""
Query pipeline -- orchestrates resolve -> load -> parse -> bind -> count ->
execute -> assemble.

Any stage failure raises the typed `QueryError` of that stage, tagged with
`error.stage`; no partial envelope is ever returned.  The one exception is
the metadata (count) statement, which soft-fails: its error is logged and
the envelope carries ``total_rows=None``.

Every execution is recorded in the audit log when one is configured.
"""
from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from sqlalchemy.engine import Engine

from src.core.config import Settings
from src.core.errors import MetadataQueryError, NotFoundError, QueryError
from src.core.logging import get_logger, request_secrets
from src.db.connection import get_engine
from src.db.query_log import log_query
from src.queries.binder import BoundParameters, bind
from src.queries.catalog import QueryCatalog, QueryDescription, QueryTemplate, describe_template
from src.warehouse.base import Warehouse
from src.warehouse.bigquery import BigQueryWarehouse
from src.warehouse.counter import count_rows, total_rows_of
from src.warehouse.executor import execute_query

logger = get_logger(__name__)


class Stage(str, enum.Enum):
    RESOLVE_NAME = "resolve_name"
    LOAD_TEMPLATE = "load_template"
    PARSE_METADATA = "parse_metadata"
    BIND_PARAMS = "bind_params"
    EXECUTE_COUNT = "execute_count"
    EXECUTE_MAIN = "execute_main"
    ASSEMBLE_ENVELOPE = "assemble_envelope"


@dataclass
class ResultEnvelope:
    """Everything the HTTP layer needs to render a result."""

    query: str
    results: list[dict[str, Any]]
    truncated: bool
    headers: dict[str, str] = field(default_factory=dict)
    description: QueryDescription | None = None
    request_params: dict[str, Any] = field(default_factory=dict)
    response_details: dict[str, Any] = field(default_factory=dict)
    response_metadata: dict[str, Any] = field(default_factory=dict)
    total_rows: int | None = None
    schema: list[dict[str, str]] = field(default_factory=list)

    @property
    def limit(self) -> int | None:
        value = self.request_params.get("limit")
        return value if isinstance(value, int) else None

    @property
    def offset(self) -> int:
        value = self.request_params.get("offset")
        return value if isinstance(value, int) else 0


def resolve_query_name(path: str) -> str:
    """Strip leading slashes and any extension: ``/rum/x.csv`` -> ``rum/x``."""
    name = path.strip().lstrip("/")
    head, _, last = name.rpartition("/")
    last = last.split(".", 1)[0]
    name = f"{head}/{last}" if head else last
    if not name:
        raise NotFoundError("No query name given")
    return name


WarehouseFactory = Callable[[], Warehouse]


class QueryPipeline:
    """Runs named queries against the warehouse.

    Parameters
    ----------
    settings : Settings
        Sourced once per process; nothing below reads the environment.
    catalog : QueryCatalog, optional
        Defaults to ``settings.queries_dir``.
    warehouse_factory : callable, optional
        Opens a warehouse session.  Defaults to BigQuery with the configured
        service account.  Called only after parameters are bound.
    audit_engine : Engine, optional
        Defaults to the engine for ``settings.audit_database_url``.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        catalog: QueryCatalog | None = None,
        warehouse_factory: WarehouseFactory | None = None,
        audit_engine: Engine | None = None,
    ):
        self.settings = settings
        self.catalog = catalog or QueryCatalog(settings.queries_dir)
        self.warehouse_factory = warehouse_factory or (lambda: BigQueryWarehouse.connect(settings))
        self.audit_engine = audit_engine if audit_engine is not None else get_engine(settings)

    # ── Public API ──────────────────────────────────────

    def describe_named_query(self, name: str) -> QueryDescription:
        """Parameter documentation for *name*; runs nothing."""
        return self.catalog.describe(resolve_query_name(name))

    def execute_named_query(
        self,
        name: str,
        params: Mapping[str, Any],
        *,
        domainkey: str | None = None,
    ) -> ResultEnvelope:
        """End-to-end: query name + request params -> ResultEnvelope.

        Raises
        ------
        QueryError
            The typed error of the failing stage, with ``stage`` set.
        """
        secret = domainkey if domainkey != self.settings.default_domainkey else None
        with request_secrets(secret):
            return self._execute(name, params, domainkey)

    # ── Internals ───────────────────────────────────────

    def _execute(
        self,
        name: str,
        params: Mapping[str, Any],
        domainkey: str | None,
    ) -> ResultEnvelope:
        t0 = time.perf_counter()
        stage = Stage.RESOLVE_NAME
        bound: BoundParameters | None = None
        query = name
        try:
            # 1. Resolve name
            query = resolve_query_name(name)

            # 2. Load template
            stage = Stage.LOAD_TEMPLATE
            template = self.catalog.load(query)

            # 3. Parse metadata -- done by the catalog; record what was found
            stage = Stage.PARSE_METADATA
            logger.info(
                "Pipeline | query=%s | params=%s | metadata_query=%s",
                query, list(template.parameters), template.has_metadata_query,
            )

            # 4. Bind parameters
            stage = Stage.BIND_PARAMS
            bound = bind(template.parameters, params, domainkey=domainkey)

            # 5. Open the session, then count (soft-fail)
            stage = Stage.EXECUTE_COUNT
            warehouse = self.warehouse_factory()
            metadata = self._count(warehouse, template, bound)

            # 6. Main query
            stage = Stage.EXECUTE_MAIN
            limit = bound.bound.get("limit")
            result = execute_query(
                warehouse,
                template.query,
                bound.bound,
                max_results=limit if isinstance(limit, int) else None,
                budget=self.settings.result_size_budget,
                sample_rows=self.settings.truncation_sample_rows,
            )

            # 7. Assemble
            stage = Stage.ASSEMBLE_ENVELOPE
            envelope = ResultEnvelope(
                query=query,
                results=result.results,
                truncated=result.truncated,
                headers=dict(template.headers),
                description=describe_template(template),
                request_params=dict(bound.redacted),
                response_details=result.response_details,
                response_metadata=metadata or {},
                total_rows=total_rows_of(metadata) if metadata else None,
                schema=result.schema,
            )
        except QueryError as exc:
            exc.stage = stage.value
            logger.warning("Pipeline failed | query=%s | stage=%s | %s", query, stage.value, exc.message)
            self._audit(query, bound, t0, error=exc)
            raise

        self._audit(query, bound, t0, envelope=envelope)
        return envelope

    def _count(
        self,
        warehouse: Warehouse,
        template: QueryTemplate,
        bound: BoundParameters,
    ) -> dict[str, Any] | None:
        if template.metadata_query is None:
            return None
        try:
            return count_rows(warehouse, template.metadata_query, bound.bound)
        except MetadataQueryError as exc:
            logger.warning("Metadata query for %s failed -- omitting totals: %s", template.name, exc.message)
            return None

    def _audit(
        self,
        query: str,
        bound: BoundParameters | None,
        t0: float,
        envelope: ResultEnvelope | None = None,
        error: QueryError | None = None,
    ) -> None:
        latency = int((time.perf_counter() - t0) * 1000)
        log_query(
            self.audit_engine,
            query=query,
            params=bound.redacted if bound else {},
            row_count=len(envelope.results) if envelope else 0,
            truncated=envelope.truncated if envelope else False,
            total_rows=envelope.total_rows if envelope else None,
            latency_ms=latency,
            error_kind=error.kind if error else None,
            error_message=error.message if error else None,
        )


"""
File-backed catalog of named SQL query templates.

A template is a ``.sql`` file whose leading lines declare its parameters:

    --- description: Page views per URL
    --- Cache-Control: max-age=300
    --- url: -
    --- limit: 100

Grammar of a metadata line: the ``---`` marker at column 0, a key, a colon,
a value.  Key and value are trimmed; the value may itself contain colons.
Anything else (including ordinary ``--`` SQL comments) is query text.

Keys in the leading block are split three ways:
  - ``description``        -- the human-readable query description
  - ``Capitalised-Keys``   -- response header hints
  - lowercase keys         -- bound parameters, value = default

``---`` lines after the SQL body document the result columns.

A ``# hlx:metadata`` line separates a shared prefix (usually the ``WITH``
CTEs) from two statements: first the one-row metadata query, then the main
query.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from src.core.errors import NotFoundError
from src.core.logging import get_logger

logger = get_logger(__name__)

METADATA_MARKER = "---"
METADATA_SENTINEL = "# hlx:metadata"
QUERY_EXTENSION = ".sql"

# Request-side hint; never echoed back as a response header.
_REQUEST_ONLY_HEADERS = {"authorization"}


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class ParameterSpec:
    name: str
    default: str | None = None

    @property
    def required(self) -> bool:
        return self.default is None


@dataclass(frozen=True)
class QueryTemplate:
    """A parsed query file."""

    name: str
    body: str
    header: dict[str, str]
    parameters: dict[str, ParameterSpec]
    headers: dict[str, str]
    fields: dict[str, str]
    query: str
    metadata_query: str | None = None
    description: str | None = None

    @property
    def has_metadata_query(self) -> bool:
        return self.metadata_query is not None


@dataclass(frozen=True)
class QueryDescription:
    """What a caller needs to know to run a query, without running it."""

    name: str
    description: str | None
    parameters: dict[str, str | None] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    fields: dict[str, str] = field(default_factory=dict)


# ── Parsing ──────────────────────────────────────────────

def parse_metadata_line(line: str) -> tuple[str, str] | None:
    """Return ``(key, value)`` for a metadata line, ``None`` for anything else."""
    if not line.startswith(METADATA_MARKER):
        return None
    rest = line[len(METADATA_MARKER):]
    key, sep, value = rest.partition(":")
    key = key.strip()
    if not sep or not key:
        return None
    return key, value.strip()


def parse_header(body: str) -> dict[str, str]:
    """Collect every metadata line of *body*, in order."""
    entries: dict[str, str] = {}
    for line in body.splitlines():
        parsed = parse_metadata_line(line)
        if parsed is not None:
            key, value = parsed
            entries[key] = value
    return entries


def _split_sections(body: str) -> tuple[dict[str, str], dict[str, str]]:
    """Split metadata lines into the leading header and trailing field docs."""
    header: dict[str, str] = {}
    fields: dict[str, str] = {}
    in_header = True
    for line in body.splitlines():
        parsed = parse_metadata_line(line)
        if parsed is None:
            if line.strip():
                in_header = False
            continue
        key, value = parsed
        if in_header:
            header[key] = value
        else:
            fields[key] = value
    return header, fields


def _executable(text: str) -> str:
    """Strip metadata lines and the trailing semicolon from a statement."""
    lines = [l for l in text.splitlines() if parse_metadata_line(l) is None]
    sql = "\n".join(lines).strip()
    while sql.endswith(";"):
        sql = sql[:-1].rstrip()
    return sql


def split_statements(body: str) -> tuple[str, str | None]:
    """Return ``(query, metadata_query)``; the latter is None without a sentinel."""
    lines = body.splitlines()
    try:
        at = next(i for i, l in enumerate(lines) if l.strip() == METADATA_SENTINEL)
    except StopIteration:
        return _executable(body), None

    prefix = "\n".join(lines[:at])
    rest = lines[at + 1:]
    end = next(
        (i for i, l in enumerate(rest) if l.rstrip().endswith(";")),
        None,
    )
    if end is None:
        # No terminated statement: everything after the sentinel is metadata.
        return _executable(prefix), _executable("\n".join([prefix, *rest]))

    metadata = "\n".join([prefix, *rest[: end + 1]])
    main = "\n".join([prefix, *rest[end + 1:]])
    return _executable(main), _executable(metadata)


def _classify(header: dict[str, str]) -> tuple[str | None, dict[str, ParameterSpec], dict[str, str]]:
    description = None
    parameters: dict[str, ParameterSpec] = {}
    headers: dict[str, str] = {}
    for key, value in header.items():
        if key == "description":
            description = value
        elif key[0].isupper():
            if key.lower() not in _REQUEST_ONLY_HEADERS:
                headers[key] = value
        else:
            parameters[key] = ParameterSpec(name=key, default=value or None)
    return description, parameters, headers


def parse_template(name: str, body: str) -> QueryTemplate:
    header, fields = _split_sections(body)
    description, parameters, headers = _classify(header)
    query, metadata_query = split_statements(body)
    return QueryTemplate(
        name=name,
        body=body,
        header=header,
        parameters=parameters,
        headers=headers,
        fields=fields,
        query=query,
        metadata_query=metadata_query,
        description=description,
    )


def describe_template(template: QueryTemplate) -> QueryDescription:
    return QueryDescription(
        name=template.name,
        description=template.description,
        parameters={p.name: p.default for p in template.parameters.values()},
        headers=dict(template.headers),
        fields=dict(template.fields),
    )


# ── Catalog ──────────────────────────────────────────────

class QueryCatalog:
    """Read-only view of a directory of ``.sql`` templates.

    Safe to share between concurrent requests; every `load` re-reads the file.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root).resolve()

    def path_for(self, name: str) -> Path:
        relative = name.lstrip("/")
        if not relative:
            raise NotFoundError("No query name given")
        try:
            path = (self.root / f"{relative}{QUERY_EXTENSION}").resolve()
        except (ValueError, OSError):
            # e.g. an embedded NUL byte from a %00 in the request path
            raise NotFoundError(f"Query not found: {name!r}") from None
        if not path.is_relative_to(self.root):
            raise NotFoundError(f"Query not found: {name}")
        return path

    def load(self, name: str) -> QueryTemplate:
        path = self.path_for(name)
        try:
            body = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise NotFoundError(f"Query not found: {name}") from None
        except (IsADirectoryError, ValueError):
            raise NotFoundError(f"Query not found: {name!r}") from None
        template = parse_template(name.lstrip("/"), body)
        logger.debug(
            "Loaded query %s  params=%d  metadata_query=%s",
            template.name, len(template.parameters), template.has_metadata_query,
        )
        return template

    def describe(self, name: str) -> QueryDescription:
        return describe_template(self.load(name))

    def names(self) -> list[str]:
        """Names of every template under the catalog root, sorted."""
        return sorted(
            p.relative_to(self.root).with_suffix("").as_posix()
            for p in self.root.rglob(f"*{QUERY_EXTENSION}")
        )

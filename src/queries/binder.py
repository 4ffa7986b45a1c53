"""
Parameter binding -- reconcile a template's declared parameters with the
values a caller sent.

Rules, applied in order for each declared parameter:
  1. caller value if present and non-empty, else the declared default
  2. no value and no default -> InvalidParameterError
  3. `coerce_value` turns numeric / boolean strings into typed values
  4. `limit` and `offset` are always integers

Values are handed to the warehouse as out-of-band query parameters, never
spliced into SQL text.  Comma-separated lists stay plain strings; templates
split them with ``SPLIT(@param, ",")``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Union

from src.core.errors import InvalidParameterError
from src.queries.catalog import ParameterSpec

ParamValue = Union[str, int, float, bool]

DOMAINKEY = "domainkey"
REDACTED_PARAMETERS = frozenset({DOMAINKEY})
INTEGER_PARAMETERS = ("limit", "offset")

_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?\d+\.\d+$")


@dataclass(frozen=True)
class BoundParameters:
    """`bound` goes to the warehouse; `redacted` is safe to echo or store."""
    bound: dict[str, ParamValue]
    redacted: dict[str, ParamValue]


def coerce_value(value: Any) -> ParamValue:
    """Map a raw request value to a string, number or boolean.

    ``"true"`` / ``"false"`` (any case) become booleans, ``^-?\\d+$`` an int,
    ``^-?\\d+\\.\\d+$`` a float; everything else is returned as a string.
    """
    if isinstance(value, (bool, int, float)):
        return value
    text = str(value)
    lowered = text.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if _INT_RE.match(text.strip()):
        return int(text)
    if _FLOAT_RE.match(text.strip()):
        return float(text)
    return text


def _as_int(name: str, value: ParamValue) -> int:
    if isinstance(value, bool):
        raise InvalidParameterError(f"Parameter '{name}' must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise InvalidParameterError(f"Parameter '{name}' must be an integer, got '{value}'")


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def bind(
    declared: Mapping[str, ParameterSpec],
    caller: Mapping[str, Any],
    *,
    domainkey: str | None = None,
) -> BoundParameters:
    """Resolve every declared parameter and produce the bound + redacted maps.

    Parameters
    ----------
    declared : mapping
        The template's parameters, in declaration order.
    caller : mapping
        Request values, already cleaned of platform keys.
    domainkey : str, optional
        The resolved domainkey.  Takes precedence over both the caller value
        and the template default.

    Raises
    ------
    InvalidParameterError
        If a parameter has neither a caller value nor a default, or if
        `limit` / `offset` is not an integer.
    """
    bound: dict[str, ParamValue] = {}
    for name, spec in declared.items():
        raw = caller.get(name)
        if _is_empty(raw):
            raw = spec.default
        if _is_empty(raw):
            raise InvalidParameterError(f"Missing required parameter '{name}'")
        value = coerce_value(raw)
        if name in INTEGER_PARAMETERS:
            value = _as_int(name, value)
        bound[name] = value

    if domainkey is not None:
        bound[DOMAINKEY] = domainkey
    elif DOMAINKEY not in bound and not _is_empty(caller.get(DOMAINKEY)):
        bound[DOMAINKEY] = str(caller[DOMAINKEY])

    redacted = {k: v for k, v in bound.items() if k not in REDACTED_PARAMETERS}
    return BoundParameters(bound=bound, redacted=redacted)


def clean_request_params(params: Mapping[str, Any]) -> dict[str, Any]:
    """Drop platform keys: ALL-CAPS names (env secrets) and ``__ow_`` internals."""
    return {
        k: v
        for k, v in params.items()
        if not k.startswith("__ow_") and not k.isupper()
    }


def resolve_domainkey(
    authorization: str | None,
    params: Mapping[str, Any],
    fallback: str,
) -> str:
    """Authorization header (last token) > ``domainkey`` param > *fallback*."""
    if authorization and authorization.strip():
        return authorization.split()[-1]
    value = params.get(DOMAINKEY)
    if not _is_empty(value):
        return str(value)
    return fallback

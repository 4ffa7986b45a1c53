"""
Unit tests -- parameter binder: defaults, coercion, redaction.
"""
import pytest

from src.core.errors import InvalidParameterError
from src.queries.binder import (
    BoundParameters,
    bind,
    clean_request_params,
    coerce_value,
    resolve_domainkey,
)
from src.queries.catalog import ParameterSpec


def _declared(**defaults):
    return {name: ParameterSpec(name=name, default=value) for name, value in defaults.items()}


# ── coerce_value ────────────────────────────────────────

@pytest.mark.parametrize("raw, expected", [
    ("true", True),
    ("FALSE", False),
    ("42", 42),
    ("-7", -7),
    ("3.5", 3.5),
    ("2020-01-01", "2020-01-01"),
    ("-", "-"),
    ("example.com", "example.com"),
    ("1e5", "1e5"),
    (True, True),
    (12, 12),
])
def test_coerce_value(raw, expected):
    value = coerce_value(raw)
    assert value == expected
    assert type(value) is type(expected)


# ── bind ────────────────────────────────────────────────

def test_end_to_end_pageviews_binding():
    declared = _declared(url="-", limit="100", offset="0")
    result = bind(declared, {"url": "example.com"})
    assert isinstance(result, BoundParameters)
    assert result.bound == {"url": "example.com", "limit": 100, "offset": 0}


def test_default_fills_missing_parameter():
    result = bind(_declared(url="-", limit="10"), {})
    assert result.bound == {"url": "-", "limit": 10}


def test_empty_caller_value_uses_default():
    result = bind(_declared(url="-"), {"url": ""})
    assert result.bound["url"] == "-"


def test_missing_required_parameter_raises():
    with pytest.raises(InvalidParameterError, match="url"):
        bind(_declared(url=None), {})


def test_required_parameter_supplied():
    assert bind(_declared(url=None), {"url": "a.com"}).bound == {"url": "a.com"}


def test_declaration_order_preserved():
    result = bind(_declared(z="1", a="2", m="3"), {})
    assert list(result.bound) == ["z", "a", "m"]


def test_undeclared_caller_params_not_bound():
    result = bind(_declared(url="-"), {"url": "a.com", "evil": "DROP TABLE"})
    assert "evil" not in result.bound


def test_limit_offset_always_integers():
    result = bind(_declared(limit="100", offset="0"), {"limit": "25", "offset": 5})
    assert result.bound["limit"] == 25
    assert result.bound["offset"] == 5


def test_limit_is_not_clamped():
    assert bind(_declared(limit="100"), {"limit": "1000000"}).bound["limit"] == 1_000_000


def test_non_integer_limit_raises():
    with pytest.raises(InvalidParameterError, match="limit"):
        bind(_declared(limit="100"), {"limit": "lots"})


def test_comma_separated_values_stay_strings():
    result = bind(_declared(sources="-"), {"sources": "https://a.com/, https://b.com/"})
    assert result.bound["sources"] == "https://a.com/, https://b.com/"


def test_boolean_and_numeric_caller_values_coerced():
    result = bind(_declared(flag="false", within="10"), {"flag": "true"})
    assert result.bound == {"flag": True, "within": 10}


# ── redaction ───────────────────────────────────────────

def test_domainkey_redacted_but_bound():
    result = bind(_declared(url="-", domainkey="secret"), {"domainkey": "abc-123-key"})
    assert result.bound["domainkey"] == "abc-123-key"
    assert "domainkey" not in result.redacted
    assert "abc-123-key" not in result.redacted.values()


def test_resolved_domainkey_overrides_caller_and_default():
    result = bind(_declared(domainkey="secret"), {"domainkey": "from-params"}, domainkey="from-header")
    assert result.bound["domainkey"] == "from-header"
    assert "domainkey" not in result.redacted


def test_domainkey_always_present_when_resolved():
    result = bind(_declared(url="-"), {}, domainkey="k-999")
    assert result.bound["domainkey"] == "k-999"
    assert result.redacted == {"url": "-"}


def test_numeric_domainkey_stays_string_when_resolved():
    result = bind(_declared(domainkey="secret"), {}, domainkey="12345")
    assert result.bound["domainkey"] == "12345"


# ── request helpers ─────────────────────────────────────

def test_clean_request_params_drops_platform_keys():
    cleaned = clean_request_params({
        "url": "a.com",
        "GOOGLE_PRIVATE_KEY": "-----BEGIN",
        "__ow_headers": {},
        "limit": "5",
    })
    assert cleaned == {"url": "a.com", "limit": "5"}


def test_resolve_domainkey_prefers_authorization_header():
    assert resolve_domainkey("Bearer hdr-key", {"domainkey": "param"}, "secret") == "hdr-key"


def test_resolve_domainkey_falls_back_to_param_then_literal():
    assert resolve_domainkey(None, {"domainkey": "param"}, "secret") == "param"
    assert resolve_domainkey(None, {}, "secret") == "secret"
    assert resolve_domainkey("  ", {"domainkey": ""}, "secret") == "secret"

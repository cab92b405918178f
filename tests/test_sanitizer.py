import pytest

from vendor_dispatch.errors import SanitizationError
from vendor_dispatch.sanitizer import sanitize


def test_strips_sensitive_fields_and_trims_strings():
    value = {"a": " x ", "b": {"ssn": "123-45-6789", "c": " y "}}
    assert sanitize(value, {"ssn"}) == {"a": "x", "b": {"c": "y"}}


def test_dicts_inside_lists_are_cleaned():
    value = {"items": [{"password": "p", "name": "  n  "}, " s ", 3, None, True]}
    assert sanitize(value, {"password"}) == {"items": [{"name": "n"}, "s", 3, None, True]}


def test_idempotent():
    value = {"a": "\t x \n", "credit_card": "4111", "nested": [{"secret": 1, "k": [" v "]}]}
    fields = {"credit_card", "secret"}
    once = sanitize(value, fields)
    assert sanitize(once, fields) == once


def test_input_not_mutated():
    value = {"ssn": "1", "a": " b "}
    sanitize(value, {"ssn"})
    assert value == {"ssn": "1", "a": " b "}


def test_scalars_pass_through():
    assert sanitize(5, {"ssn"}) == 5
    assert sanitize(None, {"ssn"}) is None
    assert sanitize("  hi ", {"ssn"}) == "hi"


def test_default_sensitive_fields():
    cleaned = sanitize({"ssn": "x", "social_security_number": "x", "password": "x", "ok": 1})
    assert cleaned == {"ok": 1}


def test_depth_limit():
    deep = leaf = {}
    for _ in range(10):
        leaf["n"] = {}
        leaf = leaf["n"]
    with pytest.raises(SanitizationError):
        sanitize(deep, set(), max_depth=5)
    assert sanitize(deep, set(), max_depth=20) == deep

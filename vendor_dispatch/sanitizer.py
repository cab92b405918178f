# vendor_dispatch/sanitizer.py
#
# Vendor results are opaque JSON. Before storing them we drop sensitive keys
# at every depth and trim whitespace on every string leaf.
from __future__ import annotations

from typing import Any, Iterable

from vendor_dispatch.config import settings
from vendor_dispatch.errors import SanitizationError

MAX_DEPTH = 32


def sanitize(value: Any, sensitive_fields: Iterable[str] | None = None, *, max_depth: int = MAX_DEPTH) -> Any:
    """
    Return a cleaned copy of ``value``.

    - dict keys found in ``sensitive_fields`` are removed (nested dicts and
      dicts inside lists included)
    - str leaves are stripped
    - everything else is returned unchanged

    The input is never mutated. Nesting deeper than ``max_depth`` raises
    SanitizationError.
    """
    fields = frozenset(settings.SENSITIVE_FIELDS if sensitive_fields is None else sensitive_fields)
    return _clean(value, fields, 0, max_depth)


def _clean(value: Any, fields: frozenset, depth: int, max_depth: int) -> Any:
    if depth > max_depth:
        raise SanitizationError(f"value nested deeper than {max_depth} levels")
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        return {
            k: _clean(v, fields, depth + 1, max_depth)
            for k, v in value.items()
            if k not in fields
        }
    if isinstance(value, (list, tuple)):
        return [_clean(v, fields, depth + 1, max_depth) for v in value]
    return value

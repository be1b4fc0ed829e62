"""Query string construction for list and cell feed requests.

Options arrive as a mapping using either the feed's own parameter names
("min-row", "return-empty") or friendlier aliases ("offset", "limit",
"query", "min_row"). Anything unrecognized is passed through so callers
can use parameters the server understands but this module does not know.
"""

from __future__ import annotations

import urllib.parse
from collections.abc import Mapping
from typing import Any

from extrafeed.codec import stringify

# alias -> feed parameter; the first alias present wins
_ROW_ALIASES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("start-index", ("offset", "start")),
    ("max-results", ("limit", "num")),
    ("orderby", ("orderby",)),
    ("sq", ("query",)),
)

_CELL_PARAMS = ("min-row", "max-row", "min-col", "max-col", "return-empty")

# The structured query grammar needs comparison operators verbatim in the URL
_UNESCAPED = (("%3E", ">"), ("%3D", "="), ("%3C", "<"))


def build_query(options: Mapping[str, Any] | None) -> dict[str, str]:
    """Translate feed options into query parameters.

    Args:
        options: Row options (offset/start, limit/num, orderby, reverse,
            query) and/or cell range options (min-row, max-row, min-col,
            max-col, return-empty). Unknown keys are kept as-is.

    Returns:
        Flat string-keyed parameter map. Options set to None are dropped.
    """
    if not options:
        return {}

    remaining = {k: v for k, v in options.items() if v is not None}
    params: dict[str, str] = {}

    for param, aliases in _ROW_ALIASES:
        found = [alias for alias in aliases if alias in remaining]
        for alias in found:
            value = remaining.pop(alias)
            if param not in params and value not in ("", False):
                params[param] = stringify(value)

    if "reverse" in remaining:
        if remaining.pop("reverse"):
            params["reverse"] = "true"

    for param in _CELL_PARAMS:
        python_name = param.replace("-", "_")
        if python_name in remaining:
            value = remaining.pop(python_name)
            params.setdefault(param, stringify(value))
        if param in remaining:
            params[param] = stringify(remaining.pop(param))

    for key, value in remaining.items():
        params[key] = stringify(value)

    return params


def encode_query(params: Mapping[str, str]) -> str:
    """Percent-encode parameters, leaving '>', '=' and '<' literal.

    Returns:
        The query string without the leading '?', or "" if there are none.
    """
    if not params:
        return ""
    query = urllib.parse.urlencode(params, quote_via=urllib.parse.quote)
    for escaped, literal in _UNESCAPED:
        query = query.replace(escaped, literal)
    return query

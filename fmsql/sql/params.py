"""
fmsql.sql.params - Parameter substitution
=========================================

Bound values are written into the SQL text before parsing. String values
are stripped of a fixed denylist of characters and keywords that could
change the shape of the query, then quote-escaped.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Dict, Mapping, Sequence, Union

from fmsql.core.errors import ParseFault

DENYLIST = ("?", "(", ")", "@", "#", "union", "where", "rename")

Params = Union[Sequence[Any], Mapping[Union[int, str], Any]]

# quoted literal | positional placeholder | named placeholder (not a :: cast)
_PLACEHOLDER = re.compile(r"'(?:[^']|'')*'|\?|(?<!:):([A-Za-z_][A-Za-z0-9_]*)")


def sanitize(value: str) -> str:
    """
    Remove denylisted tokens (case-insensitive) until none remain.

    Examples
    --------
    >>> sanitize("Reunion (North)")
    'Re North'
    """
    previous = None
    while previous != value:
        previous = value
        for token in DENYLIST:
            value = re.sub(re.escape(token), "", value, flags=re.IGNORECASE)
    return value


def render_literal(value: Any) -> str:
    """Render a bound value as a SQL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    text = sanitize(str(value))
    return "'" + text.replace("'", "''") + "'"


def split_params(params: Params) -> "tuple[Dict[int, Any], Dict[str, Any]]":
    """
    Split bound parameters into values keyed by 1-based position and values
    keyed by name. A sequence binds positions 1..n.
    """
    if isinstance(params, Mapping):
        positional = {k: v for k, v in params.items() if isinstance(k, int)}
        named = {str(k).lstrip(":"): v for k, v in params.items() if not isinstance(k, int)}
        return positional, named
    return dict(enumerate(params, start=1)), {}


def substitute(sql: str, params: Params) -> str:
    """
    Replace placeholders in ``sql`` with rendered literals.

    The n-th ``?`` placeholder takes the value bound at position n; ``:name`` placeholders
    are looked up by name. Placeholders inside quoted literals are ignored.

    Raises
    ------
    ParseFault
        If a placeholder has no bound value
    """
    positional, named = split_params(params)
    position = 0

    def replace(match: "re.Match[str]") -> str:
        nonlocal position
        token = match.group(0)
        if token.startswith("'"):
            return token
        if token == "?":
            position += 1
            if position not in positional:
                raise ParseFault(f"No value bound for parameter {position}")
            return render_literal(positional[position])
        name = match.group(1)
        if name not in named:
            raise ParseFault(f"No value bound for parameter :{name}")
        return render_literal(named[name])

    return _PLACEHOLDER.sub(replace, sql)

"""
fmsql.sql.parser - SQL to query description
===========================================

Parses SQL with sqlglot and reduces it to the small, immutable
``QueryDescription`` the translator understands. Parsing the same text
twice yields equal descriptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

import sqlglot
from sqlglot import exp

from fmsql.core.errors import NotSupportedFault, ParseFault

REC_ID = "rec_id"
MOD_ID = "mod_id"
REC_META = "rec_meta"
PSEUDO_COLUMNS = frozenset({REC_ID, MOD_ID, REC_META})

_COMPARISONS = {
    exp.EQ: "=",
    exp.NEQ: "!=",
    exp.GT: ">",
    exp.GTE: ">=",
    exp.LT: "<",
    exp.LTE: "<=",
    exp.Like: "like",
    exp.ILike: "like",
}


@dataclass(frozen=True)
class SelectedColumn:
    name: str
    alias: Optional[str] = None

    @property
    def key(self) -> str:
        """Name the column is reported under in result rows."""
        return self.alias or self.name


@dataclass(frozen=True)
class Condition:
    column: str
    operator: str
    value: Any = None


@dataclass(frozen=True)
class QueryDescription:
    """
    Structured form of one SQL statement.

    Attributes
    ----------
    kind : str
        "select", "insert", "update" or "delete"
    table : str
        Target table (FileMaker layout)
    columns : tuple of SelectedColumn
        Projection of a SELECT
    star : bool
        True when the SELECT projects ``*``
    criteria : tuple of tuple of Condition
        WHERE clause as OR-of-ANDs
    assignments : tuple of (str, value)
        Column values of an INSERT or UPDATE
    order : tuple of (str, bool)
        ORDER BY columns with a "descending" flag
    limit, offset : int, optional
        Paging
    """
    kind: str
    table: str
    columns: Tuple[SelectedColumn, ...] = ()
    star: bool = False
    criteria: Tuple[Tuple[Condition, ...], ...] = ()
    assignments: Tuple[Tuple[str, Any], ...] = ()
    order: Tuple[Tuple[str, bool], ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None


def parse(text: str, dialect: Optional[str] = None) -> QueryDescription:
    """
    Parse one SQL statement.

    Raises
    ------
    ParseFault
        If the text is not valid SQL
    NotSupportedFault
        If the statement falls outside the supported subset
    """
    try:
        node = sqlglot.parse_one(text, read=dialect)
    except (sqlglot.errors.ParseError, sqlglot.errors.TokenError) as e:
        msg = str(e).replace("\x1b[4m", "").replace("\x1b[0m", "")
        raise ParseFault(msg) from None

    if isinstance(node, exp.Select):
        return _select(node)
    if isinstance(node, exp.Insert):
        return _insert(node)
    if isinstance(node, exp.Update):
        return _update(node)
    if isinstance(node, exp.Delete):
        return _delete(node)
    raise NotSupportedFault(f"Unsupported statement: {node.key.upper()}")


# ---------------- statements ----------------

def _select(node: exp.Select) -> QueryDescription:
    limit = _int_arg(node, "limit")
    offset = _int_arg(node, "offset")

    # Paginated queries wrap the real select in one or more derived tables
    source = node.find(exp.From)
    while source is not None and isinstance(source.this, exp.Subquery):
        inner = source.this.this
        if not isinstance(inner, exp.Select):
            raise NotSupportedFault("Unsupported subquery in FROM")
        node = inner
        limit = limit if limit is not None else _int_arg(node, "limit")
        offset = offset if offset is not None else _int_arg(node, "offset")
        source = node.find(exp.From)

    if source is None or not isinstance(source.this, exp.Table):
        raise NotSupportedFault("SELECT requires a FROM table")

    columns = []
    star = False
    for projection in node.expressions:
        target = projection.this if isinstance(projection, exp.Alias) else projection
        if isinstance(target, exp.Star) or (isinstance(target, exp.Column) and target.is_star):
            star = True
            continue
        if not isinstance(target, exp.Column):
            raise NotSupportedFault(f"Unsupported select expression: {projection.sql()}")
        alias = projection.alias if isinstance(projection, exp.Alias) else None
        columns.append(SelectedColumn(name=target.name, alias=alias or None))

    order = ()
    order_node = node.args.get("order")
    if order_node is not None:
        order = tuple(
            (_column_name(o.this), bool(o.args.get("desc")))
            for o in order_node.expressions
        )

    return QueryDescription(
        kind="select",
        table=source.this.name,
        columns=tuple(columns),
        star=star,
        criteria=_where(node),
        order=order,
        limit=limit,
        offset=offset,
    )


def _insert(node: exp.Insert) -> QueryDescription:
    schema = node.this
    if not isinstance(schema, exp.Schema) or not schema.expressions:
        raise NotSupportedFault("INSERT requires an explicit column list")
    values = node.expression
    if not isinstance(values, exp.Values):
        raise NotSupportedFault("INSERT ... SELECT is not supported")
    rows = values.expressions
    if len(rows) != 1:
        raise NotSupportedFault("Multi-row INSERT cannot be committed atomically")

    names = [c.name for c in schema.expressions]
    row = rows[0].expressions
    if len(names) != len(row):
        raise NotSupportedFault("INSERT column and value counts differ")

    return QueryDescription(
        kind="insert",
        table=schema.this.name,
        assignments=tuple(zip(names, (_literal(v) for v in row))),
    )


def _update(node: exp.Update) -> QueryDescription:
    assignments = []
    for eq in node.expressions:
        if not isinstance(eq, exp.EQ):
            raise NotSupportedFault(f"Unsupported assignment: {eq.sql()}")
        assignments.append((_column_name(eq.this), _literal(eq.expression)))

    return QueryDescription(
        kind="update",
        table=_table_name(node.this),
        criteria=_where(node),
        assignments=tuple(assignments),
    )


def _delete(node: exp.Delete) -> QueryDescription:
    return QueryDescription(
        kind="delete",
        table=_table_name(node.this),
        criteria=_where(node),
    )


# ---------------- clauses ----------------

def _where(node: exp.Expression) -> Tuple[Tuple[Condition, ...], ...]:
    where = node.args.get("where")
    if where is None:
        return ()
    return _disjunction(where.this)


def _disjunction(node: exp.Expression) -> Tuple[Tuple[Condition, ...], ...]:
    if isinstance(node, exp.Paren):
        return _disjunction(node.this)
    if isinstance(node, exp.Or):
        return _disjunction(node.left) + _disjunction(node.right)
    return (_conjunction(node),)


def _conjunction(node: exp.Expression) -> Tuple[Condition, ...]:
    if isinstance(node, exp.Paren):
        return _conjunction(node.this)
    if isinstance(node, exp.And):
        return _conjunction(node.left) + _conjunction(node.right)
    return (_condition(node),)


def _condition(node: exp.Expression) -> Condition:
    op = _COMPARISONS.get(type(node))
    if op is not None:
        return Condition(_column_name(node.this), op, _literal(node.expression))

    if isinstance(node, exp.In):
        if node.args.get("query") is not None:
            raise NotSupportedFault("IN (subquery) is not supported")
        values = tuple(_literal(v) for v in node.expressions)
        return Condition(_column_name(node.this), "in", values)

    if isinstance(node, exp.Is) and isinstance(node.expression, exp.Null):
        return Condition(_column_name(node.this), "is null")

    if isinstance(node, exp.Not) and isinstance(node.this, exp.Is):
        inner = node.this
        if isinstance(inner.expression, exp.Null):
            return Condition(_column_name(inner.this), "is not null")

    raise NotSupportedFault(f"Unsupported condition: {node.sql()}")


# ---------------- leaves ----------------

def _column_name(node: exp.Expression) -> str:
    if not isinstance(node, exp.Column):
        raise NotSupportedFault(f"Expected a column, got: {node.sql()}")
    return node.name


def _table_name(node: exp.Expression) -> str:
    table = node if isinstance(node, exp.Table) else node.find(exp.Table)
    if table is None:
        raise NotSupportedFault("Statement has no target table")
    return table.name


def _literal(node: exp.Expression) -> Any:
    if isinstance(node, exp.Paren):
        return _literal(node.this)
    if isinstance(node, exp.Neg):
        return -_literal(node.this)
    if isinstance(node, exp.Null):
        return None
    if isinstance(node, exp.Boolean):
        return node.this
    if isinstance(node, exp.Literal):
        if node.is_string:
            return node.this
        try:
            return int(node.this)
        except ValueError:
            return float(node.this)
    raise NotSupportedFault(f"Unsupported value: {node.sql()}")


def _int_arg(node: exp.Expression, name: str) -> Optional[int]:
    clause = node.args.get(name)
    if clause is None:
        return None
    value = _literal(clause.expression)
    if not isinstance(value, int):
        raise NotSupportedFault(f"{name.upper()} must be an integer")
    return value

"""
fmsql.sql.translator - Query description to Data API request
============================================================

Maps a ``QueryDescription`` onto one FileMaker Data API call. Each table is
addressed as the layout of the same name.

============  =====================================================
SELECT        GET records, GET records/<id> or POST _find
INSERT        POST records            {"fieldData": {...}}
UPDATE        PATCH records/<rec_id>  {"fieldData": {...}, "modId"}
DELETE        DELETE records/<rec_id>
============  =====================================================
"""

from __future__ import annotations

import copy
import itertools
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

from fmsql.core.errors import TranslationFault
from fmsql.sql.metadata import SchemaMetadata
from fmsql.sql.parser import (
    MOD_ID,
    PSEUDO_COLUMNS,
    REC_ID,
    Condition,
    QueryDescription,
)

# Characters with a meaning in FileMaker find requests
FIND_OPERATORS = frozenset('\\=!<>?@#*"~')

_RANGE_OPERATORS = frozenset({">", ">=", "<", "<="})


def escape_find_literal(value: str) -> str:
    """
    Escape a value for use in a FileMaker find request.

    Examples
    --------
    >>> escape_find_literal("a*b")
    'a\\\\*b'
    """
    out = "".join("\\" + ch if ch in FIND_OPERATORS else ch for ch in value)
    return out.replace("...", "\\.\\.\\.")


def like_to_find(pattern: str) -> str:
    """Convert a SQL LIKE pattern into a FileMaker find pattern."""
    out = []
    for ch in pattern:
        if ch == "%":
            out.append("*")
        elif ch == "_":
            out.append("@")
        else:
            out.append(escape_find_literal(ch))
    return "".join(out)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _segment(value: Any) -> str:
    return quote(_text(value), safe="")


@dataclass(frozen=True)
class RequestDescriptor:
    """
    One Data API call.

    Attributes
    ----------
    method : str
        HTTP method
    path : str
        Path relative to the database root
    options : mapping
        ``requests`` keyword arguments (``params`` or ``json``)
    """
    method: str
    path: str
    options: Mapping[str, Any] = field(default_factory=dict)

    def copy(self) -> "RequestDescriptor":
        """Independent snapshot, safe to keep while the original is reused."""
        return RequestDescriptor(self.method, self.path, copy.deepcopy(dict(self.options)))


class QueryTranslator:
    """Builds Data API requests from parsed queries."""

    def describe_request(
        self,
        description: QueryDescription,
        raw_text: str = "",
        params: Optional[Mapping[Any, Any]] = None,
    ) -> RequestDescriptor:
        """
        Translate a parsed query into a request descriptor.

        Parameters
        ----------
        description : QueryDescription
            Parsed query (parameters already substituted)
        raw_text : str
            Original SQL, used in error messages
        params : mapping, optional
            Bound parameters as supplied by the caller

        Raises
        ------
        TranslationFault
            If the query has no Data API equivalent
        """
        handlers = {
            "select": self._select,
            "insert": self._insert,
            "update": self._update,
            "delete": self._delete,
        }
        handler = handlers.get(description.kind)
        if handler is None:
            raise TranslationFault(f"Cannot translate {description.kind} statement: {raw_text}")
        return handler(description, raw_text)

    def resolve_primary_key_column(
        self,
        description: QueryDescription,
        metadata: SchemaMetadata,
    ) -> str:
        return metadata.primary_key(description.table)

    # ---------------- statements ----------------

    def _select(self, d: QueryDescription, raw_text: str) -> RequestDescriptor:
        records = self._records_path(d.table)

        if len(d.criteria) == 1 and len(d.criteria[0]) == 1:
            only = d.criteria[0][0]
            if only.column == REC_ID and only.operator == "=":
                return RequestDescriptor("GET", f"{records}/{_segment(only.value)}")

        if not d.criteria:
            params: Dict[str, str] = {}
            if d.limit is not None:
                params["_limit"] = str(d.limit)
            if d.offset is not None:
                params["_offset"] = str(d.offset + 1)
            if d.order:
                params["_sort"] = json.dumps(self._sort(d.order, raw_text))
            return RequestDescriptor("GET", records, {"params": params} if params else {})

        body: Dict[str, Any] = {"query": self._find_requests(d.criteria, raw_text)}
        if d.limit is not None:
            body["limit"] = str(d.limit)
        if d.offset is not None:
            body["offset"] = str(d.offset + 1)
        if d.order:
            body["sort"] = self._sort(d.order, raw_text)
        return RequestDescriptor("POST", f"{self._layout_path(d.table)}/_find", {"json": body})

    def _insert(self, d: QueryDescription, raw_text: str) -> RequestDescriptor:
        return RequestDescriptor(
            "POST",
            self._records_path(d.table),
            {"json": {"fieldData": self._field_data(d.assignments, raw_text)}},
        )

    def _update(self, d: QueryDescription, raw_text: str) -> RequestDescriptor:
        rec_id, mod_id = self._target_record(d, raw_text)
        body: Dict[str, Any] = {"fieldData": self._field_data(d.assignments, raw_text)}
        if mod_id is not None:
            body["modId"] = _text(mod_id)
        return RequestDescriptor("PATCH", f"{self._records_path(d.table)}/{_segment(rec_id)}", {"json": body})

    def _delete(self, d: QueryDescription, raw_text: str) -> RequestDescriptor:
        rec_id, _ = self._target_record(d, raw_text)
        return RequestDescriptor("DELETE", f"{self._records_path(d.table)}/{_segment(rec_id)}")

    # ---------------- helpers ----------------

    def _layout_path(self, table: str) -> str:
        return f"layouts/{_segment(table)}"

    def _records_path(self, table: str) -> str:
        return f"{self._layout_path(table)}/records"

    def _target_record(self, d: QueryDescription, raw_text: str) -> Tuple[Any, Optional[Any]]:
        if len(d.criteria) != 1:
            raise TranslationFault(f"{d.kind.upper()} must target a single {REC_ID}: {raw_text}")
        rec_id = mod_id = None
        for cond in d.criteria[0]:
            if cond.operator == "=" and cond.column == REC_ID:
                rec_id = cond.value
            elif cond.operator == "=" and cond.column == MOD_ID:
                mod_id = cond.value
            else:
                raise TranslationFault(f"{d.kind.upper()} can only filter on {REC_ID}/{MOD_ID}: {raw_text}")
        if rec_id is None:
            raise TranslationFault(f"{d.kind.upper()} must target a single {REC_ID}: {raw_text}")
        return rec_id, mod_id

    def _field_data(self, assignments: Sequence[Tuple[str, Any]], raw_text: str) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for column, value in assignments:
            if column in PSEUDO_COLUMNS:
                raise TranslationFault(f"Column {column} is read-only: {raw_text}")
            if value is None:
                value = ""
            elif isinstance(value, bool):
                value = int(value)
            data[column] = value
        return data

    def _sort(self, order: Sequence[Tuple[str, bool]], raw_text: str) -> List[Dict[str, str]]:
        out = []
        for column, descending in order:
            if column in PSEUDO_COLUMNS:
                raise TranslationFault(f"Cannot sort on {column}: {raw_text}")
            out.append({"fieldName": column, "sortOrder": "descend" if descending else "ascend"})
        return out

    def _find_requests(
        self,
        criteria: Sequence[Sequence[Condition]],
        raw_text: str,
    ) -> List[Dict[str, str]]:
        requests: List[Dict[str, str]] = []
        for conjunction in criteria:
            positive = [c for c in conjunction if c.operator != "!="]
            negative = [c for c in conjunction if c.operator == "!="]

            for cond in conjunction:
                if cond.column in PSEUDO_COLUMNS:
                    raise TranslationFault(f"Cannot search on {cond.column}: {raw_text}")
            columns = [c.column for c in positive]
            if len(set(columns)) != len(columns):
                raise TranslationFault(f"Column repeated within one condition group: {raw_text}")
            if not positive:
                raise TranslationFault(f"Condition group needs at least one positive criterion: {raw_text}")
            # omit requests apply to the whole found set
            if negative and len(criteria) > 1:
                raise TranslationFault(f"Inequality cannot be combined with OR: {raw_text}")

            choices = []
            for cond in positive:
                if cond.operator == "in":
                    choices.append([(cond.column, "==" + escape_find_literal(_text(v))) for v in cond.value])
                else:
                    choices.append([(cond.column, self._criterion(cond))])
            for combo in itertools.product(*choices):
                requests.append(dict(combo))

            for cond in negative:
                requests.append({cond.column: "==" + escape_find_literal(_text(cond.value)), "omit": "true"})
        return requests

    def _criterion(self, cond: Condition) -> str:
        if cond.operator == "is null":
            return "="
        if cond.operator == "is not null":
            return "*"
        if cond.operator == "like":
            return "==" + like_to_find(_text(cond.value))
        if cond.operator in _RANGE_OPERATORS:
            return cond.operator + escape_find_literal(_text(cond.value))
        if cond.value is None:
            return "="
        return "==" + escape_find_literal(_text(cond.value))

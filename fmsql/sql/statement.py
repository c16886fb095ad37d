"""
fmsql.sql.statement - Prepared statements
=========================================

A Statement binds parameters into SQL text, parses and translates it, then
either runs the request or queues it on the connection's open transaction.
Results are consumed forward-only: each fetched record is removed.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections import deque
from types import TracebackType
from typing import TYPE_CHECKING, Any, Deque, Dict, Iterator, List, Optional, Union

from fmsql.core.errors import FMDataError, RequestFault
from fmsql.sql.params import Params, split_params, substitute
from fmsql.sql.parser import MOD_ID, REC_ID, REC_META, QueryDescription, parse
from fmsql.sql.translator import RequestDescriptor

if TYPE_CHECKING:
    from fmsql.core.connection import Connection

# The Data API does not report per-query result metadata
EMPTY_RESULT_META = json.dumps({"found": 0, "fetch": 0, "total": 0})

Row = Dict[str, Any]


def new_statement_id() -> str:
    return uuid.uuid4().hex


class Statement:
    """
    One SQL statement bound to a Connection.

    Parameters
    ----------
    sql : str
        SQL text with ``?`` or ``:name`` placeholders
    connection : Connection
        Owning connection (not owned by the statement)

    Examples
    --------
    >>> stmt = conn.prepare("SELECT t0.name AS name_1 FROM Contacts t0 WHERE t0.city = ?")
    >>> stmt.bind_value(1, "Leeds")
    >>> stmt.execute()
    >>> for row in stmt:
    ...     print(row["name_1"])
    """

    def __init__(self, sql: str, connection: "Connection") -> None:
        self.id = new_statement_id()
        self.sql = sql
        self.conn = connection
        self.logger = logging.getLogger("fmsql.statement")

        self.params: Dict[Union[int, str], Any] = {}
        self.description: Optional[QueryDescription] = None
        self.request: Optional[RequestDescriptor] = None

        self._records: Deque[Dict[str, Any]] = deque()
        self._result: Any = None
        self._rowcount = 0
        self._result_ready = False
        self._is_closed = False

    def __enter__(self) -> "Statement":
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.close_cursor()

    # ---------------- binding ----------------

    def bind_value(self, param: Union[int, str], value: Any) -> bool:
        """Bind ``value`` to a 1-based position or a ``:name`` placeholder."""
        self.params[param] = value
        return True

    bind_param = bind_value

    # ---------------- execution ----------------

    def execute(self, params: Optional[Params] = None) -> "Statement":
        """
        Run the statement, or queue it when a transaction is open.

        Parameters
        ----------
        params : sequence or mapping, optional
            A sequence binds positions 1..n and replaces every earlier
            positional binding; named values are merged over earlier ones

        Raises
        ------
        ParseFault, NotSupportedFault, TranslationFault
            If the SQL cannot be turned into a request
        RequestFault, AuthFault
            If the request is executed immediately and fails
        """
        if params is not None:
            positional, named = split_params(params)
            # positions bound by an earlier call are replaced, not merged
            self.params = {k: v for k, v in self.params.items() if not isinstance(k, int)}
            self.params.update(positional)
            self.params.update(named)

        query = substitute(self.sql, self.params)
        self.id = new_statement_id()
        self.description = parse(query, dialect=self.conn.dialect)
        self.request = self.conn.translator.describe_request(self.description, self.sql, self.params)

        self._records.clear()
        self._result = None
        self._rowcount = 0
        self._result_ready = False

        if self.conn.in_transaction:
            self.conn.enqueue(self.id, self.request.copy())
        else:
            self.perform_command()
        return self

    def perform_command(self) -> None:
        """Send the translated request now and load its result."""
        if self.request is None:
            raise FMDataError("Statement has not been executed", -1)
        result = self.conn.session.perform_request(
            self.request.method,
            self.request.path,
            dict(self.request.options),
        )
        self._result = result
        if isinstance(result, list):
            self._records = deque(result)
            self._rowcount = len(result)
        else:
            # write acknowledgement: {"recordId": ..., "modId": ...}
            self._records = deque()
            self._rowcount = 1
        self._result_ready = True

    # ---------------- results ----------------

    @property
    def rowcount(self) -> int:
        return self._rowcount

    @property
    def result_ready(self) -> bool:
        return self._result_ready

    def column_count(self) -> int:
        if self.description is None:
            return 0
        return len(self.description.columns)

    def fetch_next(self) -> Optional[Row]:
        """Return the next row, or None once the results are exhausted."""
        if not self._result_ready or not self._records:
            return None
        return self._record_to_row(self._records.popleft())

    fetchone = fetch_next

    def fetchall(self) -> List[Row]:
        rows = []
        while True:
            row = self.fetch_next()
            if row is None:
                return rows
            rows.append(row)

    def fetch_column(self, index: int = 0) -> Optional[Any]:
        row = self.fetch_next()
        if row is None:
            return None
        values = list(row.values())
        return values[index] if 0 <= index < len(values) else None

    def __iter__(self) -> Iterator[Row]:
        while True:
            row = self.fetch_next()
            if row is None:
                return
            yield row

    def close_cursor(self) -> bool:
        if self._is_closed:
            return False
        self.params = {}
        self._records.clear()
        self._result_ready = False
        self._is_closed = True
        return True

    def _record_to_row(self, record: Dict[str, Any]) -> Row:
        field_data = record.get("fieldData") or {}
        row: Row = {}
        if self.description is None or self.description.star:
            row.update((k, None if v == "" else v) for k, v in field_data.items())
        if self.description is None:
            return row

        for column in self.description.columns:
            if column.name == REC_ID:
                row[column.key] = record.get("recordId")
            elif column.name == MOD_ID:
                row[column.key] = record.get("modId")
            elif column.name == REC_META:
                row[column.key] = EMPTY_RESULT_META
            else:
                value = field_data.get(column.name)
                row[column.key] = None if value == "" else value
        return row

    # ---------------- generated keys ----------------

    def extract_generated_key(self) -> Any:
        """
        Primary key of the record created by this INSERT.

        When the table's primary key is the FileMaker record id it is read
        from the create response; otherwise the new record is fetched once
        to read the key field.

        Raises
        ------
        RequestFault
            If the record (or its key field) cannot be read back
        """
        if self.description is None or self.request is None:
            raise FMDataError("Statement has not been executed", -1)

        id_column = self.conn.translator.resolve_primary_key_column(self.description, self.conn.metadata)
        created = self._result if isinstance(self._result, dict) else {}
        record_id = created.get("recordId")
        if id_column == REC_ID:
            return record_id

        path = f"{self.request.path}/{record_id}"
        self.logger.debug("Reading %s of record %s", id_column, record_id)
        try:
            record = self.conn.session.perform_request("GET", path)
            return record[0]["fieldData"][id_column]
        except (FMDataError, LookupError, TypeError) as e:
            raise RequestFault(
                f"Unable to locate record primary key with error {e}",
                getattr(e, "code", -1),
            ) from e

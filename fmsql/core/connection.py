"""
fmsql.core.connection - High-level connection management
========================================================

Provides a DB-API flavoured Connection over one FileMaker database:
statement preparation, pseudo-transactions and script execution.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional
from urllib.parse import quote as urlquote

from fmsql.core.auth import CloudTokenProvider
from fmsql.core.errors import NotSupportedFault
from fmsql.core.session import FMConfig, FMDataSession, ScriptResult
from fmsql.core.tokens import TokenStore
from fmsql.sql.metadata import SchemaMetadata
from fmsql.sql.statement import Statement
from fmsql.sql.translator import QueryTranslator, RequestDescriptor

if TYPE_CHECKING:
    from fmsql.sql.params import Params

SERVER_VERSION = "FMS Data API v1"


class Connection:
    """
    Connection to one FileMaker database through the Data API.

    Transactions are local bookkeeping only: while one is open, executed
    statements are queued and replayed in order by ``commit()``. The Data
    API cannot undo writes, so ``rollback()`` does nothing and a failed
    commit leaves the unsent statements queued.

    Parameters
    ----------
    host : str, optional
        Server host. Falls back to FM_HOST env var.
    database : str, optional
        Database name. Falls back to FM_DATABASE env var.
    user : str, optional
        Account name. Falls back to FM_USER env var.
    password : str, optional
        Account password. Falls back to FM_PASS env var.
    server_version : str, optional
        "FMCloud" for FileMaker Cloud. Falls back to FM_SERVER_VERSION env var.
    verify : bool, optional
        SSL verification. Falls back to FM_VERIFY_TLS env var.
    timeout : float
        Request timeout in seconds.
    token_store : TokenStore, optional
        Token cache, defaults to the shared temp-file store
    cloud_token_provider : callable, optional
        FileMaker Cloud identity exchange
    metadata : SchemaMetadata, optional
        Primary key declarations
    translator : QueryTranslator, optional
        SQL to Data API translator
    dialect : str, optional
        sqlglot dialect used to read SQL

    Examples
    --------
    >>> with Connection("fms.example.com", "Contacts", "api", "secret") as conn:
    ...     stmt = conn.query("SELECT t0.name AS name_1 FROM Contacts t0")
    ...     rows = stmt.fetchall()

    >>> conn.begin_transaction()
    >>> conn.query("INSERT INTO Contacts (name) VALUES (?)", ["Ada"])
    >>> conn.commit()
    """

    def __init__(
        self,
        host: Optional[str] = None,
        database: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        server_version: Optional[str] = None,
        *,
        verify: Optional[bool] = None,
        timeout: float = 60.0,
        token_store: Optional[TokenStore] = None,
        cloud_token_provider: Optional[CloudTokenProvider] = None,
        metadata: Optional[SchemaMetadata] = None,
        translator: Optional[QueryTranslator] = None,
        dialect: Optional[str] = None,
    ) -> None:
        # Resolve from environment if not provided
        self._host = host or os.environ.get("FM_HOST", "")
        self._database = database or os.environ.get("FM_DATABASE", "")
        self._user = user or os.environ.get("FM_USER", "")
        self._password = password or os.environ.get("FM_PASS", "")
        self._server_version = server_version or os.environ.get("FM_SERVER_VERSION")

        if verify is not None:
            self._verify = verify
        else:
            self._verify = os.environ.get("FM_VERIFY_TLS", "true").lower() != "false"

        self._timeout = timeout
        self._token_store = token_store
        self._cloud_token_provider = cloud_token_provider

        self.metadata = metadata if metadata is not None else SchemaMetadata()
        self.translator = translator if translator is not None else QueryTranslator()
        self.dialect = dialect
        self.logger = logging.getLogger("fmsql.connection")

        self._session: Optional[FMDataSession] = None
        self._statement: Optional[Statement] = None
        self._transaction_open = False
        self._pending: Dict[str, RequestDescriptor] = {}

    @property
    def session(self) -> FMDataSession:
        """Get or create the underlying Data API session (authenticated)."""
        if self._session is None:
            self._session = self._build_session()
            self._session.authenticate()
        return self._session

    def _build_session(self) -> FMDataSession:
        cfg = FMConfig(
            host=self._host,
            database=self._database,
            user=self._user,
            password=self._password,
            server_version=self._server_version,
            verify=self._verify,
            timeout=self._timeout,
        )
        return FMDataSession(
            cfg,
            token_store=self._token_store,
            cloud_token_provider=self._cloud_token_provider,
        )

    def close(self) -> None:
        """Close the connection. Queued statements are discarded."""
        if self._session is not None:
            self._session.close()
            self._session = None
        self._pending.clear()
        self._transaction_open = False

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- statements ----------------

    def prepare(self, sql: str) -> Statement:
        self._statement = Statement(sql, self)
        return self._statement

    def query(self, sql: str, params: Optional["Params"] = None) -> Statement:
        """Prepare and execute ``sql`` in one step."""
        stmt = self.prepare(sql)
        stmt.execute(params)
        return stmt

    def last_insert_id(self) -> Any:
        """
        Primary key of the record created by the most recent statement.

        A statement still waiting in the transaction queue is sent right
        away and removed from the queue.
        """
        if self._statement is None:
            raise NotSupportedFault("No statement has been prepared on this connection")
        stmt = self._statement
        if stmt.id in self._pending:
            stmt.perform_command()
            del self._pending[stmt.id]
        return stmt.extract_generated_key()

    # ---------------- transactions ----------------

    @property
    def in_transaction(self) -> bool:
        return self._transaction_open

    @property
    def pending(self) -> Mapping[str, RequestDescriptor]:
        """Copy of the queued requests in commit order."""
        return dict(self._pending)

    def begin_transaction(self) -> bool:
        self._transaction_open = True
        return True

    def enqueue(self, identifier: str, request: RequestDescriptor) -> None:
        self._pending[identifier] = request
        self.logger.debug("Queued %s %s as %s", request.method, request.path, identifier)

    def commit(self) -> bool:
        """
        Send every queued request, oldest first.

        Each request is removed from the queue once sent. If one fails the
        fault propagates, later requests stay queued and the transaction
        remains open.
        """
        for identifier, request in list(self._pending.items()):
            self.session.perform_request(request.method, request.path, dict(request.options))
            del self._pending[identifier]

        self.logger.debug("Committed transaction")
        self._pending.clear()
        self._transaction_open = False
        return True

    def rollback(self) -> bool:
        # the Data API cannot undo writes; queued requests are simply never sent
        return True

    # ---------------- misc ----------------

    def run_script(
        self,
        layout: str,
        script: str,
        parameter: Optional[str] = None,
    ) -> ScriptResult:
        """
        Run a FileMaker script in the context of ``layout``.

        Returns
        -------
        ScriptResult
            The script's error code and result text
        """
        options: Dict[str, Any] = {}
        if parameter is not None:
            options["params"] = {"script.param": parameter}
        return self.session.perform_request(
            "GET",
            f"layouts/{urlquote(layout, safe='')}/script/{urlquote(script, safe='')}",
            options,
            want_script_result=True,
        )

    @property
    def server_version(self) -> str:
        # The Data API does not report a server version
        return SERVER_VERSION

    @property
    def metadata_info(self) -> Optional[Dict[str, Any]]:
        """``dataInfo`` block of the most recent response."""
        return self._session.last_metadata if self._session is not None else None

    @property
    def token(self) -> Optional[str]:
        return self._session.token if self._session is not None else None

    @property
    def database(self) -> str:
        return self._database

    def quote(self, value: Any, type_: Optional[str] = None) -> str:
        raise NotSupportedFault("quote() is not supported by the Data API connection")

    def exec(self, sql: str) -> int:
        raise NotSupportedFault("exec() is not supported by the Data API connection")

"""
fmsql.core.session - FileMaker Data API HTTP Session
====================================================

Low-level request handling for the FileMaker Data API with:
- Bearer token attachment and lazy authentication
- One token refresh and replay when the server rejects the token
- Uniform classification of HTTP and FileMaker errors
- Optional transport retries via urllib3
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
import logging
import time

import requests
from requests import Response, Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from fmsql.core.auth import Authenticator, CloudTokenProvider
from fmsql.core.envelope import Opaque, Success, decode_response
from fmsql.core.errors import RequestFault
from fmsql.core.tokens import FileTokenStore, TokenStore

SERVER_VERSION_CLOUD = "FMCloud"

# FileMaker code 401 means "no records match the request", not HTTP 401
NO_RECORDS_CODE = 401

# 952 is an invalid token; on-premise servers sometimes answer 105 (missing
# layout) for an expired token as well
SESSION_INVALID_CODES = frozenset({105, 952})

# Data API application errors (including "no records") arrive as HTTP 500,
# so 500 is never retried at the transport level
RETRY_STATUSES = (429, 502, 503, 504)


@dataclass
class FMConfig:
    """
    Connection configuration for a FileMaker database.

    Parameters
    ----------
    host : str
        Server host name, optionally with ``http://`` or ``https://``
    database : str
        Hosted database (file) name
    user : str
        Account name
    password : str
        Account password
    server_version : str, optional
        ``"FMCloud"`` selects FileMaker Cloud authentication
    cloud : bool
        Alternative switch for FileMaker Cloud authentication
    timeout : float
        Request timeout in seconds (default: 60.0)
    retries : int
        Transport-level retry attempts (default: 0, fail fast)
    backoff : float
        Backoff factor for transport retries (default: 0.5)
    verify : bool or str
        SSL verification (True, False, or path to CA bundle)
    user_agent : str
        User-Agent header value

    Examples
    --------
    >>> cfg = FMConfig(
    ...     host="fms.example.com",
    ...     database="Contacts",
    ...     user="api",
    ...     password="secret",
    ... )
    """
    host: str
    database: str
    user: str = ""
    password: str = ""
    server_version: Optional[str] = None
    cloud: bool = False
    timeout: float = 60.0
    retries: int = 0
    backoff: float = 0.5
    verify: Union[bool, str] = True
    user_agent: str = "fmsql/0.1"

    @property
    def is_cloud(self) -> bool:
        return self.cloud or self.server_version == SERVER_VERSION_CLOUD


@dataclass
class ScriptResult:
    """Outcome of a FileMaker script run through the Data API."""
    error: Optional[str]
    result: str = ""


def build_base_address(host: str, database: str) -> str:
    """
    Build the Data API root URL for a database.

    Examples
    --------
    >>> build_base_address("fms.example.com/", "Contacts")
    'https://fms.example.com/fmi/data/v1/databases/Contacts/'
    """
    root = host if host.startswith(("http://", "https://")) else f"https://{host}"
    name = database.strip("/")
    return f"{root.rstrip('/')}/fmi/data/v1/databases/{name}/"


class FMDataSession:
    """
    Low-level HTTP session for one FileMaker database.

    Use as a context manager for automatic cleanup.

    Parameters
    ----------
    cfg : FMConfig
        Connection configuration
    token_store : TokenStore, optional
        Token cache, defaults to the shared temp-file store
    cloud_token_provider : callable, optional
        Identity exchange used when ``cfg.is_cloud``

    Examples
    --------
    >>> with FMDataSession(cfg) as sess:
    ...     records = sess.perform_request("GET", "layouts/Contacts/records")
    """

    def __init__(
        self,
        cfg: FMConfig,
        *,
        token_store: Optional[TokenStore] = None,
        cloud_token_provider: Optional[CloudTokenProvider] = None,
    ) -> None:
        self.cfg = cfg
        self.base_address = build_base_address(cfg.host, cfg.database)
        self.timeout = float(cfg.timeout)
        self.verify = cfg.verify
        self.logger = logging.getLogger("fmsql.session")

        self.http = self._build_session()
        self.authenticator = Authenticator(
            cfg,
            self.base_address,
            self.http,
            token_store if token_store is not None else FileTokenStore(),
            cloud_token_provider,
        )

        self.token: Optional[str] = None
        self.retried = False
        self.last_metadata: Optional[Dict[str, Any]] = None

    def close(self) -> None:
        """Close the underlying HTTP session. The cached token is kept."""
        self.http.close()

    def __enter__(self) -> "FMDataSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- auth/session ----------------

    def _build_session(self) -> Session:
        sess = requests.Session()
        sess.headers.update({
            "Accept": "application/json",
            "User-Agent": self.cfg.user_agent,
        })

        retry = Retry(
            total=self.cfg.retries,
            backoff_factor=self.cfg.backoff,
            status_forcelist=RETRY_STATUSES,
            allowed_methods=frozenset({"GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        sess.mount("https://", adapter)
        sess.mount("http://", adapter)
        return sess

    def authenticate(self) -> str:
        """Obtain a token (cached or fresh) and hold it for later requests."""
        self.token = self.authenticator.authenticate()
        return self.token

    def _refresh_token(self) -> None:
        self.retried = True
        self.token = self.authenticator.force_refresh()

    # ---------------- helpers ----------------

    def _url(self, path: str) -> str:
        return f"{self.base_address}{path.lstrip('/')}"

    def _send(self, method: str, url: str, options: Dict[str, Any]) -> Response:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.token}",
            "Accept-Encoding": "gzip, deflate",
        }
        t0 = time.perf_counter()
        r = self.http.request(
            method=method,
            url=url,
            headers=headers,
            timeout=self.timeout,
            verify=self.verify,
            **options,
        )
        dt = (time.perf_counter() - t0) * 1000.0
        self.logger.debug("%s %s %sms", method.upper(), url, round(dt, 1))
        return r

    def _unwrap(self, decoded: Success, want_script_result: bool) -> Any:
        self.last_metadata = decoded.diagnostics
        if want_script_result:
            return ScriptResult(
                error=decoded.response.get("scriptError"),
                result=decoded.response.get("scriptResult") or "",
            )
        data = decoded.data
        return data if data is not None else decoded.response

    # ---------------- public ops ----------------

    def perform_request(
        self,
        method: str,
        path: str,
        options: Optional[Dict[str, Any]] = None,
        *,
        want_script_result: bool = False,
    ) -> Any:
        """
        Execute one Data API request.

        Parameters
        ----------
        method : str
            HTTP method
        path : str
            Path relative to the database root, e.g. "layouts/Contacts/records"
        options : dict, optional
            Extra ``requests`` arguments such as ``params`` or ``json``
        want_script_result : bool
            Return a ScriptResult instead of the response data

        Returns
        -------
        list, dict or ScriptResult
            ``response.data`` when present, otherwise the ``response`` object.
            An empty list when FileMaker reports that no records match.

        Raises
        ------
        RequestFault
            On transport failure, a token rejected after one refresh, an
            undecodable body, or any other FileMaker error
        AuthFault
            If the token refresh itself fails
        """
        url = self._url(path)
        options = dict(options or {})
        self.retried = False
        self.last_metadata = None

        if self.token is None:
            self.authenticate()

        for _attempt in range(2):
            try:
                r = self._send(method, url, options)
            except requests.RequestException as e:
                raise RequestFault(str(e), -1, kind=RequestFault.CONNECT) from e

            # FileMaker Cloud signals an expired token with HTTP 401 rather
            # than a 200 carrying code 952
            if r.status_code == 401:
                if self.retried:
                    raise RequestFault(r.reason or "Unauthorized", 401, kind=RequestFault.AUTH)
                self._refresh_token()
                continue

            decoded = decode_response(r.status_code, r.reason, r.content)
            if isinstance(decoded, Success):
                return self._unwrap(decoded, want_script_result)
            if isinstance(decoded, Opaque):
                raise RequestFault(decoded.reason, decoded.status, kind=RequestFault.OPAQUE)

            if decoded.code == NO_RECORDS_CODE:
                return []

            if decoded.code in SESSION_INVALID_CODES:
                if self.retried:
                    raise RequestFault(decoded.message, decoded.code, kind=RequestFault.AUTH)
                self._refresh_token()
                continue

            raise RequestFault(decoded.message, decoded.code, kind=RequestFault.APPLICATION)

        raise RequestFault("Token rejected after refresh", -1, kind=RequestFault.AUTH)

"""
fmsql.core.auth - Data API token acquisition
============================================

Obtains a bearer token for the Data API, in order of preference:

1. the cached token from the TokenStore (trusted as-is; a stale token is
   caught later by the request retry path)
2. an injected FileMaker Cloud identity provider
3. a basic-auth login against ``<base_address>sessions``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

import requests

from fmsql.core.envelope import ApplicationError, Success, decode_response
from fmsql.core.errors import AuthFault
from fmsql.core.tokens import TokenStore

if TYPE_CHECKING:
    from fmsql.core.session import FMConfig


@dataclass(frozen=True)
class CloudCredentials:
    """Inputs handed to a FileMaker Cloud identity provider."""
    host: str
    user: str
    password: str
    database: str


CloudTokenProvider = Callable[[CloudCredentials], str]


class Authenticator:
    """
    Fetches and caches Data API tokens.

    Parameters
    ----------
    cfg : FMConfig
        Connection configuration
    base_address : str
        Normalized database URL ending in ``/``
    http : requests.Session
        HTTP session used for the login call
    store : TokenStore
        Token cache shared across sessions
    cloud_token_provider : callable, optional
        ``CloudCredentials -> token`` exchange used in FileMaker Cloud mode
    """

    def __init__(
        self,
        cfg: "FMConfig",
        base_address: str,
        http: requests.Session,
        store: TokenStore,
        cloud_token_provider: Optional[CloudTokenProvider] = None,
    ) -> None:
        self.cfg = cfg
        self.base_address = base_address
        self.http = http
        self.store = store
        self.cloud_token_provider = cloud_token_provider
        self.logger = logging.getLogger("fmsql.auth")

    def authenticate(self) -> str:
        """
        Return a token, logging in only when none is cached.

        Raises
        ------
        AuthFault
            If no token could be obtained
        """
        cached = self.store.get()
        if cached:
            return cached

        if self.cfg.is_cloud:
            token = self._fetch_cloud_token()
        else:
            token = self._login()

        self.store.put(token)
        return token

    def force_refresh(self) -> str:
        """Discard the cached token and authenticate again."""
        self.logger.info("Refreshing Data API token for %s", self.base_address)
        self.store.clear()
        return self.authenticate()

    def _fetch_cloud_token(self) -> str:
        if self.cloud_token_provider is None:
            raise AuthFault(
                "A cloud_token_provider must be supplied when using FileMaker Cloud.",
                -1,
                kind=AuthFault.UNKNOWN,
            )
        creds = CloudCredentials(
            host=self.cfg.host,
            user=self.cfg.user,
            password=self.cfg.password,
            database=self.cfg.database,
        )
        try:
            token = self.cloud_token_provider(creds)
        except AuthFault:
            raise
        except Exception as e:
            raise AuthFault(str(e), -1, kind=AuthFault.UNKNOWN) from e
        if not token:
            raise AuthFault("Cloud identity provider returned no token", -1, kind=AuthFault.UNKNOWN)
        return token

    def _login(self) -> str:
        url = f"{self.base_address}sessions"
        try:
            r = self.http.post(
                url,
                headers={"Content-Type": "application/json"},
                auth=(self.cfg.user, self.cfg.password),
                json={},
                timeout=self.cfg.timeout,
                verify=self.cfg.verify,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise AuthFault(str(e), -1, kind=AuthFault.CONNECT) from e
        except requests.RequestException as e:
            raise AuthFault("Unknown error", -1, kind=AuthFault.UNKNOWN) from e

        if r.status_code == 404:
            raise AuthFault(r.reason or "Not Found", 404, kind=AuthFault.NOT_FOUND)

        decoded = decode_response(r.status_code, r.reason, r.content)
        if isinstance(decoded, Success):
            token = decoded.response.get("token")
            if token:
                self.logger.debug("Opened Data API session for %s", self.cfg.user)
                return str(token)
        elif isinstance(decoded, ApplicationError):
            raise AuthFault(decoded.message, decoded.code, kind=AuthFault.INVALID_CREDENTIALS)

        raise AuthFault("Unknown error", -1, kind=AuthFault.UNKNOWN)

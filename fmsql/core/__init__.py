"""
fmsql.core - Core connectivity and authentication
=================================================

This module provides the foundational classes for talking to the Data API:

- FMConfig: Connection configuration
- FMDataSession: Low-level HTTP session with token refresh and error classification
- Authenticator: Token acquisition (cached, cloud or basic-auth login)
- FileTokenStore / MemoryTokenStore: Token caches
- Connection: Statements and pseudo-transactions

"""

from fmsql.core.errors import (
    AuthFault,
    FMDataError,
    NotSupportedFault,
    ParseFault,
    RequestFault,
    TranslationFault,
)
from fmsql.core.tokens import FileTokenStore, MemoryTokenStore, TokenStore
from fmsql.core.auth import Authenticator, CloudCredentials
from fmsql.core.session import FMConfig, FMDataSession, ScriptResult

from fmsql.core.connection import Connection

__all__ = [
    "FMDataError",
    "AuthFault",
    "RequestFault",
    "ParseFault",
    "TranslationFault",
    "NotSupportedFault",
    "TokenStore",
    "FileTokenStore",
    "MemoryTokenStore",
    "Authenticator",
    "CloudCredentials",
    "FMConfig",
    "FMDataSession",
    "ScriptResult",
    "Connection",
]

"""
FileMaker SQL Driver (fmsql)
============================

Run SQL statements against a FileMaker database through the FileMaker
Data API: statements are parsed, translated into Data API requests and
their results returned as rows.

Usage
-----
>>> from fmsql import Connection
>>>
>>> with Connection("fms.example.com", "Contacts", "api", "secret") as conn:
...     stmt = conn.query(
...         "SELECT t0.rec_id AS id_0, t0.name AS name_1 FROM Contacts t0 WHERE t0.city = ?",
...         ["Leeds"],
...     )
...     for row in stmt:
...         print(row["id_0"], row["name_1"])

Subpackages
-----------
- fmsql.core: Session, authentication, token cache and connection
- fmsql.sql: Parameter binding, parsing, translation and statements

"""

__version__ = "0.1.0"

# Core exports - available at package root
from fmsql.core.errors import (
    AuthFault,
    FMDataError,
    NotSupportedFault,
    ParseFault,
    RequestFault,
    TranslationFault,
)
from fmsql.core.session import FMConfig, FMDataSession, ScriptResult
from fmsql.core.tokens import FileTokenStore, MemoryTokenStore
from fmsql.core.connection import Connection

# Convenience re-exports
from fmsql.sql import QueryTranslator, SchemaMetadata, Statement

__all__ = [
    # Version
    "__version__",
    # Core
    "Connection",
    "FMConfig",
    "FMDataSession",
    "ScriptResult",
    "FileTokenStore",
    "MemoryTokenStore",
    # Errors
    "FMDataError",
    "AuthFault",
    "RequestFault",
    "ParseFault",
    "TranslationFault",
    "NotSupportedFault",
    # SQL
    "QueryTranslator",
    "SchemaMetadata",
    "Statement",
]

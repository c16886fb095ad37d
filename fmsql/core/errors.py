"""
fmsql.core.errors - Fault taxonomy
==================================

Every failure surfaced by fmsql is an ``FMDataError``. Faults raised from a
FileMaker response carry the platform's own message and numeric code so they
can be matched against the server's logs; transport failures fall back to
the underlying exception text and ``code=-1``.
"""

from __future__ import annotations

from typing import Optional


class FMDataError(RuntimeError):
    """
    Base class for all fmsql faults.

    Attributes
    ----------
    message : str
        Human readable message (FileMaker's own text when available)
    code : int
        FileMaker error code, HTTP status, or -1 when unknown
    kind : str
        Classification within the fault family
    """

    kind: str = "unknown"

    def __init__(
        self,
        message: str,
        code: int = -1,
        *,
        kind: Optional[str] = None,
    ) -> None:
        super().__init__(f"{message} (code {code})")
        self.message = message
        self.code = code
        if kind is not None:
            self.kind = kind


class AuthFault(FMDataError):
    """
    Authentication against the Data API failed.

    ``kind`` is one of ``connect``, ``not-found``, ``invalid-credentials``
    or ``unknown``.
    """

    CONNECT = "connect"
    NOT_FOUND = "not-found"
    INVALID_CREDENTIALS = "invalid-credentials"
    UNKNOWN = "unknown"


class RequestFault(FMDataError):
    """
    A data request failed.

    ``kind`` is one of ``connect``, ``auth`` (still rejected after the
    single token refresh), ``opaque`` (body was not a JSON envelope) or
    ``application`` (FileMaker message/code passed through verbatim).
    """

    CONNECT = "connect"
    AUTH = "auth"
    OPAQUE = "opaque"
    APPLICATION = "application"

    kind = APPLICATION


class ParseFault(FMDataError):
    """SQL text could not be parsed."""

    kind = "parse"


class TranslationFault(FMDataError):
    """A parsed query has no Data API equivalent."""

    kind = "translation"


class NotSupportedFault(FMDataError):
    """Operation the Data API model cannot express."""

    kind = "not-supported"

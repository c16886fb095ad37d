"""
fmsql.core.envelope - Data API response decoding
================================================

FileMaker wraps every reply in ``{"response": {...}, "messages": [...]}``.
``decode_response`` turns a raw HTTP reply into exactly one of three models
so the rest of the package never touches untyped JSON:

- Success: 2xx with a JSON envelope
- ApplicationError: non-2xx carrying ``messages[0].code/message``
- Opaque: anything that is not a JSON envelope
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class FMMessage(BaseModel):
    """One entry of the envelope's ``messages`` list."""

    code: int = Field(default=-1, description="FileMaker error code")
    message: str = Field(default="", description="FileMaker error text")


class FMEnvelope(BaseModel):
    """Raw Data API envelope."""

    model_config = ConfigDict(extra="allow")

    response: Dict[str, Any] = Field(default_factory=dict)
    messages: List[FMMessage] = Field(default_factory=list)


class Success(BaseModel):
    kind: Literal["success"] = "success"
    status: int = 200
    response: Dict[str, Any] = Field(default_factory=dict)

    @property
    def data(self) -> Optional[Any]:
        return self.response.get("data")

    @property
    def diagnostics(self) -> Optional[Dict[str, Any]]:
        return self.response.get("dataInfo")


class ApplicationError(BaseModel):
    kind: Literal["application"] = "application"
    status: int
    code: int
    message: str


class Opaque(BaseModel):
    kind: Literal["opaque"] = "opaque"
    status: int
    reason: str = ""


DecodedResponse = Union[Success, ApplicationError, Opaque]


def decode_response(status: int, reason: Optional[str], body: Union[bytes, str, None]) -> DecodedResponse:
    """
    Decode an HTTP reply from the Data API.

    Parameters
    ----------
    status : int
        HTTP status code
    reason : str, optional
        HTTP reason phrase
    body : bytes or str
        Raw response body

    Returns
    -------
    Success, ApplicationError or Opaque
    """
    reason = reason or ""
    if not body:
        return Opaque(status=status, reason=reason)
    try:
        envelope = FMEnvelope.model_validate_json(body)
    except ValidationError:
        return Opaque(status=status, reason=reason)

    if 200 <= status < 300:
        return Success(status=status, response=envelope.response)

    if not envelope.messages:
        return Opaque(status=status, reason=reason)

    first = envelope.messages[0]
    return ApplicationError(status=status, code=first.code, message=first.message)

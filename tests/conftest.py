"""
Pytest configuration and shared fixtures.
"""

import json

import pytest
import requests
from unittest.mock import MagicMock, patch

from fmsql.core.connection import Connection
from fmsql.core.session import FMConfig, FMDataSession
from fmsql.core.tokens import MemoryTokenStore


_REASONS = {
    200: "OK",
    401: "Unauthorized",
    404: "Not Found",
    500: "Internal Server Error",
    502: "Bad Gateway",
}


@pytest.fixture
def make_response():
    """Factory for real requests.Response objects."""
    def _make(status=200, body=None, reason=None):
        r = requests.Response()
        r.status_code = status
        r.reason = reason if reason is not None else _REASONS.get(status, "")
        if body is None:
            r._content = b""
        elif isinstance(body, bytes):
            r._content = body
        elif isinstance(body, str):
            r._content = body.encode("utf-8")
        else:
            r._content = json.dumps(body).encode("utf-8")
            r.headers["Content-Type"] = "application/json"
        return r
    return _make


@pytest.fixture
def fm_ok(make_response):
    """Successful Data API reply wrapping ``response``."""
    def _ok(**response):
        return make_response(200, {
            "response": response,
            "messages": [{"code": "0", "message": "OK"}],
        })
    return _ok


@pytest.fixture
def fm_error(make_response):
    """Failed Data API reply carrying a FileMaker code."""
    def _error(code, message, status=500):
        return make_response(status, {
            "response": {},
            "messages": [{"code": str(code), "message": message}],
        })
    return _error


@pytest.fixture
def login_ok(fm_ok):
    return fm_ok(token="fresh-token")


@pytest.fixture
def token_store():
    return MemoryTokenStore("cached-token")


@pytest.fixture
def cfg():
    return FMConfig(
        host="fms.example.com",
        database="Contacts",
        user="api",
        password="secret",
    )


@pytest.fixture
def mock_http():
    """Patch requests.Session so no real HTTP is made."""
    with patch("fmsql.core.session.requests.Session") as session_class:
        http = MagicMock()
        session_class.return_value = http
        yield http


@pytest.fixture
def session(cfg, token_store, mock_http):
    return FMDataSession(cfg, token_store=token_store)


@pytest.fixture
def connection(token_store, mock_http):
    conn = Connection(
        "fms.example.com",
        "Contacts",
        "api",
        "secret",
        token_store=token_store,
    )
    yield conn
    conn.close()


@pytest.fixture
def sample_records():
    """Two Data API records."""
    return [
        {
            "fieldData": {"id": "C-001", "name": "Ada", "city": "Leeds"},
            "portalData": {},
            "recordId": "11",
            "modId": "2",
        },
        {
            "fieldData": {"id": "C-002", "name": "Bea", "city": ""},
            "portalData": {},
            "recordId": "12",
            "modId": "5",
        },
    ]

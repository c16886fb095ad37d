"""
fmsql.core.tokens - Bearer token persistence
============================================

Data API tokens stay valid for 15 minutes of inactivity, so a token obtained
by one process is cached on disk and reused by the next one instead of
opening a new server session each time.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Optional, Protocol, Union

TOKEN_FILE_NAME = "fmp-token.txt"


class TokenStore(Protocol):
    """Single-slot token storage."""

    def get(self) -> Optional[str]:
        ...

    def put(self, token: str) -> None:
        ...

    def clear(self) -> None:
        ...


def default_token_path() -> Path:
    return Path(tempfile.gettempdir()) / TOKEN_FILE_NAME


class FileTokenStore:
    """
    Token cached as plain text in a file shared by all processes.

    There is no locking: concurrent refreshes race and the last writer wins.
    An empty file reads the same as a missing one.

    Parameters
    ----------
    path : str or Path, optional
        Cache location, defaults to ``<tmpdir>/fmp-token.txt``
    """

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self.path = Path(path) if path is not None else default_token_path()

    def get(self) -> Optional[str]:
        if not self.path.exists():
            return None
        content = self.path.read_text(encoding="utf-8").strip()
        return content or None

    def put(self, token: str) -> None:
        self.path.write_text(token, encoding="utf-8")

    def clear(self) -> None:
        self.path.write_text("", encoding="utf-8")


class MemoryTokenStore:
    """Token held in process memory only."""

    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token

    def get(self) -> Optional[str]:
        return self._token or None

    def put(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None

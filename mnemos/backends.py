"""Storage backends that hand out SQLite connections for a memory store."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Union
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT_MS = 5000


class StorageBackend:
    """Base class for anything that can open a SQLite connection."""

    def connect(self, *, check_same_thread: bool = True) -> sqlite3.Connection:
        raise NotImplementedError

    def get_info(self) -> Dict[str, Any]:
        raise NotImplementedError


class LocalSQLiteBackend(StorageBackend):
    """A single SQLite file on local disk, opened in WAL mode."""

    def __init__(
        self,
        db_path: Union[str, Path],
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms

    def connect(self, *, check_same_thread: bool = True) -> sqlite3.Connection:
        """Open the database file, creating its directory first.

        Directory creation and open failures propagate; a store that cannot
        reach its file is unusable.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), check_same_thread=check_same_thread)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
        logger.debug("Opened memory database %s", self.db_path)
        return conn

    def get_info(self) -> Dict[str, Any]:
        return {
            "backend": "local",
            "db_path": str(self.db_path),
            "exists": self.db_path.exists(),
            "size_bytes": self.db_path.stat().st_size if self.db_path.exists() else 0,
        }


def parse_backend_uri(uri: str, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> StorageBackend:
    """Build a backend from a storage URI.

    Only ``file://`` URIs and bare filesystem paths are understood.
    """
    parsed = urlparse(uri)
    if parsed.scheme in ("", "file"):
        path = unquote(parsed.path) if parsed.scheme else uri
        if parsed.scheme and parsed.netloc:
            path = unquote(parsed.netloc + parsed.path)
        if not path:
            raise ValueError(f"Storage URI has no path: {uri!r}")
        return LocalSQLiteBackend(Path(path).expanduser(), busy_timeout_ms=busy_timeout_ms)
    raise ValueError(f"Unsupported storage URI scheme '{parsed.scheme}' in {uri!r}")

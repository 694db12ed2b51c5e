"""Per-project memory handles and the process-wide registry that hands them out.

A ``MemoryManager`` owns one SQLite connection to one project's database and
exposes the item store, relation graph and search operations as methods.

Registry behavior:

- ``get_manager(path)`` caches one handle per resolved project path.
- ``get_manager()`` returns a separate default handle, resolved from
  ``MNEMOS_PROJECT_DIR`` or the current directory. It is not shared with
  explicit-path handles, even when both point at the same project.
"""

from __future__ import annotations

import atexit
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from . import relations, search, storage
from .backends import LocalSQLiteBackend, StorageBackend, parse_backend_uri
from .config import MemoryConfig, load_config, resolve_project_root
from .migrate import migrate_legacy_json
from .relations import MemoryGraph, Relation
from .search import SearchStrategy
from .storage import MemoryItem

logger = logging.getLogger(__name__)


class MemoryManager:
    """Open memory store for one project directory."""

    def __init__(
        self,
        project_path: Union[str, Path],
        *,
        config: Optional[MemoryConfig] = None,
        check_same_thread: bool = True,
    ) -> None:
        self.project_root = resolve_project_root(str(project_path))
        self.config = config or load_config(self.project_root)
        self.backend = self._make_backend()
        self.db_path = Path(self.backend.db_path)

        self.conn = self.backend.connect(check_same_thread=check_same_thread)
        storage.ensure_schema(self.conn)
        migrate_legacy_json(self.conn, self.db_path, self.config.legacy_filename)
        logger.debug("Memory store ready for %s at %s", self.project_root, self.db_path)

    def _make_backend(self) -> StorageBackend:
        if self.config.storage_uri:
            return parse_backend_uri(
                self.config.storage_uri, busy_timeout_ms=self.config.busy_timeout_ms
            )
        return LocalSQLiteBackend(
            self.config.db_path(self.project_root),
            busy_timeout_ms=self.config.busy_timeout_ms,
        )

    # ── Lifecycle ────────────────────────────────────────────

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    @property
    def closed(self) -> bool:
        return self.conn is None

    def __enter__(self) -> "MemoryManager":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"MemoryManager({str(self.project_root)!r})"

    # ── Item store ───────────────────────────────────────────

    def save(
        self, key: str, value: str, category: str = storage.DEFAULT_CATEGORY, priority: int = 0
    ) -> MemoryItem:
        return storage.save(self.conn, key, value, category, priority)

    def recall(self, key: str) -> Optional[MemoryItem]:
        return storage.recall(self.conn, key)

    def update(self, key: str, value: str) -> bool:
        return storage.update(self.conn, key, value)

    def delete(self, key: str) -> bool:
        return storage.delete(self.conn, key)

    def list(self, category: Optional[str] = None) -> List[MemoryItem]:
        return storage.list_memories(self.conn, category)

    def search(self, query: str) -> List[MemoryItem]:
        return storage.search(self.conn, query)

    def get_by_priority(self, priority: int) -> List[MemoryItem]:
        return storage.get_by_priority(self.conn, priority)

    def set_priority(self, key: str, priority: int) -> bool:
        return storage.set_priority(self.conn, key, priority)

    def get_stats(self) -> Dict[str, Any]:
        return storage.get_stats(self.conn)

    def get_timeline(
        self, start: Optional[str] = None, end: Optional[str] = None, limit: Optional[int] = None
    ) -> List[MemoryItem]:
        if limit is None:
            limit = self.config.timeline_limit
        return storage.get_timeline(self.conn, start, end, limit)

    def export(self) -> List[Dict[str, Any]]:
        return storage.export_memories(self.conn)

    # ── Relation graph ───────────────────────────────────────

    def link_memories(
        self,
        source_key: str,
        target_key: str,
        relation_type: str,
        strength: float = 1.0,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        return relations.link_memories(
            self.conn, source_key, target_key, relation_type, strength, metadata
        )

    def get_relations(self, key: str, direction: str = "both") -> List[Relation]:
        return relations.get_relations(self.conn, key, direction)

    def get_related_memories(
        self, key: str, depth: int = 1, relation_type: Optional[str] = None
    ) -> List[MemoryItem]:
        return relations.get_related_memories(self.conn, key, depth, relation_type)

    def get_memory_graph(self, key: Optional[str] = None, depth: Optional[int] = None) -> MemoryGraph:
        if depth is None:
            depth = self.config.graph_depth
        return relations.get_memory_graph(self.conn, key, depth)

    def find_path(self, source_key: str, target_key: str) -> Optional[List[str]]:
        return relations.find_path(self.conn, source_key, target_key)

    def unlink_memories(
        self, source_key: str, target_key: str, relation_type: Optional[str] = None
    ) -> bool:
        return relations.unlink_memories(self.conn, source_key, target_key, relation_type)

    # ── Search ───────────────────────────────────────────────

    def search_advanced(
        self,
        query: str,
        strategy: Union[SearchStrategy, str] = SearchStrategy.KEYWORD,
        *,
        limit: Optional[int] = None,
        category: Optional[str] = None,
        start_key: Optional[str] = None,
        depth: Optional[int] = None,
        relation_type: Optional[str] = None,
    ) -> List[MemoryItem]:
        return search.search_advanced(
            self.conn,
            query,
            strategy,
            limit=self.config.search_limit if limit is None else limit,
            category=category,
            start_key=start_key,
            depth=self.config.graph_depth if depth is None else depth,
            relation_type=relation_type,
        )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_lock = threading.Lock()
_instances: Dict[Path, MemoryManager] = {}
_default_instance: Optional[MemoryManager] = None
_cleanup_registered = False


def get_manager(project_path: Optional[Union[str, Path]] = None) -> MemoryManager:
    """Return the cached handle for *project_path*, or the default handle."""
    global _default_instance

    with _lock:
        _register_cleanup()
        if project_path:
            root = resolve_project_root(str(project_path))
            manager = _instances.get(root)
            if manager is None or manager.closed:
                manager = MemoryManager(root)
                _instances[root] = manager
            return manager

        if _default_instance is None or _default_instance.closed:
            _default_instance = MemoryManager(resolve_project_root())
        return _default_instance


def reset_manager(project_path: Optional[Union[str, Path]] = None) -> None:
    """Close and forget one explicit-path handle, or every handle."""
    global _default_instance

    with _lock:
        if project_path:
            manager = _instances.pop(resolve_project_root(str(project_path)), None)
            if manager is not None:
                manager.close()
            return

        if _default_instance is not None:
            _default_instance.close()
            _default_instance = None
        for manager in _instances.values():
            manager.close()
        _instances.clear()


def _register_cleanup() -> None:
    global _cleanup_registered
    if not _cleanup_registered:
        atexit.register(reset_manager)
        _cleanup_registered = True

"""Mnemos: a per-project memory store with a typed relation graph.

Layout:
    <project>/.mnemos/memories/
    ├── memories.db            # SQLite (WAL): memories + memory_relations
    └── memories.json.backup   # legacy flat file, after its one-time import

Layers:
    storage     item CRUD, listing, substring search, stats, timeline
    relations   directed typed edges, BFS traversal, paths, clusters
    search      strategy dispatch (keyword, graph, temporal, priority, context)
    manager     MemoryManager handle per project + registry
    api         caller-facing functions taking a project path
"""

from .manager import MemoryManager, get_manager, reset_manager
from .relations import GraphNode, MemoryGraph, Relation
from .search import SearchStrategy
from .storage import MemoryItem

__all__ = [
    "GraphNode",
    "MemoryGraph",
    "MemoryItem",
    "MemoryManager",
    "Relation",
    "SearchStrategy",
    "get_manager",
    "reset_manager",
]

"""JSON payloads for the graph viewer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

if TYPE_CHECKING:
    from ..manager import MemoryManager


def get_graph_data(
    manager: "MemoryManager", key: Optional[str] = None, depth: Optional[int] = None
) -> Dict[str, Any]:
    """Graph around *key* (or the whole store) plus summary counts."""
    graph = manager.get_memory_graph(key, depth).to_dict()
    graph["count"] = {
        "nodes": len(graph["nodes"]),
        "edges": len(graph["edges"]),
        "clusters": len(graph["clusters"]),
    }
    graph["root"] = key
    return graph


def get_change_marker(manager: "MemoryManager") -> Tuple[int, Optional[str], int]:
    """(memory count, newest timestamp, relation count) for change polling."""
    row = manager.conn.execute(
        "SELECT COUNT(*) AS cnt, MAX(timestamp) AS latest FROM memories"
    ).fetchone()
    relation_count = manager.conn.execute(
        "SELECT COUNT(*) FROM memory_relations"
    ).fetchone()[0]
    return (row["cnt"], row["latest"], relation_count)


def get_memory_for_api(manager: "MemoryManager", key: str) -> Dict[str, Any]:
    """One memory with its incoming and outgoing relations."""
    item = manager.recall(key)
    if item is None:
        return {"error": "not_found", "key": key}
    result = item.to_dict()
    result["relations"] = {
        "outgoing": [r.to_dict() for r in manager.get_relations(key, "outgoing")],
        "incoming": [r.to_dict() for r in manager.get_relations(key, "incoming")],
    }
    return result

"""Directed, typed relations between memory keys, and traversal over them.

Relations live in ``memory_relations`` on the same connection as the item
store. Endpoints are never checked against ``memories``; a relation may name
a key that has no item.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from . import storage
from .storage import MemoryItem, now_iso

logger = logging.getLogger(__name__)


@dataclass
class Relation:
    """A directed edge ``source_key -> target_key`` of one type."""

    source_key: str
    target_key: str
    relation_type: str
    strength: float = 1.0
    metadata: Optional[Dict[str, Any]] = None
    timestamp: str = ""

    @property
    def triple(self) -> Tuple[str, str, str]:
        return (self.source_key, self.target_key, self.relation_type)

    def other_end(self, key: str) -> str:
        return self.target_key if self.source_key == key else self.source_key

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "sourceKey": self.source_key,
            "targetKey": self.target_key,
            "relationType": self.relation_type,
            "strength": self.strength,
            "timestamp": self.timestamp,
        }
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result


@dataclass
class GraphNode:
    key: str
    value: str
    category: str
    relations: List[Relation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "category": self.category,
            "relations": [r.to_dict() for r in self.relations],
        }


@dataclass
class MemoryGraph:
    """A computed view: nodes, the edges among them, and their clusters."""

    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[Relation] = field(default_factory=list)
    clusters: List[List[str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "clusters": [list(c) for c in self.clusters],
        }


def _load_metadata(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Ignoring unreadable relation metadata: %r", raw[:80])
        return None


def _row_to_relation(row: sqlite3.Row) -> Relation:
    return Relation(
        source_key=row["sourceKey"],
        target_key=row["targetKey"],
        relation_type=row["relationType"],
        strength=row["strength"] if row["strength"] is not None else 1.0,
        metadata=_load_metadata(row["metadata"]),
        timestamp=row["timestamp"],
    )


# ---------------------------------------------------------------------------
# Edge CRUD
# ---------------------------------------------------------------------------


def link_memories(
    conn: sqlite3.Connection,
    source_key: str,
    target_key: str,
    relation_type: str,
    strength: float = 1.0,
    metadata: Optional[Dict[str, Any]] = None,
) -> bool:
    """Create or refresh the ``source -> target`` relation of *relation_type*.

    Re-linking an existing triple overwrites its strength, metadata and
    timestamp. Returns False when the metadata cannot be serialized to JSON
    or SQLite rejects the write.
    """
    try:
        metadata_json = (
            json.dumps(metadata, ensure_ascii=False) if metadata is not None else None
        )
        conn.execute(
            """
            INSERT INTO memory_relations
                (sourceKey, targetKey, relationType, strength, metadata, timestamp)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(sourceKey, targetKey, relationType) DO UPDATE SET
                strength = excluded.strength,
                metadata = excluded.metadata,
                timestamp = excluded.timestamp
            """,
            (source_key, target_key, relation_type, strength, metadata_json, now_iso()),
        )
        conn.commit()
    except (sqlite3.Error, TypeError, ValueError) as exc:
        logger.warning(
            "Failed to link %s -[%s]-> %s: %s", source_key, relation_type, target_key, exc
        )
        return False
    return True


def get_relations(
    conn: sqlite3.Connection, key: str, direction: str = "both"
) -> List[Relation]:
    """Relations where *key* is the source, the target, or either.

    Any *direction* other than ``outgoing`` or ``incoming`` means ``both``.
    """
    if direction == "outgoing":
        rows = conn.execute(
            "SELECT * FROM memory_relations WHERE sourceKey = ?", (key,)
        ).fetchall()
    elif direction == "incoming":
        rows = conn.execute(
            "SELECT * FROM memory_relations WHERE targetKey = ?", (key,)
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM memory_relations WHERE sourceKey = ? OR targetKey = ?",
            (key, key),
        ).fetchall()
    return [_row_to_relation(row) for row in rows]


def unlink_memories(
    conn: sqlite3.Connection,
    source_key: str,
    target_key: str,
    relation_type: Optional[str] = None,
) -> bool:
    """Delete ``source -> target`` relations (this direction only).

    Without *relation_type* every type between the ordered pair goes.
    """
    sql = "DELETE FROM memory_relations WHERE sourceKey = ? AND targetKey = ?"
    params: List[Any] = [source_key, target_key]
    if relation_type:
        sql += " AND relationType = ?"
        params.append(relation_type)
    cur = conn.execute(sql, params)
    conn.commit()
    return cur.rowcount > 0


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


def get_related_memories(
    conn: sqlite3.Connection,
    key: str,
    depth: int = 1,
    relation_type: Optional[str] = None,
) -> List[MemoryItem]:
    """Items reachable from *key* within *depth* hops, nearest first.

    Relations are followed in both directions and each key is visited once
    across the whole walk. With *relation_type* only edges of that type are
    followed at every hop, so a branch reachable only through other types is
    not explored. The start key is never part of the result, and keys
    without an item row are skipped. Every returned item is fetched through
    :func:`storage.recall`, which bumps its ``lastAccessed``.
    """
    visited: Set[str] = {key}
    result: List[MemoryItem] = []
    current_level = [key]

    for _ in range(depth):
        next_level: List[str] = []
        for current_key in current_level:
            for rel in get_relations(conn, current_key, "both"):
                if relation_type and rel.relation_type != relation_type:
                    continue
                neighbor = rel.other_end(current_key)
                if neighbor in visited:
                    continue
                visited.add(neighbor)
                next_level.append(neighbor)
                item = storage.recall(conn, neighbor)
                if item is not None:
                    result.append(item)
        current_level = next_level
        if not current_level:
            break

    return result


def get_memory_graph(
    conn: sqlite3.Connection, key: Optional[str] = None, depth: int = 2
) -> MemoryGraph:
    """Build a graph view around *key*, or over the whole store.

    Around a key: breadth-first up to *depth* levels, the key itself
    included, with every relation touched along the way as an edge.

    Whole store: every item is a node but only its *outgoing* relations are
    collected, so a node whose relations are all incoming contributes no
    edges. Callers rely on that shape; keep it.
    """
    graph = MemoryGraph()
    if key:
        _build_graph_from_key(conn, key, depth, graph)
    else:
        for item in storage.list_memories(conn):
            relations = get_relations(conn, item.key, "outgoing")
            graph.nodes.append(GraphNode(item.key, item.value, item.category, relations))
            graph.edges.extend(relations)

    graph.clusters = detect_clusters([n.key for n in graph.nodes], graph.edges)
    return graph


def _build_graph_from_key(
    conn: sqlite3.Connection, start_key: str, depth: int, graph: MemoryGraph
) -> None:
    visited: Set[str] = set()
    seen_edges: Set[Tuple[str, str, str]] = set()
    queue = deque([(start_key, 0)])

    while queue:
        key, level = queue.popleft()
        if key in visited or level > depth:
            continue
        visited.add(key)

        item = storage.recall(conn, key)
        if item is None:
            continue

        relations = get_relations(conn, key, "both")
        graph.nodes.append(GraphNode(item.key, item.value, item.category, relations))

        for rel in relations:
            if rel.triple not in seen_edges:
                seen_edges.add(rel.triple)
                graph.edges.append(rel)
            neighbor = rel.other_end(key)
            if neighbor not in visited and level < depth:
                queue.append((neighbor, level + 1))


def detect_clusters(keys: Sequence[str], edges: Sequence[Relation]) -> List[List[str]]:
    """Connected components of size >= 2 among *keys*.

    Union-find over *edges*, each treated as undirected. Edges with an
    endpoint outside *keys* are ignored.
    """
    parent: Dict[str, str] = {k: k for k in keys}

    def find(x: str) -> str:
        root = x
        while parent[root] != root:
            root = parent[root]
        while parent[x] != root:
            parent[x], x = root, parent[x]
        return root

    for edge in edges:
        if edge.source_key in parent and edge.target_key in parent:
            a, b = find(edge.source_key), find(edge.target_key)
            if a != b:
                parent[a] = b

    components: Dict[str, List[str]] = {}
    for k in keys:
        components.setdefault(find(k), []).append(k)
    return [members for members in components.values() if len(members) > 1]


def find_path(
    conn: sqlite3.Connection, source_key: str, target_key: str
) -> Optional[List[str]]:
    """Shortest hop path between two keys, ignoring direction and strength.

    Returns ``[source_key]`` when both are the same key and None when no
    path exists.
    """
    if source_key == target_key:
        return [source_key]

    previous: Dict[str, Optional[str]] = {source_key: None}
    queue = deque([source_key])
    while queue:
        key = queue.popleft()
        for rel in get_relations(conn, key, "both"):
            neighbor = rel.other_end(key)
            if neighbor in previous:
                continue
            previous[neighbor] = key
            if neighbor == target_key:
                path = [neighbor]
                while previous[path[-1]] is not None:
                    path.append(previous[path[-1]])
                return path[::-1]
            queue.append(neighbor)
    return None

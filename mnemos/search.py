"""Strategy-selectable memory search over the item store and relation graph."""

from __future__ import annotations

import sqlite3
from enum import Enum
from typing import Any, List, Optional, Union

from . import relations, storage
from .storage import MATCH_CLAUSE, MemoryItem, like_pattern, row_to_item

DEFAULT_LIMIT = 20
DEFAULT_DEPTH = 2


class SearchStrategy(str, Enum):
    KEYWORD = "keyword"
    GRAPH_TRAVERSAL = "graph_traversal"
    TEMPORAL = "temporal"
    PRIORITY = "priority"
    CONTEXT_AWARE = "context_aware"


def search_advanced(
    conn: sqlite3.Connection,
    query: str,
    strategy: Union[SearchStrategy, str],
    *,
    limit: int = DEFAULT_LIMIT,
    category: Optional[str] = None,
    start_key: Optional[str] = None,
    depth: int = DEFAULT_DEPTH,
    relation_type: Optional[str] = None,
) -> List[MemoryItem]:
    """Search memories with a named strategy.

    Strategies:
        keyword: substring match, priority then recency.
        graph_traversal: items related to *start_key* within *depth* hops;
            without a start key this is a keyword search.
        temporal: substring match, newest first.
        priority: substring match, priority then most recently accessed.
        context_aware: substring match ranked by a relevance score of
            3 for a key hit, 2 for a value hit and half the priority.

    Any other strategy name runs a plain :func:`storage.search` without a
    limit. An empty query matches every memory in all substring strategies.
    """
    try:
        strategy = SearchStrategy(strategy)
    except ValueError:
        return storage.search(conn, query)

    if strategy is SearchStrategy.KEYWORD:
        return _search_keyword(conn, query, limit, category)
    if strategy is SearchStrategy.GRAPH_TRAVERSAL:
        if not start_key:
            return _search_keyword(conn, query, limit, category)
        related = relations.get_related_memories(conn, start_key, depth, relation_type)
        return related[:limit]
    if strategy is SearchStrategy.TEMPORAL:
        return _search_ordered(conn, query, limit, "timestamp DESC")
    if strategy is SearchStrategy.PRIORITY:
        return _search_ordered(conn, query, limit, "priority DESC, lastAccessed DESC")
    return _search_context_aware(conn, query, limit, category)


def _search_keyword(
    conn: sqlite3.Connection, query: str, limit: int, category: Optional[str]
) -> List[MemoryItem]:
    pattern = like_pattern(query)
    sql = f"SELECT * FROM memories WHERE {MATCH_CLAUSE}"
    params: List[Any] = [pattern, pattern]
    if category:
        sql += " AND category = ?"
        params.append(category)
    sql += " ORDER BY priority DESC, timestamp DESC LIMIT ?"
    params.append(limit)
    return [row_to_item(row) for row in conn.execute(sql, params).fetchall()]


def _search_ordered(
    conn: sqlite3.Connection, query: str, limit: int, order_by: str
) -> List[MemoryItem]:
    pattern = like_pattern(query)
    rows = conn.execute(
        f"SELECT * FROM memories WHERE {MATCH_CLAUSE} ORDER BY {order_by} LIMIT ?",
        (pattern, pattern, limit),
    ).fetchall()
    return [row_to_item(row) for row in rows]


def _search_context_aware(
    conn: sqlite3.Connection, query: str, limit: int, category: Optional[str]
) -> List[MemoryItem]:
    pattern = like_pattern(query)
    sql = f"""
        SELECT *,
            (CASE WHEN key LIKE ? ESCAPE '\\' THEN 3 ELSE 0 END +
             CASE WHEN value LIKE ? ESCAPE '\\' THEN 2 ELSE 0 END +
             COALESCE(priority, 0) * 0.5) AS relevance_score
        FROM memories
        WHERE {MATCH_CLAUSE}
    """
    params: List[Any] = [pattern, pattern, pattern, pattern]
    if category:
        sql += " AND category = ?"
        params.append(category)
    sql += " ORDER BY relevance_score DESC, lastAccessed DESC LIMIT ?"
    params.append(limit)
    return [row_to_item(row) for row in conn.execute(sql, params).fetchall()]

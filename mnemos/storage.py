"""SQLite item store: one ``memories`` row per key, plus the relation table schema.

Every function takes an open ``sqlite3.Connection`` (see ``mnemos.backends``)
and commits its own writes.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "general"

# UPDATE ... RETURNING landed in SQLite 3.35.0
SUPPORTS_RETURNING = sqlite3.sqlite_version_info >= (3, 35, 0)

# Substring match on key or value. LIKE is ASCII case-insensitive in SQLite;
# every search path goes through this clause so matching stays consistent.
MATCH_CLAUSE = "(key LIKE ? ESCAPE '\\' OR value LIKE ? ESCAPE '\\')"


@dataclass
class MemoryItem:
    """A single stored memory."""

    key: str
    value: str
    category: str = DEFAULT_CATEGORY
    priority: int = 0
    timestamp: str = ""
    last_accessed: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase record shape used on disk and by callers."""
        return {
            "key": self.key,
            "value": self.value,
            "category": self.category,
            "priority": self.priority,
            "timestamp": self.timestamp,
            "lastAccessed": self.last_accessed,
        }


def now_iso() -> str:
    """Current UTC time as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def like_pattern(query: str) -> str:
    """Wrap *query* for a literal substring LIKE match."""
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def row_to_item(row: sqlite3.Row) -> MemoryItem:
    return MemoryItem(
        key=row["key"],
        value=row["value"],
        category=row["category"],
        priority=row["priority"] if row["priority"] is not None else 0,
        timestamp=row["timestamp"],
        last_accessed=row["lastAccessed"],
    )


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


def ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS memories (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            category TEXT NOT NULL DEFAULT 'general',
            timestamp TEXT NOT NULL,
            lastAccessed TEXT NOT NULL,
            priority INTEGER DEFAULT 0
        );

        CREATE INDEX IF NOT EXISTS idx_category ON memories(category);
        CREATE INDEX IF NOT EXISTS idx_timestamp ON memories(timestamp);
        CREATE INDEX IF NOT EXISTS idx_priority ON memories(priority);
        CREATE INDEX IF NOT EXISTS idx_lastAccessed ON memories(lastAccessed);
        """
    )
    _ensure_relations_table(conn)
    conn.commit()


def _ensure_relations_table(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS memory_relations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sourceKey TEXT NOT NULL,
            targetKey TEXT NOT NULL,
            relationType TEXT NOT NULL,
            strength REAL DEFAULT 1.0,
            metadata TEXT,
            timestamp TEXT NOT NULL,
            UNIQUE(sourceKey, targetKey, relationType)
        );

        CREATE INDEX IF NOT EXISTS idx_rel_source ON memory_relations(sourceKey);
        CREATE INDEX IF NOT EXISTS idx_rel_target ON memory_relations(targetKey);
        CREATE INDEX IF NOT EXISTS idx_rel_type ON memory_relations(relationType);
        """
    )


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


def save(
    conn: sqlite3.Connection,
    key: str,
    value: str,
    category: str = DEFAULT_CATEGORY,
    priority: int = 0,
) -> MemoryItem:
    """Insert or fully replace the row for *key*.

    Category and priority are overwritten even when the caller only meant to
    change the value; use :func:`update` for value-only edits.
    """
    now = now_iso()
    conn.execute(
        """
        INSERT OR REPLACE INTO memories (key, value, category, timestamp, lastAccessed, priority)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (key, value, category, now, now, priority),
    )
    conn.commit()
    return MemoryItem(key, value, category, priority, now, now)


def recall(conn: sqlite3.Connection, key: str) -> Optional[MemoryItem]:
    """Fetch *key* and bump its ``lastAccessed`` to now.

    On SQLite >= 3.35 this is one ``UPDATE ... RETURNING`` statement. Older
    libraries fall back to SELECT then UPDATE inside one transaction; with
    several writers on the same file that bump can be lost or land on a row
    that changed in between. Nothing detects or reports that.
    """
    now = now_iso()
    if SUPPORTS_RETURNING:
        rows = conn.execute(
            "UPDATE memories SET lastAccessed = ? WHERE key = ? RETURNING *",
            (now, key),
        ).fetchall()
        conn.commit()
        return row_to_item(rows[0]) if rows else None
    return _recall_select_then_update(conn, key, now)


def _recall_select_then_update(
    conn: sqlite3.Connection, key: str, now: str
) -> Optional[MemoryItem]:
    if not conn.in_transaction:
        conn.execute("BEGIN")
    try:
        row = conn.execute("SELECT * FROM memories WHERE key = ?", (key,)).fetchone()
        if row is not None:
            conn.execute("UPDATE memories SET lastAccessed = ? WHERE key = ?", (now, key))
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    if row is None:
        return None
    item = row_to_item(row)
    item.last_accessed = now
    return item


def update(conn: sqlite3.Connection, key: str, value: str) -> bool:
    """Replace the value of an existing key. Never creates a row."""
    now = now_iso()
    cur = conn.execute(
        "UPDATE memories SET value = ?, timestamp = ?, lastAccessed = ? WHERE key = ?",
        (value, now, now, key),
    )
    conn.commit()
    return cur.rowcount > 0


def delete(conn: sqlite3.Connection, key: str) -> bool:
    """Delete *key* and every relation that names it as source or target.

    Both deletes run in one transaction; a failure rolls back the cascade.
    """
    with conn:
        conn.execute(
            "DELETE FROM memory_relations WHERE sourceKey = ? OR targetKey = ?",
            (key, key),
        )
        cur = conn.execute("DELETE FROM memories WHERE key = ?", (key,))
    return cur.rowcount > 0


def list_memories(
    conn: sqlite3.Connection, category: Optional[str] = None
) -> List[MemoryItem]:
    if category:
        rows = conn.execute(
            "SELECT * FROM memories WHERE category = ? ORDER BY priority DESC, timestamp DESC",
            (category,),
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM memories ORDER BY priority DESC, timestamp DESC"
        ).fetchall()
    return [row_to_item(row) for row in rows]


def search(conn: sqlite3.Connection, query: str) -> List[MemoryItem]:
    """Substring search over key and value.

    An empty query matches every row.
    """
    pattern = like_pattern(query)
    rows = conn.execute(
        f"SELECT * FROM memories WHERE {MATCH_CLAUSE} ORDER BY priority DESC, timestamp DESC",
        (pattern, pattern),
    ).fetchall()
    return [row_to_item(row) for row in rows]


def get_by_priority(conn: sqlite3.Connection, priority: int) -> List[MemoryItem]:
    rows = conn.execute(
        "SELECT * FROM memories WHERE priority = ? ORDER BY timestamp DESC",
        (priority,),
    ).fetchall()
    return [row_to_item(row) for row in rows]


def set_priority(conn: sqlite3.Connection, key: str, priority: int) -> bool:
    cur = conn.execute("UPDATE memories SET priority = ? WHERE key = ?", (priority, key))
    conn.commit()
    return cur.rowcount > 0


def get_stats(conn: sqlite3.Connection) -> Dict[str, Any]:
    """Count memories overall and per category."""
    rows = conn.execute(
        "SELECT category, COUNT(*) AS count FROM memories GROUP BY category"
    ).fetchall()
    by_category = {row["category"]: row["count"] for row in rows}
    return {"total": sum(by_category.values()), "byCategory": by_category}


def get_timeline(
    conn: sqlite3.Connection,
    start: Optional[str] = None,
    end: Optional[str] = None,
    limit: int = 50,
) -> List[MemoryItem]:
    """Memories whose timestamp lies in [start, end], newest first."""
    sql = "SELECT * FROM memories WHERE 1=1"
    params: List[Any] = []
    if start:
        sql += " AND timestamp >= ?"
        params.append(start)
    if end:
        sql += " AND timestamp <= ?"
        params.append(end)
    sql += " ORDER BY timestamp DESC LIMIT ?"
    params.append(limit)
    return [row_to_item(row) for row in conn.execute(sql, params).fetchall()]


# ---------------------------------------------------------------------------
# Bulk export / import
# ---------------------------------------------------------------------------


def export_memories(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    """Every row in the legacy JSON record shape, oldest first."""
    rows = conn.execute("SELECT * FROM memories ORDER BY timestamp, key").fetchall()
    return [row_to_item(row).to_dict() for row in rows]


def import_memories(
    conn: sqlite3.Connection, records: Iterable[Mapping[str, Any]]
) -> int:
    """Upsert legacy records in a single transaction.

    Missing categories become ``general``, missing priorities 0 and missing
    timestamps now. Any failure rolls the whole batch back and propagates.
    """
    now = now_iso()
    params = []
    for record in records:
        timestamp = record.get("timestamp") or now
        params.append(
            (
                record["key"],
                record["value"],
                record.get("category") or DEFAULT_CATEGORY,
                timestamp,
                record.get("lastAccessed") or timestamp,
                record.get("priority") or 0,
            )
        )
    if not params:
        return 0
    with conn:
        conn.executemany(
            """
            INSERT OR REPLACE INTO memories (key, value, category, timestamp, lastAccessed, priority)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            params,
        )
    logger.debug("Imported %d memory records", len(params))
    return len(params)

"""One-time import of the legacy ``memories.json`` file into SQLite."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Optional

from .storage import import_memories

logger = logging.getLogger(__name__)

LEGACY_FILENAME = "memories.json"
BACKUP_SUFFIX = ".backup"


def migrate_legacy_json(
    conn: sqlite3.Connection,
    db_path: Path,
    legacy_filename: str = LEGACY_FILENAME,
) -> Optional[int]:
    """Import the legacy JSON array sitting next to *db_path*, if any.

    On success the file is renamed with a ``.backup`` suffix so later opens
    skip it. Any failure is logged and swallowed; the file stays in place
    for the next attempt.

    Returns:
        Number of imported records, or None when nothing was migrated.
    """
    json_path = Path(db_path).parent / legacy_filename
    if not json_path.exists():
        return None

    try:
        records = json.loads(json_path.read_text(encoding="utf-8"))
        if not isinstance(records, list) or not records:
            return None
        imported = import_memories(conn, records)
        json_path.rename(json_path.with_name(json_path.name + BACKUP_SUFFIX))
    except Exception as exc:
        logger.debug("Legacy memory migration from %s failed: %s", json_path, exc)
        return None

    logger.info("Migrated %d memories from %s", imported, json_path)
    return imported

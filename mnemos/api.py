"""Caller-facing operations: one function per store operation.

Each function takes an optional ``project_path`` (the default handle is
used when it is omitted) and returns JSON-ready values. Missing keys and
unreachable paths come back as ``None`` or ``False``; only failures to open
the store raise.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from . import prioritize
from .manager import get_manager
from .storage import DEFAULT_CATEGORY
from .timeline import build_timeline


def save_memory(
    key: str,
    value: str,
    category: str = DEFAULT_CATEGORY,
    priority: int = 0,
    project_path: Optional[str] = None,
) -> Dict[str, Any]:
    return get_manager(project_path).save(key, value, category, priority).to_dict()


def recall_memory(key: str, project_path: Optional[str] = None) -> Optional[Dict[str, Any]]:
    item = get_manager(project_path).recall(key)
    return item.to_dict() if item else None


def update_memory(key: str, value: str, project_path: Optional[str] = None) -> bool:
    return get_manager(project_path).update(key, value)


def delete_memory(key: str, project_path: Optional[str] = None) -> bool:
    return get_manager(project_path).delete(key)


def list_memories(
    category: Optional[str] = None, project_path: Optional[str] = None
) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in get_manager(project_path).list(category)]


def search_memories(query: str, project_path: Optional[str] = None) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in get_manager(project_path).search(query)]


def search_memories_advanced(
    query: str,
    strategy: str = "keyword",
    limit: Optional[int] = None,
    category: Optional[str] = None,
    start_key: Optional[str] = None,
    depth: Optional[int] = None,
    relation_type: Optional[str] = None,
    project_path: Optional[str] = None,
) -> List[Dict[str, Any]]:
    items = get_manager(project_path).search_advanced(
        query,
        strategy,
        limit=limit,
        category=category,
        start_key=start_key,
        depth=depth,
        relation_type=relation_type,
    )
    return [item.to_dict() for item in items]


def get_memories_by_priority(
    priority: int, project_path: Optional[str] = None
) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in get_manager(project_path).get_by_priority(priority)]


def set_memory_priority(key: str, priority: int, project_path: Optional[str] = None) -> bool:
    return get_manager(project_path).set_priority(key, priority)


def get_memory_stats(project_path: Optional[str] = None) -> Dict[str, Any]:
    return get_manager(project_path).get_stats()


def get_memory_timeline(
    start: Optional[str] = None,
    end: Optional[str] = None,
    limit: Optional[int] = None,
    project_path: Optional[str] = None,
) -> List[Dict[str, Any]]:
    items = get_manager(project_path).get_timeline(start, end, limit)
    return [item.to_dict() for item in items]


def link_memories(
    source_key: str,
    target_key: str,
    relation_type: str,
    strength: float = 1.0,
    metadata: Optional[Dict[str, Any]] = None,
    project_path: Optional[str] = None,
) -> bool:
    return get_manager(project_path).link_memories(
        source_key, target_key, relation_type, strength, metadata
    )


def get_relations(
    key: str, direction: str = "both", project_path: Optional[str] = None
) -> List[Dict[str, Any]]:
    return [rel.to_dict() for rel in get_manager(project_path).get_relations(key, direction)]


def get_related_memories(
    key: str,
    depth: int = 1,
    relation_type: Optional[str] = None,
    project_path: Optional[str] = None,
) -> List[Dict[str, Any]]:
    items = get_manager(project_path).get_related_memories(key, depth, relation_type)
    return [item.to_dict() for item in items]


def get_memory_graph(
    key: Optional[str] = None, depth: Optional[int] = None, project_path: Optional[str] = None
) -> Dict[str, Any]:
    return get_manager(project_path).get_memory_graph(key, depth).to_dict()


def find_path(
    source_key: str, target_key: str, project_path: Optional[str] = None
) -> Optional[List[str]]:
    return get_manager(project_path).find_path(source_key, target_key)


def unlink_memories(
    source_key: str,
    target_key: str,
    relation_type: Optional[str] = None,
    project_path: Optional[str] = None,
) -> bool:
    return get_manager(project_path).unlink_memories(source_key, target_key, relation_type)


def create_memory_timeline(
    start: Optional[str] = None,
    end: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = 20,
    group_by: str = "day",
    project_path: Optional[str] = None,
) -> Dict[str, Any]:
    """Grouped timeline with summary stats, see :func:`timeline.build_timeline`."""
    return build_timeline(get_manager(project_path), start, end, category, limit, group_by)


def prioritize_memories(
    current_task: str,
    critical_decisions: Sequence[str] = (),
    code_changes: Sequence[str] = (),
    blockers: Sequence[str] = (),
    project_path: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Re-score memories for *current_task* and persist the new priorities."""
    selected = prioritize.prioritize_memories(
        get_manager(project_path), current_task, critical_decisions, code_changes, blockers
    )
    return [scored.to_dict() for scored in selected]

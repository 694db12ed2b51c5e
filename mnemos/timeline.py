"""Chronological views over stored memories, grouped by period or category."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from .storage import MemoryItem

if TYPE_CHECKING:
    from .manager import MemoryManager

GROUP_BY_CHOICES = ("day", "week", "month", "category")


def _parse_timestamp(timestamp: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None


def _group_label(item: MemoryItem, group_by: str) -> str:
    if group_by == "category":
        return item.category
    if group_by == "month":
        return item.timestamp[:7]
    if group_by == "day":
        return item.timestamp[:10]

    # Weeks start on Sunday
    parsed = _parse_timestamp(item.timestamp)
    if parsed is None:
        return item.timestamp[:10]
    week_start = parsed - timedelta(days=(parsed.weekday() + 1) % 7)
    return week_start.date().isoformat()


def group_timeline(
    items: Sequence[MemoryItem], group_by: str = "day"
) -> Dict[str, List[MemoryItem]]:
    """Group *items* by period or category, keeping their order.

    Groups appear in the order their first item appears. An unknown
    *group_by* groups by day.
    """
    if group_by not in GROUP_BY_CHOICES:
        group_by = "day"
    grouped: Dict[str, List[MemoryItem]] = {}
    for item in items:
        grouped.setdefault(_group_label(item, group_by), []).append(item)
    return grouped


def timeline_stats(items: Sequence[MemoryItem]) -> Dict[str, Any]:
    """Summary numbers for a timeline.

    ``averagePriority`` only counts items with a non-zero priority and is
    None when there are none.
    """
    by_category = Counter(item.category for item in items)
    prioritized = [item.priority for item in items if item.priority]
    timestamps = sorted(item.timestamp for item in items)
    return {
        "total": len(items),
        "byCategory": dict(by_category.most_common()),
        "oldest": timestamps[0] if timestamps else None,
        "newest": timestamps[-1] if timestamps else None,
        "averagePriority": (
            round(sum(prioritized) / len(prioritized), 1) if prioritized else None
        ),
    }


def build_timeline(
    manager: "MemoryManager",
    start: Optional[str] = None,
    end: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = 20,
    group_by: str = "day",
) -> Dict[str, Any]:
    """Fetch, filter and group a timeline in one call.

    The category filter runs after *limit* is applied, so a filtered
    timeline can hold fewer than *limit* items even when more exist.
    """
    items = manager.get_timeline(start, end, limit)
    if category:
        items = [item for item in items if item.category == category]

    groups = group_timeline(items, group_by)
    return {
        "filters": {"start": start, "end": end, "category": category},
        "groupBy": group_by,
        "groups": [
            {"label": label, "memories": [item.to_dict() for item in members]}
            for label, members in groups.items()
        ],
        "stats": timeline_stats(items),
    }

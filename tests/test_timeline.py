"""Tests for timeline grouping and summaries."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from mnemos.config import MemoryConfig
from mnemos.manager import MemoryManager
from mnemos.storage import MemoryItem
from mnemos.timeline import build_timeline, group_timeline, timeline_stats


def _item(key, timestamp, category="general", priority=0):
    return MemoryItem(key, key, category, priority, timestamp, timestamp)


class TestGroupTimeline:
    """group_timeline()."""

    def test_by_day(self):
        items = [
            _item("a", "2024-03-02T10:00:00.000Z"),
            _item("b", "2024-03-02T08:00:00.000Z"),
            _item("c", "2024-03-01T23:00:00.000Z"),
        ]
        grouped = group_timeline(items, "day")
        assert list(grouped) == ["2024-03-02", "2024-03-01"]
        assert [i.key for i in grouped["2024-03-02"]] == ["a", "b"]

    def test_by_week_starts_sunday(self):
        items = [
            _item("wed", "2024-01-10T12:00:00.000Z"),
            _item("sun", "2024-01-07T00:00:00.000Z"),
            _item("sat", "2024-01-06T12:00:00.000Z"),
        ]
        grouped = group_timeline(items, "week")
        assert {k: [i.key for i in v] for k, v in grouped.items()} == {
            "2024-01-07": ["wed", "sun"],
            "2023-12-31": ["sat"],
        }

    def test_by_month_and_category(self):
        items = [
            _item("a", "2024-02-10T00:00:00.000Z", "api"),
            _item("b", "2024-01-10T00:00:00.000Z", "ops"),
            _item("c", "2024-01-05T00:00:00.000Z", "api"),
        ]
        assert list(group_timeline(items, "month")) == ["2024-02", "2024-01"]
        by_category = group_timeline(items, "category")
        assert [i.key for i in by_category["api"]] == ["a", "c"]

    def test_unknown_group_by_is_day(self):
        items = [
            _item("a", "2024-03-02T10:00:00.000Z"),
            _item("b", "2024-03-01T08:00:00.000Z"),
        ]
        assert group_timeline(items, "year") == group_timeline(items, "day")


class TestTimelineStats:
    """timeline_stats()."""

    def test_stats(self):
        items = [
            _item("a", "2024-02-10T00:00:00.000Z", "api", 3),
            _item("b", "2024-01-10T00:00:00.000Z", "ops", 0),
            _item("c", "2024-01-05T00:00:00.000Z", "api", 4),
        ]
        stats = timeline_stats(items)
        assert stats["total"] == 3
        assert stats["byCategory"] == {"api": 2, "ops": 1}
        assert stats["oldest"] == "2024-01-05T00:00:00.000Z"
        assert stats["newest"] == "2024-02-10T00:00:00.000Z"
        assert stats["averagePriority"] == 3.5

    def test_empty(self):
        stats = timeline_stats([])
        assert stats["total"] == 0
        assert stats["oldest"] is None
        assert stats["averagePriority"] is None


class TestBuildTimeline:
    """build_timeline() against a real store."""

    @pytest.fixture
    def mgr(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with MemoryManager(Path(tmpdir), config=MemoryConfig()) as manager:
                for key, ts, category in [
                    ("a", "2024-01-01T00:00:00.000Z", "api"),
                    ("b", "2024-01-02T00:00:00.000Z", "ops"),
                    ("c", "2024-01-03T00:00:00.000Z", "ops"),
                ]:
                    manager.save(key, key, category)
                    manager.conn.execute(
                        "UPDATE memories SET timestamp = ? WHERE key = ?", (ts, key)
                    )
                manager.conn.commit()
                yield manager

    def test_payload_shape(self, mgr):
        result = build_timeline(mgr, group_by="day")
        assert result["groupBy"] == "day"
        assert result["filters"] == {"start": None, "end": None, "category": None}
        assert [g["label"] for g in result["groups"]] == [
            "2024-01-03", "2024-01-02", "2024-01-01"
        ]
        assert result["groups"][0]["memories"][0]["key"] == "c"
        assert result["stats"]["total"] == 3

    def test_category_filter_applies_after_limit(self, mgr):
        result = build_timeline(mgr, category="api", limit=2)
        assert result["groups"] == []
        assert result["stats"]["total"] == 0

    def test_range(self, mgr):
        result = build_timeline(
            mgr, start="2024-01-02T00:00:00.000Z", group_by="category"
        )
        assert [g["label"] for g in result["groups"]] == ["ops"]

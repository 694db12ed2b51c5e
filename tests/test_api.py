"""Tests for the caller-facing API functions."""

from __future__ import annotations

import tempfile

import pytest

from mnemos import api
from mnemos.manager import reset_manager


@pytest.fixture
def project(monkeypatch):
    """A fresh project directory with clean registry state."""
    for name in ("MNEMOS_PROJECT_DIR", "MNEMOS_MEMORY_DIR", "MNEMOS_STORAGE_URI"):
        monkeypatch.delenv(name, raising=False)
    reset_manager()
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir
        reset_manager()


class TestItemFunctions:

    def test_save_and_recall(self, project):
        saved = api.save_memory("k", "v", "cat", 3, project_path=project)
        assert saved["key"] == "k"
        assert saved["category"] == "cat"
        recalled = api.recall_memory("k", project_path=project)
        assert recalled["value"] == "v"
        assert set(recalled) == {
            "key", "value", "category", "priority", "timestamp", "lastAccessed"
        }

    def test_missing_key_results(self, project):
        assert api.recall_memory("nope", project_path=project) is None
        assert api.update_memory("nope", "v", project_path=project) is False
        assert api.delete_memory("nope", project_path=project) is False
        assert api.set_memory_priority("nope", 1, project_path=project) is False

    def test_listing_and_search(self, project):
        api.save_memory("a", "alpha", "x", 1, project_path=project)
        api.save_memory("b", "beta", "y", 2, project_path=project)
        assert [m["key"] for m in api.list_memories(project_path=project)] == ["b", "a"]
        assert [m["key"] for m in api.list_memories("x", project_path=project)] == ["a"]
        assert [m["key"] for m in api.search_memories("alp", project_path=project)] == ["a"]
        assert [m["key"] for m in api.get_memories_by_priority(2, project_path=project)] == ["b"]
        assert api.get_memory_stats(project_path=project)["total"] == 2
        assert len(api.get_memory_timeline(limit=1, project_path=project)) == 1

    def test_advanced_search(self, project):
        api.save_memory("a", "shared", project_path=project)
        api.save_memory("b", "shared", project_path=project)
        api.link_memories("a", "b", "t", project_path=project)
        related = api.search_memories_advanced(
            "", "graph_traversal", start_key="a", project_path=project
        )
        assert [m["key"] for m in related] == ["b"]
        assert len(api.search_memories_advanced("shared", limit=1, project_path=project)) == 1


class TestRelationFunctions:

    def test_graph_functions(self, project):
        for key in ("a", "b", "c"):
            api.save_memory(key, key, project_path=project)
        assert api.link_memories("a", "b", "uses", 0.5, {"n": 1}, project_path=project)
        assert api.link_memories("b", "c", "uses", project_path=project)

        [rel] = api.get_relations("a", project_path=project)
        assert rel == {
            "sourceKey": "a",
            "targetKey": "b",
            "relationType": "uses",
            "strength": 0.5,
            "timestamp": rel["timestamp"],
            "metadata": {"n": 1},
        }
        assert [m["key"] for m in api.get_related_memories("a", 2, project_path=project)] == [
            "b", "c"
        ]
        assert api.find_path("a", "c", project_path=project) == ["a", "b", "c"]

        graph = api.get_memory_graph(project_path=project)
        assert len(graph["nodes"]) == 3
        assert graph["clusters"][0] and sorted(graph["clusters"][0]) == ["a", "b", "c"]

        assert api.unlink_memories("a", "b", project_path=project) is True
        assert api.find_path("a", "c", project_path=project) is None

    def test_same_handle_reused(self, project):
        api.save_memory("a", "1", project_path=project)
        api.save_memory("b", "2", project_path=project)
        assert api.get_memory_stats(project_path=project)["total"] == 2

    def test_unknown_direction_returns_both(self, project):
        api.link_memories("a", "b", "t", project_path=project)
        api.link_memories("c", "a", "t", project_path=project)
        sideways = api.get_relations("a", "sideways", project_path=project)
        assert sideways == api.get_relations("a", "both", project_path=project)
        assert len(sideways) == 2


class TestTimelineAndPriorities:

    def test_create_memory_timeline(self, project):
        api.save_memory("a", "one", "api", project_path=project)
        api.save_memory("b", "two", "ops", 4, project_path=project)
        result = api.create_memory_timeline(group_by="category", project_path=project)
        assert result["groupBy"] == "category"
        assert {g["label"] for g in result["groups"]} == {"api", "ops"}
        assert result["stats"]["total"] == 2
        assert result["stats"]["averagePriority"] == 4.0

        filtered = api.create_memory_timeline(category="ops", project_path=project)
        assert [m["key"] for g in filtered["groups"] for m in g["memories"]] == ["b"]

    def test_prioritize_memories(self, project):
        api.save_memory("err", "Error: build broke", project_path=project)
        api.save_memory("chat", "small talk", project_path=project)
        result = api.prioritize_memories("build", project_path=project)
        assert [r["memory"]["key"] for r in result] == ["err"]
        assert result[0]["priority"] == 100
        assert result[0]["reason"] == "error info +task"
        assert api.recall_memory("err", project_path=project)["priority"] == 100
        assert api.recall_memory("chat", project_path=project)["priority"] == 0

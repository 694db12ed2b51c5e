"""Tests for MemoryManager and the handle registry."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path

import pytest

from mnemos import manager as manager_module
from mnemos.config import MemoryConfig
from mnemos.manager import MemoryManager, get_manager, reset_manager


@pytest.fixture(autouse=True)
def clean_registry(monkeypatch):
    """Isolate each test from registry state and MNEMOS_* variables."""
    for name in (
        "MNEMOS_PROJECT_DIR",
        "MNEMOS_MEMORY_DIR",
        "MNEMOS_STORAGE_URI",
        "MNEMOS_BUSY_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_manager()
    yield
    reset_manager()


@pytest.fixture
def project():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestMemoryManager:
    """Opening a store and delegating operations."""

    def test_creates_database_under_project(self, project):
        with MemoryManager(project) as mgr:
            assert mgr.db_path == project.resolve() / ".mnemos" / "memories" / "memories.db"
            assert mgr.db_path.exists()

    def test_round_trip_through_manager(self, project):
        with MemoryManager(project) as mgr:
            mgr.save("k", "v", "cat", 2)
            mgr.link_memories("k", "other", "mentions")
            assert mgr.recall("k").value == "v"
            assert mgr.get_stats() == {"total": 1, "byCategory": {"cat": 1}}
            assert len(mgr.get_relations("k")) == 1
            assert mgr.find_path("k", "other") == ["k", "other"]

    def test_data_persists_across_handles(self, project):
        with MemoryManager(project) as mgr:
            mgr.save("k", "v")
        with MemoryManager(project) as mgr:
            assert mgr.recall("k").value == "v"

    def test_close_is_idempotent(self, project):
        mgr = MemoryManager(project)
        mgr.close()
        mgr.close()
        assert mgr.closed

    def test_config_memory_dir(self, project):
        config = MemoryConfig(memory_dir="store", db_filename="m.db")
        with MemoryManager(project, config=config) as mgr:
            assert mgr.db_path == project.resolve() / "store" / "m.db"

    def test_storage_uri_overrides_memory_dir(self, project):
        target = project / "elsewhere" / "x.db"
        config = MemoryConfig(storage_uri=f"file://{target}")
        with MemoryManager(project, config=config) as mgr:
            assert mgr.db_path == target
            assert target.exists()

    def test_unreachable_directory_raises(self, project):
        blocker = project / "blocker"
        blocker.write_text("not a directory")
        config = MemoryConfig(memory_dir="blocker/memories")
        with pytest.raises(OSError):
            MemoryManager(project, config=config)

    def test_defaults_come_from_config(self, project):
        config = MemoryConfig(search_limit=1, timeline_limit=2, graph_depth=1)
        with MemoryManager(project, config=config) as mgr:
            for key in ("a", "b", "c"):
                mgr.save(key, "shared")
            mgr.link_memories("a", "b", "t")
            mgr.link_memories("b", "c", "t")
            assert len(mgr.search_advanced("shared")) == 1
            assert len(mgr.get_timeline()) == 2
            assert {n.key for n in mgr.get_memory_graph("a").nodes} == {"a", "b"}

    def test_migrates_legacy_json_on_open(self, project):
        memory_dir = project / ".mnemos" / "memories"
        memory_dir.mkdir(parents=True)
        (memory_dir / "memories.json").write_text(
            json.dumps([{"key": "old", "value": "from json"}])
        )
        with MemoryManager(project) as mgr:
            assert mgr.recall("old").value == "from json"
        assert not (memory_dir / "memories.json").exists()
        assert (memory_dir / "memories.json.backup").exists()


class TestRegistry:
    """get_manager() / reset_manager()."""

    def test_same_path_same_handle(self, project):
        assert get_manager(str(project)) is get_manager(str(project))

    def test_path_is_resolved(self, project):
        nested = project / "sub"
        nested.mkdir()
        assert get_manager(str(nested / "..")) is get_manager(str(project))

    def test_default_handle_is_separate(self, project, monkeypatch):
        monkeypatch.setenv("MNEMOS_PROJECT_DIR", str(project))
        default = get_manager()
        explicit = get_manager(str(project))
        assert default is not explicit
        assert default is get_manager()
        assert default.project_root == explicit.project_root

    def test_default_from_cwd_with_memory_dir(self, project, monkeypatch):
        (project / ".mnemos" / "memories").mkdir(parents=True)
        monkeypatch.chdir(project)
        assert get_manager().project_root == project.resolve()

    def test_default_without_project_raises(self, project, monkeypatch):
        monkeypatch.chdir(project)
        with pytest.raises(ValueError):
            get_manager()

    def test_reset_one_path(self, project):
        first = get_manager(str(project))
        reset_manager(str(project))
        assert first.closed
        second = get_manager(str(project))
        assert second is not first
        assert not second.closed

    def test_reset_all(self, project, monkeypatch):
        monkeypatch.setenv("MNEMOS_PROJECT_DIR", str(project))
        default = get_manager()
        explicit = get_manager(str(project))
        reset_manager()
        assert default.closed
        assert explicit.closed
        assert manager_module._instances == {}
        assert manager_module._default_instance is None

    def test_closed_handle_is_replaced(self, project):
        first = get_manager(str(project))
        first.close()
        assert get_manager(str(project)) is not first

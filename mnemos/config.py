"""Configuration loading from environment variables and ``.mnemos.yaml``."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

CONFIG_FILENAME = ".mnemos.yaml"

# Environment variable naming the project whose store the default handle opens
PROJECT_DIR_ENV = "MNEMOS_PROJECT_DIR"


@dataclass
class MemoryConfig:
    """Settings for one project's memory store."""

    memory_dir: str = ".mnemos/memories"  # relative to the project root
    db_filename: str = "memories.db"
    legacy_filename: str = "memories.json"
    storage_uri: Optional[str] = None
    busy_timeout_ms: int = 5000
    search_limit: int = 20
    graph_depth: int = 2
    timeline_limit: int = 50
    graph_host: str = "127.0.0.1"
    graph_port: int = 8765
    log_level: str = "INFO"

    def memory_path(self, project_root: Path) -> Path:
        path = Path(os.path.expanduser(os.path.expandvars(self.memory_dir)))
        if path.is_absolute():
            return path
        return project_root / path

    def db_path(self, project_root: Path) -> Path:
        return self.memory_path(project_root) / self.db_filename


def _read_config_file(path: Path) -> Dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping, got {type(data).__name__}")
    known = {f.name for f in fields(MemoryConfig)}
    return {k: v for k, v in data.items() if k in known}


def load_config(project_root: Optional[Path] = None) -> MemoryConfig:
    """Load configuration for a project.

    Priority: environment variables > ``<project>/.mnemos.yaml`` > defaults.
    """
    file_data: Dict[str, Any] = {}
    if project_root is not None:
        candidate = Path(project_root) / CONFIG_FILENAME
        if candidate.is_file():
            file_data = _read_config_file(candidate)

    config = MemoryConfig(**file_data)

    config.memory_dir = os.getenv("MNEMOS_MEMORY_DIR", config.memory_dir)
    config.storage_uri = os.getenv("MNEMOS_STORAGE_URI", config.storage_uri)
    config.busy_timeout_ms = int(os.getenv("MNEMOS_BUSY_TIMEOUT", config.busy_timeout_ms))
    config.graph_host = os.getenv("MNEMOS_GRAPH_HOST", config.graph_host)
    config.graph_port = int(os.getenv("MNEMOS_GRAPH_PORT", config.graph_port))
    config.log_level = os.getenv("MNEMOS_LOG_LEVEL", config.log_level)
    return config


def resolve_project_root(project_path: Optional[str] = None) -> Path:
    """Resolve the project directory a store belongs to.

    An explicit path wins, then ``MNEMOS_PROJECT_DIR``, then the current
    directory when it already holds a memory directory.
    """
    if project_path:
        return Path(project_path).expanduser().resolve()

    env_dir = os.getenv(PROJECT_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser().resolve()

    cwd = Path.cwd()
    if load_config(cwd).memory_path(cwd).is_dir():
        return cwd.resolve()

    raise ValueError(
        f"No project path found. Pass project_path or set {PROJECT_DIR_ENV}."
    )

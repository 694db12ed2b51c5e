"""Graph viewer HTTP API for a project's memory store."""

from .data import get_change_marker, get_graph_data, get_memory_for_api

__all__ = ["get_change_marker", "get_graph_data", "get_memory_for_api"]

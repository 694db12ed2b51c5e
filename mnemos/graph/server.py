"""HTTP server and routes for graph visualization."""

import asyncio
import logging
import socket
import sys
import threading
from importlib.metadata import PackageNotFoundError, version as get_version
from typing import Optional

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from sse_starlette.sse import EventSourceResponse

from ..config import load_config, resolve_project_root
from ..manager import MemoryManager
from .data import get_change_marker, get_graph_data, get_memory_for_api


logger = logging.getLogger(__name__)

EVENT_POLL_SECONDS = 2.0
MAX_PAGE_SIZE = 200


def _get_mnemos_version() -> str:
    try:
        return get_version("mnemos")
    except PackageNotFoundError as exc:
        logger.debug("Unable to read mnemos package version: %s", exc)
        return ""


def _normalize_host_for_connect(host: str) -> str:
    """Convert wildcard bind addresses to connectable localhost."""
    if host in ("0.0.0.0", "::", ""):
        return "127.0.0.1"
    return host


def _check_port_status(host: str, port: int) -> str:
    """Check port status and identify what's running.

    Returns:
        "free" - port is available
        "mnemos" - our graph server is running
        "other" - something else is using the port
    """
    connect_host = _normalize_host_for_connect(host)

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.settimeout(1)
        try:
            s.connect((connect_host, port))
        except (OSError, socket.timeout):
            return "free"

    # Port is in use - verify it's our graph server
    try:
        import urllib.request
        url = f"http://{connect_host}:{port}/api/graph"
        with urllib.request.urlopen(url, timeout=2) as resp:
            data = resp.read().decode()
            if '"nodes"' in data and '"clusters"' in data:
                return "mnemos"
    except Exception as exc:
        logger.debug("Port %s probe could not verify mnemos server: %s", port, exc)

    return "other"


def _int_param(request: Request, name: str, default: int) -> int:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    return int(raw)


def create_app(manager: MemoryManager, poll_seconds: float = EVENT_POLL_SECONDS) -> Starlette:
    """Build the Starlette app serving graph data for one project.

    Routes:
    - /api/graph: graph around ``key`` (whole store when omitted)
    - /api/memories: paginated memory list, optional ``category``
    - /api/memories/{key}: one memory with its relations
    - /api/path: shortest path between ``source`` and ``target``
    - /api/stats: counts per category
    - /api/events: SSE stream announcing store changes
    """

    async def api_graph(request: Request):
        """API endpoint: Get graph nodes, edges and clusters."""
        try:
            key = request.query_params.get("key") or None
            depth = _int_param(request, "depth", manager.config.graph_depth)
        except ValueError:
            return JSONResponse({"error": "invalid_depth"}, status_code=400)
        try:
            return JSONResponse(get_graph_data(manager, key, depth))
        except Exception as e:
            logger.exception("Graph API request failed: %s", e)
            return JSONResponse({"error": str(e)}, status_code=500)

    async def api_memories_list(request: Request):
        """API endpoint: Get memories in store order with pagination."""
        try:
            limit = max(1, min(_int_param(request, "limit", 50), MAX_PAGE_SIZE))
            offset = max(0, _int_param(request, "offset", 0))
        except ValueError:
            return JSONResponse({"error": "invalid_pagination"}, status_code=400)
        try:
            category = request.query_params.get("category") or None
            items = manager.list(category)
            return JSONResponse({
                "memories": [item.to_dict() for item in items[offset:offset + limit]],
                "total": len(items),
                "limit": limit,
                "offset": offset,
            })
        except Exception as e:
            logger.exception("Graph memories list API request failed: %s", e)
            return JSONResponse({"error": str(e)}, status_code=500)

    async def api_memory(request: Request):
        """API endpoint: Get a single memory by key."""
        try:
            result = get_memory_for_api(manager, request.path_params["key"])
            if result.get("error") == "not_found":
                return JSONResponse(result, status_code=404)
            return JSONResponse(result)
        except Exception as e:
            logger.exception("Graph memory API request failed: %s", e)
            return JSONResponse({"error": str(e)}, status_code=500)

    async def api_path(request: Request):
        """API endpoint: Shortest path between two keys."""
        source = request.query_params.get("source")
        target = request.query_params.get("target")
        if not source or not target:
            return JSONResponse({"error": "source_and_target_required"}, status_code=400)
        try:
            path = manager.find_path(source, target)
            return JSONResponse({"source": source, "target": target, "path": path})
        except Exception as e:
            logger.exception("Graph path API request failed: %s", e)
            return JSONResponse({"error": str(e)}, status_code=500)

    async def api_stats(request: Request):
        """API endpoint: Memory counts per category."""
        try:
            return JSONResponse(manager.get_stats())
        except Exception as e:
            logger.exception("Graph stats API request failed: %s", e)
            return JSONResponse({"error": str(e)}, status_code=500)

    async def graph_events(request: Request):
        """SSE endpoint for graph update notifications."""
        async def event_generator():
            last_marker = None
            while True:
                try:
                    marker = get_change_marker(manager)
                    if last_marker is not None and marker != last_marker:
                        yield {"event": "graph-updated", "data": "refresh"}
                    last_marker = marker
                except Exception:
                    logger.debug("SSE graph change poll failed", exc_info=True)

                await asyncio.sleep(poll_seconds)

        return EventSourceResponse(event_generator())

    return Starlette(
        routes=[
            Route("/api/graph", api_graph),
            Route("/api/memories", api_memories_list),
            Route("/api/memories/{key:path}", api_memory),
            Route("/api/path", api_path),
            Route("/api/stats", api_stats),
            Route("/api/events", graph_events),
        ]
    )


def start_graph_server(
    project_path: Optional[str] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> Optional[threading.Thread]:
    """Start background HTTP server for graph visualization.

    The server gets its own store handle, opened for use from the server
    thread. Returns the server thread, or None when the port is taken.
    """
    root = resolve_project_root(project_path)
    config = load_config(root)
    host = host or config.graph_host
    port = port or config.graph_port

    port_status = _check_port_status(host, port)
    if port_status == "mnemos":
        print(f"Graph server already running on port {port}, reusing existing", file=sys.stderr)
        return None
    elif port_status == "other":
        print(f"Port {port} is in use by another service, skipping graph server", file=sys.stderr)
        return None

    manager = MemoryManager(root, config=config, check_same_thread=False)
    app = create_app(manager)

    def run_server():
        import uvicorn

        server_config = uvicorn.Config(app, host=host, port=port, log_level="warning")
        server = uvicorn.Server(server_config)
        try:
            server.run()
        finally:
            manager.close()

    thread = threading.Thread(target=run_server, daemon=True)
    thread.start()

    version = _get_mnemos_version() or "dev"
    print(
        f"mnemos {version} graph API for {root} at http://{host}:{port}/api/graph",
        file=sys.stderr,
    )
    return thread

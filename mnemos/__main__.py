"""Command line helpers: export/import a project's memories, show stats, serve the graph API."""

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import load_config, resolve_project_root
from .manager import MemoryManager
from .storage import import_memories


def cmd_export(args: argparse.Namespace) -> None:
    with MemoryManager(args.project) as manager:
        records = manager.export()
    payload = json.dumps(records, ensure_ascii=False, indent=2)
    if args.output:
        Path(args.output).write_text(payload + "\n", encoding="utf-8")
        print(f"Exported {len(records)} memories to {args.output}", file=sys.stderr)
    else:
        print(payload)


def cmd_import(args: argparse.Namespace) -> None:
    records = json.loads(Path(args.input).read_text(encoding="utf-8"))
    if not isinstance(records, list):
        raise SystemExit(f"{args.input} must contain a JSON array of memory records")
    with MemoryManager(args.project) as manager:
        imported = import_memories(manager.conn, records)
    print(f"Imported {imported} memories into {args.project}", file=sys.stderr)


def cmd_stats(args: argparse.Namespace) -> None:
    with MemoryManager(args.project) as manager:
        stats = manager.get_stats()
        stats["db_path"] = str(manager.db_path)
    print(json.dumps(stats, ensure_ascii=False, indent=2))


def cmd_serve(args: argparse.Namespace) -> None:
    from .graph.server import start_graph_server

    config = load_config(resolve_project_root(args.project))
    logging.basicConfig(level=config.log_level.upper())

    thread = start_graph_server(args.project, host=args.host, port=args.port)
    if thread is None:
        return
    try:
        thread.join()
    except KeyboardInterrupt:
        pass


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(prog="mnemos", description="Project memory store tools")
    parser.add_argument(
        "--project",
        type=str,
        default=".",
        help="Project directory whose memory store to open. Default: current directory.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_export = sub.add_parser("export", help="Write all memories as a JSON array")
    p_export.add_argument("-o", "--output", type=str, default=None, help="Output file. Default: stdout.")
    p_export.set_defaults(func=cmd_export)

    p_import = sub.add_parser("import", help="Upsert memories from a JSON array file")
    p_import.add_argument("input", type=str, help="JSON file in the memories.json record format")
    p_import.set_defaults(func=cmd_import)

    p_stats = sub.add_parser("stats", help="Show memory counts per category")
    p_stats.set_defaults(func=cmd_stats)

    p_serve = sub.add_parser("serve", help="Run the graph viewer HTTP API")
    p_serve.add_argument("--host", type=str, default=None, help="Bind address. Default: from config.")
    p_serve.add_argument("--port", type=int, default=None, help="Port. Default: from config.")
    p_serve.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()

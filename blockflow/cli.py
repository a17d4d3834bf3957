"""Terminal client for the blockflow editing core.

Usage:
    blockflow-cli blocks [--search TEXT]
    blockflow-cli show GRAPH_ID [--template]
    blockflow-cli run GRAPH_ID
"""

from __future__ import annotations

import asyncio
import logging
import sys
from argparse import ArgumentParser, Namespace

from dotenv import load_dotenv

from blockflow.client import Settings
from blockflow.editor import EditorSession, SyncError, UnknownBlockError
from blockflow.editor.catalog import display_name
from blockflow.editor.config import EditorSettings


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _list_blocks(session: EditorSession, args: Namespace) -> int:
    blocks = session.catalog.search(args.search) if args.search else list(session.catalog)
    for block in blocks:
        print(f"{block.id}  {display_name(block.name)}")
    print(f"\n{len(blocks)} block(s)")
    return 0


async def _show_graph(session: EditorSession, args: Namespace) -> int:
    persisted = await session.load(args.graph_id, template=args.template)
    kind = "Template" if persisted.is_template else "Graph"
    print(f"{kind} {persisted.id}: {persisted.name}")
    if persisted.description:
        print(f"  {persisted.description}")
    print(f"\nNodes ({len(session.graph.nodes)}):")
    for node in session.graph.nodes:
        pos = node.position
        print(f"  [{node.id}] {node.title}  @ ({pos['x']:.0f}, {pos['y']:.0f})")
    print(f"\nLinks ({len(session.graph.edges)}):")
    for edge in session.graph.edges:
        print(f"  {edge.source}.{edge.source_handle} → {edge.target}.{edge.target_handle}")
    return 0


async def _run_graph(session: EditorSession, args: Namespace) -> int:
    await session.load(args.graph_id)
    graph_id = await session.run()
    if graph_id is None:
        print("Run failed; see log output.", file=sys.stderr)
        return 1
    print(f"Run started for graph {graph_id}")
    return 0


_COMMANDS = {
    "blocks": _list_blocks,
    "show": _show_graph,
    "run": _run_graph,
}


async def _dispatch(args: Namespace, settings: Settings) -> int:
    try:
        async with EditorSession(settings, EditorSettings.from_env()) as session:
            return await _COMMANDS[args.command](session, args)
    except (SyncError, UnknownBlockError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="blockflow-cli",
        description="blockflow — inspect and run block graphs on an execution server",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    blocks_p = sub.add_parser("blocks", help="List the server's block catalog")
    blocks_p.add_argument("--search", default="", metavar="TEXT", help="Filter blocks by name")

    show_p = sub.add_parser("show", help="Load a graph and print its nodes and links")
    show_p.add_argument("graph_id", help="Graph (or template) id")
    show_p.add_argument("--template", action="store_true", help="Load from the template store")

    run_p = sub.add_parser("run", help="Load a graph, save it if needed, and start a run")
    run_p.add_argument("graph_id", help="Graph id")

    return parser


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s: %(message)s")

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command not in _COMMANDS:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_dispatch(args, settings)))


if __name__ == "__main__":
    main()

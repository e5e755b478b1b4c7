from __future__ import annotations

"""MindGraph Chat CLI.

Usage:
    python -m mindgraph.cli.chat_cli chat --owner alice --name Alice
    python -m mindgraph.cli.chat_cli maps --owner alice
    python -m mindgraph.cli.chat_cli generate "Space exploration" --owner alice --map <id>

The session provider is the command line: ``--owner`` and ``--name`` stand in
for the authenticated user id and display name. The chat transcript lives only
in this process.
"""

import argparse
from typing import List, Optional, Tuple

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from mindgraph.config import load_settings
from mindgraph.engine import MapLocks, TurnRequest, build_map_service, build_orchestrator
from mindgraph.errors import MindGraphError, TurnFailed
from mindgraph.graph.store import GraphStore
from mindgraph.logging_utils import get_logger
from mindgraph.vector.index import ensure_index

console = Console()


def _print_turn(result) -> None:
    console.print(f"[green]MindGraph:[/green] {result.response_text}")
    for node in result.nodes_added:
        console.print(f"  [cyan]+ node[/cyan] {node.id}: {node.label}")
    for edge in result.edges_added:
        console.print(f"  [cyan]+ edge[/cyan] {edge.source} -> {edge.target}")
    if result.center_node_id:
        console.print(f"  [dim]focus: {result.center_node_id}[/dim]")


def run_chat(
    settings,
    store,
    owner_id: str,
    display_name: Optional[str],
    map_id: Optional[str],
    locks: Optional[MapLocks] = None,
) -> int:
    orchestrator = build_orchestrator(settings, store=store, locks=locks)
    if not map_id:
        map_id = store.create(owner_id)
        console.print(f"[yellow]Started new map {map_id}[/yellow]")
    console.print("[bold green]MindGraph chat[/bold green] [dim](type 'exit' to quit)[/dim]\n")

    transcript: List[Tuple[str, str]] = []
    while True:
        user_input = Prompt.ask("[bold blue]You[/bold blue]").strip()
        if user_input.lower() in ("exit", "quit"):
            break
        if not user_input:
            continue
        transcript.append(("user", user_input))

        request = TurnRequest(
            text=user_input,
            map_id=map_id,
            owner_id=owner_id,
            owner_display_name=display_name or settings.default_display_name,
        )
        try:
            result = orchestrator.run_turn(request)
        except TurnFailed as e:
            transcript.append(("error", str(e)))
            console.print(f"[red]Sorry, that didn't work ({e.kind}). Your message was not applied.[/red]")
            continue

        transcript.append(("assistant", result.response_text))
        _print_turn(result)
    return 0


def run_maps(service, owner_id: str) -> int:
    table = Table(title=f"Mind maps for {owner_id}")
    table.add_column("Map")
    table.add_column("Title")
    table.add_column("Nodes", justify="right")
    table.add_column("Updated")
    for summary in service.list_maps(owner_id):
        table.add_row(summary.map_id, summary.title or "-", str(summary.node_count), summary.updated_at or "")
    console.print(table)
    return 0


def run_generate(service, prompt: str, owner_id: str, map_id: Optional[str], display_name: Optional[str]) -> int:
    nodes, edges = service.generate_fragment(prompt, owner_id)
    if map_id:
        merged = service.apply_fragment(map_id, owner_id, nodes, edges, display_name)
        console.print(
            f"[green]Merged into {map_id}:[/green] +{len(merged.added_node_ids)} node(s), "
            f"+{len(merged.added_edge_ids)} edge(s)"
        )
        return 0
    for node in nodes:
        console.print(f"  [cyan]node[/cyan] {node.id}: {node.label}")
    for edge in edges:
        console.print(f"  [cyan]edge[/cyan] {edge.source} -> {edge.target}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MindGraph Chat CLI")
    parser.add_argument("--profile", default="dev", help="runtime profile: dev | staging | prod")
    sub = parser.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="chat with a mind map")
    chat.add_argument("--owner", required=True)
    chat.add_argument("--name", default=None, help="display name for the anchor node")
    chat.add_argument("--map", dest="map_id", default=None, help="existing map id (new map if omitted)")

    maps = sub.add_parser("maps", help="list your maps")
    maps.add_argument("--owner", required=True)

    new = sub.add_parser("new", help="create an empty map")
    new.add_argument("--owner", required=True)
    new.add_argument("--title", default=None)

    gen = sub.add_parser("generate", help="generate a map fragment for a prompt")
    gen.add_argument("prompt")
    gen.add_argument("--owner", required=True)
    gen.add_argument("--map", dest="map_id", default=None, help="merge the fragment into this map")
    gen.add_argument("--name", default=None)

    sub.add_parser("replay-memory", help="retry memory points that failed to sync")
    sub.add_parser("init-index", help="create the pinecone index if missing")
    return parser


def main(argv=None) -> int:
    """Parse args, load settings, bootstrap logging, and dispatch."""
    args = build_parser().parse_args(argv)

    settings = load_settings(profile=args.profile)
    log = get_logger("mindgraph", log_dir=settings.log_dir, console=False)
    log.info("MindGraph CLI command=%s profile=%s", args.command, settings.profile)

    try:
        if args.command == "init-index":
            created = ensure_index(settings)
            console.print("[green]Index created.[/green]" if created else "Index already exists.")
            return 0

        # chat turns and map edits in this process serialize on the same per-map locks
        locks = MapLocks()
        with GraphStore(settings) as store:
            service = build_map_service(settings, store, locks=locks)
            if args.command == "chat":
                return run_chat(settings, store, args.owner, args.name, args.map_id, locks=locks)
            if args.command == "maps":
                return run_maps(service, args.owner)
            if args.command == "new":
                console.print(service.create_map(args.owner, title=args.title))
                return 0
            if args.command == "generate":
                return run_generate(service, args.prompt, args.owner, args.map_id, args.name)
            if args.command == "replay-memory":
                replayed, failed = service.memory_sync.replay_pending()
                console.print(f"replayed {replayed}, still failing {failed}")
                return 0 if failed == 0 else 1
    except MindGraphError as e:
        log.error("command %s failed [%s]: %s", args.command, e.kind, e)
        console.print(f"[red]Error ({e.kind}):[/red] {e}")
        return 1
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

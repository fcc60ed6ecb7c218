"""
kubemirror CLI - Graph command.

Connect to a running relay, mirror a root object's kind and every kind
related to it, and print its relationship graph after each coalesced burst.
"""

import asyncio
import logging

import typer
from rich.console import Console
from rich.tree import Tree

from kubemirror.core.config import load_config
from kubemirror.core.config.models import KubeMirrorConfig
from kubemirror.core.errors import StreamConnectionError
from kubemirror.core.graph import Graph, GraphNode, build_graph
from kubemirror.core.kinds import KindRegistry
from kubemirror.core.mirror import MirrorStore, MirrorSync, RelayClient

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)


def _label(node: GraphNode) -> str:
    if node.pagination is not None:
        state = node.pagination
        return (
            f"[dim]{state.child_kind} {state.offset + 1}-{state.end} of {state.total_count} "
            f"(page {state.page + 1}/{state.total_pages})[/dim]"
        )
    where = f"{node.namespace}/" if node.namespace else ""
    return f"[cyan]{node.kind}[/cyan] {where}{node.name}"


def render_tree(graph: Graph) -> Tree:
    """Render a graph as a rich Tree, starting from its root node."""
    root = graph.nodes[0]
    tree = Tree(f"[bold]{_label(root)}[/bold]")

    def add_children(branch: Tree, node_id: str, seen: set[str]) -> None:
        for child in graph.children_of(node_id):
            if child.id in seen:
                continue
            add_children(branch.add(_label(child)), child.id, seen | {child.id})

    add_children(tree, root.id, {root.id})
    return tree


def graph_for(
    store: MirrorStore,
    registry: KindRegistry,
    config: KubeMirrorConfig,
    kind: str,
    name: str,
    namespace: str,
    show_hidden: bool = False,
) -> Graph | None:
    """Build the graph for one mirrored root object, or None if it is not mirrored yet."""
    root = store.collection(kind).get(name, namespace)
    if root is None:
        return None
    mirrors = {k: [obj.attributes for obj in store.collection(k).objects()] for k in store.kinds}
    return build_graph(
        root.attributes,
        mirrors,
        registry.predicates,
        root_kind=kind,
        hidden_kinds=() if show_hidden else set(config.graph.hidden_kinds),
        page_size=config.graph.page_size,
    )


async def _run(
    url: str, kind: str, name: str, namespace: str, show_hidden: bool, once: bool
) -> None:
    config = load_config()
    registry = KindRegistry.default()
    sync = MirrorSync(registry=registry, config=config.mirror)
    client = RelayClient(url, sync)

    for watched in [kind, *registry.related_kinds(kind)]:
        sync.watch(watched, namespace or None)

    def on_recompute(store: MirrorStore) -> None:
        graph = graph_for(store, registry, config, kind, name, namespace, show_hidden)
        if graph is None:
            logger.debug("%s %s not mirrored yet", kind, name)
            return
        console.print(render_tree(graph))
        if once:
            client.stop()

    sync.add_listener(on_recompute)
    await client.run()


def graph(
    ctx: typer.Context,
    kind: str = typer.Argument(..., help="Root kind, e.g. apps/Deployment"),
    name: str = typer.Argument(..., help="Root object name"),
    namespace: str = typer.Option("", "--namespace", "-N", help="Root object namespace"),
    relay: str | None = typer.Option(
        None,
        "--relay",
        help="Relay WebSocket URL (default from config)",
    ),
    show_hidden: bool = typer.Option(
        False,
        "--show-hidden",
        help="Render hidden kinds such as ReplicaSets",
    ),
    once: bool = typer.Option(
        False,
        "--once",
        help="Exit after the first graph is printed",
    ),
) -> None:
    """
    Print the live relationship graph of one object.

    Examples:
        kubemirror graph apps/Deployment web -N default
        kubemirror graph keda.sh/ScaledObject api -N prod --once
    """
    debug = ctx.obj.get("debug", False) if ctx.obj else False
    if debug:
        logging.basicConfig(level=logging.DEBUG)

    registry = KindRegistry.default()
    if kind not in registry:
        err_console.print(f"[red]Error:[/red] Unknown kind: {kind}")
        raise typer.Exit(1)

    if relay is None:
        relay_config = load_config().relay
        relay = f"ws://{relay_config.host}:{relay_config.port}/ws"

    try:
        asyncio.run(_run(relay, kind, name, namespace, show_hidden, once))
    except KeyboardInterrupt:
        raise typer.Exit(0)
    except StreamConnectionError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

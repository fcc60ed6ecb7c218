"""
kubemirror CLI - Watch command.

Open one change stream directly against the control plane and print each
change as it arrives.
"""

import asyncio
import logging
from contextlib import aclosing

import typer
from rich.console import Console

from kubemirror.core.config import load_config
from kubemirror.core.errors import StreamError
from kubemirror.core.stream import ChangeStreamClient, EventKind

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)

_KIND_STYLES = {
    EventKind.ADDED: "green",
    EventKind.MODIFIED: "yellow",
    EventKind.DELETED: "red",
    EventKind.ERROR: "bold red",
}


async def _stream(path: str, limit: int | None) -> int:
    config = load_config()
    seen = 0
    async with ChangeStreamClient(config.control_plane) as client:
        async with aclosing(client.open_stream(path)) as events:
            async for event in events:
                style = _KIND_STYLES[event.kind]
                if event.is_error:
                    console.print(f"[{style}]{event.kind.value:<9}[/{style}] {event.error}")
                else:
                    where = f"{event.namespace}/" if event.namespace else ""
                    console.print(
                        f"[{style}]{event.kind.value:<9}[/{style}] {where}{event.name}"
                    )
                seen += 1
                if limit is not None and seen >= limit:
                    break
    return seen


def watch(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Resource path, e.g. /api/v1/namespaces/default/pods"),
    limit: int | None = typer.Option(
        None,
        "--limit",
        "-n",
        min=1,
        help="Stop after this many events",
    ),
) -> None:
    """
    Print change events for a resource path.

    Examples:
        kubemirror watch /api/v1/pods
        kubemirror watch /apis/apps/v1/namespaces/web/deployments --limit 10
    """
    debug = ctx.obj.get("debug", False) if ctx.obj else False
    if debug:
        logging.basicConfig(level=logging.DEBUG)

    try:
        seen = asyncio.run(_stream(path, limit))
    except KeyboardInterrupt:
        raise typer.Exit(0)
    except StreamError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[dim]{seen} events[/dim]")

"""
kubemirror CLI - Serve command.

Run the WebSocket relay in front of the control plane.
"""

import logging

import typer
import uvicorn
from rich.console import Console

from kubemirror.core.config import load_config
from kubemirror.core.relay.app import create_app

app = typer.Typer(
    name="serve",
    help="Run the subscription relay",
    no_args_is_help=False,
)

console = Console()
logger = logging.getLogger(__name__)


@app.callback(invoke_without_command=True)
def serve(
    ctx: typer.Context,
    host: str | None = typer.Option(
        None,
        "--host",
        help="Interface to bind (default from config)",
    ),
    port: int | None = typer.Option(
        None,
        "--port",
        "-p",
        help="Port to run the relay on (default from config)",
    ),
) -> None:
    """
    Run the relay.

    Clients connect to ws://HOST:PORT/ws and subscribe to resource paths;
    the relay streams changes from the configured control plane.
    """
    if ctx.invoked_subcommand is not None:
        return

    debug = ctx.obj.get("debug", False) if ctx.obj else False
    if debug:
        logging.basicConfig(level=logging.DEBUG)
        console.print("[dim]Debug mode enabled[/dim]")

    try:
        config = load_config()
        bind_host = host or config.relay.host
        bind_port = port or config.relay.port

        console.print("\n[bold cyan]Starting relay...[/bold cyan]")
        console.print(f"[dim]Control plane: {config.control_plane.host}[/dim]")
        console.print(f"[dim]WebSocket: ws://{bind_host}:{bind_port}/ws[/dim]")
        console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

        # Run server (this blocks)
        uvicorn.run(
            create_app(config),
            host=bind_host,
            port=bind_port,
            log_level="debug" if debug else "info",
        )

    except KeyboardInterrupt:
        console.print("\n[yellow]Relay stopped[/yellow]")
        raise typer.Exit(0)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        if debug:
            import traceback

            console.print(traceback.format_exc())
        raise typer.Exit(1)

"""
kubemirror CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import typer
from rich.console import Console

from kubemirror import __version__
from kubemirror.cli import graph, kinds, serve, watch
from kubemirror.core.config.env import load_layered_env

# Create the main Typer app
app = typer.Typer(
    name="kubemirror",
    help="Live-state mirror and relationship graph for Kubernetes objects",
    no_args_is_help=True,
    add_completion=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"kubemirror version {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show kubemirror version and exit",
    ),
) -> None:
    """
    kubemirror - stream, relay and mirror Kubernetes change streams.

    Common Workflows:
        kubemirror serve                      # Run the WebSocket relay
        kubemirror watch /api/v1/pods         # Print change events
        kubemirror kinds                      # List known kinds
        kubemirror graph apps/Deployment web  # Live relationship graph
    """
    # Precedence: OS env > project .env > user .env
    load_layered_env()

    # Store debug flag in context for subcommands
    ctx.obj = {"debug": debug}


app.add_typer(serve.app, name="serve")
app.command(name="watch")(watch.watch)
app.command(name="kinds")(kinds.kinds)
app.command(name="graph")(graph.graph)


def cli_main() -> None:
    """Main CLI entry point."""
    app()


__all__ = ["app", "cli_main"]

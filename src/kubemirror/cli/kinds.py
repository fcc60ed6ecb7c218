"""
kubemirror CLI - Kinds command.

List the kinds the registry knows how to watch and relate.
"""

import typer
from rich.console import Console
from rich.table import Table

from kubemirror.core.kinds import KindRegistry

console = Console()


def kinds(
    namespace: str | None = typer.Option(
        None,
        "--namespace",
        help="Show watch paths scoped to this namespace",
    ),
) -> None:
    """Show known kinds, their watch paths and relationships."""
    registry = KindRegistry.default()

    table = Table(title="Known kinds")
    table.add_column("Kind", style="cyan")
    table.add_column("Watch path")
    table.add_column("Children", style="dim")
    table.add_column("Hidden", justify="center")

    for spec in sorted(registry, key=lambda s: s.kind_id):
        children = ", ".join(p.child_kind for p in registry.predicates_for_parent(spec.kind_id))
        table.add_row(
            spec.kind_id,
            registry.watch_path(spec.kind_id, namespace),
            children,
            "yes" if spec.kind_id in registry.hidden_kinds else "",
        )

    console.print(table)

"""logs command: show today's activity log for a queue."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prchorus_cli.runner import activity_log

console = Console()

_LEVEL_STYLE = {"info": "white", "warn": "yellow", "error": "red"}


@click.command("logs")
@click.option("--kind", type=click.Choice(["review", "validation"]), default="review", show_default=True)
@click.option("--limit", default=50, show_default=True, help="Maximum number of entries to show.")
@click.pass_context
def logs_cmd(ctx, kind: str, limit: int):
    """Show today's activity log entries, oldest first."""
    log = activity_log(ctx.obj["config"], kind)
    entries = log.entries(limit=limit)
    if not entries:
        console.print(f"[yellow]No {kind} activity logged today.[/yellow]")
        return

    table = Table(title=f"{kind.capitalize()} activity today", show_header=True, header_style="bold cyan")
    table.add_column("Time", width=8)
    table.add_column("Level", width=5)
    table.add_column("#", justify="right", width=5)
    table.add_column("Message")
    for entry in entries:
        style = _LEVEL_STYLE.get(entry.get("level"), "white")
        table.add_row(
            entry.get("timestamp", "")[11:19],
            f"[{style}]{entry.get('level', '')}[/{style}]",
            str(entry.get("entity_number", "")),
            entry.get("message", ""),
        )
    console.print(table)

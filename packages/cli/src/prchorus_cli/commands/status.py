"""status command: report whether the helper CLIs are installed and logged in."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.table import Table

from prchorus_core.status import StatusCache, probe_claude_cli, probe_gh_cli

console = Console()


async def _collect(caches: list[StatusCache], refresh: bool):
    if refresh:
        for cache in caches:
            cache.clear_cache()
    return await asyncio.gather(*(cache.get_status() for cache in caches))


@click.command("status")
@click.option("--refresh", is_flag=True, help="Ignore cached results and probe again.")
@click.pass_context
def status_cmd(ctx, refresh: bool):
    """Show install and authentication status of the gh and claude CLIs."""
    config = ctx.obj["config"]
    timeout = config.get("probe_timeout", 5)
    ttl = config.get("status_ttl", 60)
    caches = [
        StatusCache(lambda: probe_gh_cli(timeout), ttl=ttl),
        StatusCache(lambda: probe_claude_cli(timeout), ttl=ttl),
    ]

    table = Table(title="CLI status", show_header=True, header_style="bold cyan")
    table.add_column("Tool", style="bold")
    table.add_column("Installed")
    table.add_column("Version")
    table.add_column("Authenticated")
    table.add_column("Notes")

    for status in asyncio.run(_collect(caches, refresh)):
        table.add_row(
            status.name,
            "[green]yes[/green]" if status.installed else "[red]no[/red]",
            status.version or "",
            "[green]yes[/green]" if status.authenticated else "[red]no[/red]",
            status.error or "",
        )
    console.print(table)

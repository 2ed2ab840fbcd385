"""validate command: queue AI validation for issues."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.table import Table

from prchorus_cli.runner import activity_log, attach_printer, build_forge, check_provider, run_jobs
from prchorus_core.events import EventBus, ValidationEvents
from prchorus_core.history import ValidationHistory
from prchorus_core.models import COMPLETED, ValidationResult
from prchorus_core.providers.registry import get_agent
from prchorus_core.validation import ValidationDispatcher

console = Console()

_VERDICT_STYLE = {"confirmed": "green", "likely": "green", "uncertain": "yellow", "unlikely": "red", "invalid": "red"}


def print_validation(entry: ValidationResult) -> None:
    style = _VERDICT_STYLE.get(entry.verdict, "white")
    console.print(
        f"\n[bold]Issue #{entry.issue_number}[/bold] {entry.issue_title}  "
        f"[{style}]{entry.verdict}[/{style}] ({entry.issue_type}, {entry.confidence:g}% confidence)"
    )
    effort = f" · effort: {entry.effort_estimate}" if entry.effort_estimate else ""
    console.print(f"Complexity: {entry.complexity}{effort}")
    if entry.reasoning:
        console.print(entry.reasoning)

    if entry.affected_files:
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("File")
        table.add_column("Reason")
        for f in entry.affected_files:
            table.add_row(f.path, f.reason)
        console.print(table)

    if entry.suggested_approach:
        console.print(f"[bold]Suggested approach:[/bold] {entry.suggested_approach}")


@click.command("validate")
@click.option(
    "--repo-path",
    default=".",
    show_default=True,
    type=click.Path(exists=True, file_okay=False),
    help="Local checkout of the repository.",
)
@click.option("--issue", "issue_numbers", type=int, multiple=True, required=True, help="Issue number (repeatable).")
@click.option(
    "--provider",
    type=click.Choice(["anthropic", "openai", "claude-code"]),
    default=None,
    help="Agent provider. Overrides config file.",
)
@click.pass_context
def validate_cmd(ctx, repo_path: str, issue_numbers: tuple[int, ...], provider: str | None):
    """Check whether issues are real and how hard they are to address."""
    config = dict(ctx.obj["config"])
    if provider is not None:
        config["provider"] = provider
    check_provider(config)

    forge = build_forge(config)
    history = ValidationHistory(ctx.obj["store"], max_entries=config.get("history_limit", 500))

    bus = EventBus()
    attach_printer(bus, ValidationEvents, "issue_number", "Issue #")
    dispatcher = ValidationDispatcher(
        forge,
        history,
        bus,
        lambda: get_agent(config),
        config=config,
        activity_log=activity_log(config, "validation"),
    )

    submissions = [(number, {}) for number in dict.fromkeys(issue_numbers)]
    items = asyncio.run(run_jobs(dispatcher, submissions, repo_path))

    for item in items:
        if item.status == COMPLETED:
            print_validation(item.result)

    if any(item.status != COMPLETED for item in items):
        ctx.exit(1)

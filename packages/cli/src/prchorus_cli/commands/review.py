"""review command: queue AI reviews for pull requests."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.table import Table

from prchorus_cli.runner import activity_log, attach_printer, build_forge, check_provider, run_jobs
from prchorus_core.config import load_guidelines
from prchorus_core.events import EventBus, ReviewEvents
from prchorus_core.gh.forge import detect_repo_slug
from prchorus_core.history import ReviewHistory
from prchorus_core.models import COMPLETED, ReviewResult
from prchorus_core.providers.registry import get_agent
from prchorus_core.publish import publish_review
from prchorus_core.reviewer import ReviewDispatcher

console = Console()

_SEVERITY_STYLE = {"critical": "red", "major": "yellow", "minor": "blue", "nit": "dim"}


def print_review(entry: ReviewResult) -> None:
    score = f"{entry.quality_score:g}/10"
    if entry.previous_score is not None:
        score += f" (was {entry.previous_score:g})"
    console.print(f"\n[bold]PR #{entry.pr_number}[/bold] {entry.pr_title}  [cyan]{score}[/cyan]  id={entry.id}")
    console.print(f"> {entry.verdict}")

    if not entry.findings:
        console.print("[green]No findings.[/green]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Severity", width=9)
    table.add_column("Category", width=13)
    table.add_column("Location", max_width=40)
    table.add_column("Finding")
    for f in sorted(entry.findings, key=lambda f: ("critical", "major", "minor", "nit").index(f.severity)):
        style = _SEVERITY_STYLE.get(f.severity, "white")
        table.add_row(f"[{style}]{f.severity}[/{style}]", f.category, f"{f.file}:{f.line}", f.title or f.explanation)
    console.print(table)


@click.command("review")
@click.option(
    "--repo-path",
    default=".",
    show_default=True,
    type=click.Path(exists=True, file_okay=False),
    help="Local checkout of the repository under review.",
)
@click.option("--pr", "pr_numbers", type=int, multiple=True, required=True, help="Pull request number (repeatable).")
@click.option("--multi-agent", is_flag=True, help="Review with specialised sub-agents.")
@click.option("--follow-up", is_flag=True, help="Re-review against the latest stored review of each PR.")
@click.option("--previous-review", "previous_review_id", default=None, help="History id to re-review against.")
@click.option(
    "--provider",
    type=click.Choice(["anthropic", "openai", "claude-code"]),
    default=None,
    help="Agent provider. Overrides config file.",
)
@click.option("--model", default=None, help="Provider model. Overrides config file.")
@click.option("--publish", "publish_after", is_flag=True, help="Post each completed review to GitHub.")
@click.pass_context
def review_cmd(
    ctx,
    repo_path: str,
    pr_numbers: tuple[int, ...],
    multi_agent: bool,
    follow_up: bool,
    previous_review_id: str | None,
    provider: str | None,
    model: str | None,
    publish_after: bool,
):
    """Review pull requests one at a time with an AI agent.

    Jobs run in the order given; Ctrl-C cancels the running review and
    drops the rest of the queue. Results are saved to the configured store.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
      ANTHROPIC_API_KEY    Required for --provider anthropic
      OPENAI_API_KEY       Required for --provider openai
    """
    config = dict(ctx.obj["config"])
    for key, value in (("provider", provider), ("model", model)):
        if value is not None:
            config[key] = value
    check_provider(config)

    if follow_up and previous_review_id:
        raise click.UsageError("--follow-up and --previous-review are mutually exclusive.")
    if previous_review_id and len(pr_numbers) > 1:
        raise click.UsageError("--previous-review applies to a single --pr.")

    try:
        guidelines = load_guidelines(config)
    except FileNotFoundError as e:
        raise click.UsageError(str(e))

    forge = build_forge(config)
    history = ReviewHistory(ctx.obj["store"], max_entries=config.get("history_limit", 500))

    submissions = []
    slug = detect_repo_slug(repo_path) if follow_up else None
    for number in dict.fromkeys(pr_numbers):
        previous_id = previous_review_id
        if follow_up:
            latest = history.get_latest(slug, number) if slug else None
            if latest is None:
                console.print(f"[yellow]No stored review for PR #{number}; running an initial review.[/yellow]")
            else:
                previous_id = latest.id
        submissions.append((number, {"previous_review_id": previous_id, "multi_agent": True if multi_agent else None}))

    bus = EventBus()
    attach_printer(bus, ReviewEvents, "pr_number", "PR #")
    dispatcher = ReviewDispatcher(
        forge,
        history,
        bus,
        lambda: get_agent(config),
        guidelines=guidelines,
        config=config,
        activity_log=activity_log(config, "review"),
    )

    items = asyncio.run(run_jobs(dispatcher, submissions, repo_path))

    for item in items:
        if item.status != COMPLETED:
            continue
        print_review(item.result)
        if publish_after:
            outcome = asyncio.run(publish_review(forge, repo_path, item.result, config.get("snap_window", 3)))
            console.print(
                f"[green]Published as {outcome.event}[/green]: "
                f"{len(outcome.posted)} inline, {len(outcome.skipped)} in the review body."
            )

    if any(item.status != COMPLETED for item in items):
        ctx.exit(1)

"""history commands: inspect and manage stored review records."""

from __future__ import annotations

import asyncio

import click
from click.core import ParameterSource
from rich.console import Console
from rich.table import Table

from prchorus_core.errors import StoreError
from prchorus_core.history import ReviewHistory

console = Console()


def _history(ctx) -> ReviewHistory:
    config = ctx.obj["config"]
    return ReviewHistory(ctx.obj["store"], max_entries=config.get("history_limit", 500))


def _score_style(score: float) -> str:
    if score >= 8:
        return "green"
    if score >= 5:
        return "yellow"
    return "red"


@click.group("history", invoke_without_command=True)
@click.option("--repo", default=None, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, default=None, help="Filter by PR number.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.option("--chain", is_flag=True, help="Show the re-review chain for --repo/--pr, oldest first.")
@click.pass_context
def history_cmd(ctx, repo: str | None, pr_number: int | None, limit: int, chain: bool):
    """Show past AI review records, most recent first."""
    if ctx.invoked_subcommand is not None:
        return

    history = _history(ctx)
    if chain:
        if not repo or pr_number is None:
            raise click.UsageError("--chain requires --repo and --pr.")
        if ctx.get_parameter_source("limit") is not ParameterSource.COMMANDLINE:
            limit = ctx.obj["config"].get("chain_limit", limit)
        records = history.get_chain(repo, pr_number, limit=limit)
    else:
        records = history.list(repo, pr_number, limit=limit)

    if not records:
        console.print("[yellow]No review records found.[/yellow]")
        return

    title = f"Review chain: {repo} #{pr_number}" if chain else f"Review History: {repo or 'all repositories'}"
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", no_wrap=True)
    table.add_column("PR", style="bold", width=6)
    table.add_column("Title", max_width=40)
    table.add_column("Seq", justify="right", width=4)
    table.add_column("Score", justify="right", width=8)
    table.add_column("Findings", justify="right", width=9)
    table.add_column("SHA", width=8)
    table.add_column("Reviewed At", width=20)

    for r in records:
        style = _score_style(r.quality_score)
        score = f"[{style}]{r.quality_score:g}[/{style}]"
        if r.is_imported:
            score += "*"
        table.add_row(
            r.id or "",
            f"#{r.pr_number}",
            r.pr_title[:40] if r.pr_title else "",
            str(r.review_sequence or ""),
            score,
            str(len(r.findings)),
            (r.head_commit_sha or "")[:7],
            r.reviewed_at[:19].replace("T", " "),
        )

    console.print(table)
    if any(r.is_imported for r in records):
        console.print("[dim]* imported from a published GitHub review[/dim]")


@history_cmd.command("delete")
@click.argument("entry_id")
@click.pass_context
def delete_cmd(ctx, entry_id: str):
    """Delete one review record by id."""
    try:
        deleted = _history(ctx).delete(entry_id)
    except StoreError as e:
        raise click.ClickException(str(e)) from e
    if not deleted:
        raise click.UsageError(f"No review record with id {entry_id!r}.")
    console.print(f"Deleted {entry_id}.")


@history_cmd.command("clear")
@click.option("--repo", default=None, help="Only clear records for this repository.")
@click.confirmation_option(prompt="Delete stored review records?")
@click.pass_context
def clear_cmd(ctx, repo: str | None):
    """Delete all review records, or all records of one repository."""
    try:
        _history(ctx).clear(repo)
    except StoreError as e:
        raise click.ClickException(str(e)) from e
    console.print(f"Cleared review history for {repo or 'all repositories'}.")


@history_cmd.command("import")
@click.option(
    "--repo-path",
    default=".",
    show_default=True,
    type=click.Path(exists=True, file_okay=False),
    help="Local checkout of the repository.",
)
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.pass_context
def import_cmd(ctx, repo_path: str, pr_number: int):
    """Record reviews prchorus already published on a PR, so re-reviews can chain from them."""
    from prchorus_cli.runner import build_forge
    from prchorus_core.publish import import_published_reviews

    forge = build_forge(ctx.obj["config"])
    try:
        entries = asyncio.run(import_published_reviews(forge, _history(ctx), repo_path, pr_number))
    except StoreError as e:
        raise click.ClickException(str(e)) from e
    if not entries:
        console.print(f"[yellow]No published prchorus reviews found on PR #{pr_number}.[/yellow]")
        return
    for entry in entries:
        console.print(f"  {entry.id}  score {entry.quality_score:g}  {entry.reviewed_at[:19].replace('T', ' ')}")

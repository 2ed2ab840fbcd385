"""publish command: post a stored review to GitHub."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console

from prchorus_cli.runner import build_forge
from prchorus_core.history import ReviewHistory
from prchorus_core.publish import publish_review

console = Console()


@click.command("publish")
@click.option(
    "--repo-path",
    default=".",
    show_default=True,
    type=click.Path(exists=True, file_okay=False),
    help="Local checkout of the repository.",
)
@click.option("--review-id", required=True, help="History id of the review to post.")
@click.pass_context
def publish_cmd(ctx, repo_path: str, review_id: str):
    """Post a stored review as a GitHub PR review with inline comments.

    Comments whose lines are not part of the PR diff are snapped to a nearby
    diff line, or listed in the review body when none is close enough.
    """
    config = ctx.obj["config"]
    entry = ReviewHistory(ctx.obj["store"], max_entries=config.get("history_limit", 500)).get_by_id(review_id)
    if entry is None:
        raise click.UsageError(f"No review record with id {review_id!r}.")

    forge = build_forge(config)
    outcome = asyncio.run(publish_review(forge, repo_path, entry, config.get("snap_window", 3)))

    console.print(f"\n[green]Review posted to PR #{entry.pr_number}: {outcome.event}[/green]")
    console.print(f"  {len(outcome.posted)} inline comment(s), {len(outcome.skipped)} listed in the review body.")
    for skipped in outcome.skipped:
        console.print(f"  [dim]{skipped.path}:{skipped.line}: {skipped.reason}[/dim]")

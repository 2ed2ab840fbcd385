"""stats command: aggregate patterns across review history."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from prchorus_core.history import ReviewHistory
from prchorus_core.models import SEVERITY_LEVELS

console = Console()


@click.command("stats")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--top", default=10, show_default=True, help="Number of top entries to show per category.")
@click.pass_context
def stats_cmd(ctx, repo: str, top: int):
    """Show aggregated review statistics for a repository.

    Reports the average quality score, severity and category distribution,
    and the most frequently flagged files, which helps to spot systemic
    issues and prioritise guideline improvements.
    """
    config = ctx.obj["config"]
    records = ReviewHistory(ctx.obj["store"], max_entries=config.get("history_limit", 500)).list(repo)
    if not records:
        console.print("[yellow]No review records found for this repository.[/yellow]")
        return

    total_reviews = len(records)
    total_findings = sum(len(r.findings) for r in records)
    severity_counter: Counter[str] = Counter()
    category_counter: Counter[str] = Counter()
    file_counter: Counter[str] = Counter()

    for record in records:
        for finding in record.findings:
            severity_counter[finding.severity] += 1
            category_counter[finding.category] += 1
            file_counter[finding.file] += 1

    # --- Summary ---
    console.print(f"\n[bold]Review stats for [cyan]{repo}[/cyan][/bold]")
    console.print(f"  Total reviews:   {total_reviews} ({sum(r.is_re_review for r in records)} re-reviews)")
    console.print(f"  Total findings:  {total_findings}")
    console.print(f"  Avg per review:  {total_findings / total_reviews:.1f}")
    console.print(f"  Avg score:       {sum(r.quality_score for r in records) / total_reviews:.1f}/10")
    console.print(f"  Total cost:      ${sum(r.cost_usd for r in records):.2f}")
    deltas = [r.quality_score - r.previous_score for r in records if r.is_re_review and r.previous_score is not None]
    if deltas:
        console.print(f"  Re-review delta: {sum(deltas) / len(deltas):+.1f} avg score change")

    # --- Severity breakdown ---
    if severity_counter:
        sev_table = Table(title="Severity Breakdown", show_header=True)
        sev_table.add_column("Severity", style="bold")
        sev_table.add_column("Count", justify="right")
        sev_table.add_column("% of total", justify="right")
        _sev_style = {"critical": "red", "major": "yellow", "minor": "blue", "nit": "dim"}
        for sev in reversed(SEVERITY_LEVELS):
            count = severity_counter.get(sev, 0)
            pct = f"{count / total_findings * 100:.1f}%"
            style = _sev_style.get(sev, "white")
            sev_table.add_row(f"[{style}]{sev}[/{style}]", str(count), pct)
        console.print(sev_table)

        cat_table = Table(title="Categories", show_header=True)
        cat_table.add_column("Category", style="bold")
        cat_table.add_column("Count", justify="right")
        for category, count in category_counter.most_common():
            cat_table.add_row(category, str(count))
        console.print(cat_table)

    # --- Most flagged files ---
    if file_counter:
        file_table = Table(title=f"Top {top} Most Flagged Files", show_header=True)
        file_table.add_column("File")
        file_table.add_column("Findings", justify="right")
        for file_path, count in file_counter.most_common(top):
            file_table.add_row(file_path, str(count))
        console.print(file_table)

"""Post a stored review to GitHub, and read published ones back."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from prchorus_core.diff_lines import (
    DEFAULT_SNAP_WINDOW,
    InlineComment,
    SkippedComment,
    parse_valid_lines,
    validate_comments,
)
from prchorus_core.history import ReviewHistory
from prchorus_core.models import SEVERITY_LEVELS, Finding, ReviewResult

logger = logging.getLogger(__name__)

_MARKER_RE = re.compile(r"<!-- prchorus-review: score=(\d+(?:\.\d+)?) sha=(\S*) -->")
_TABLE_SEVERITIES = tuple(reversed(SEVERITY_LEVELS))  # critical first


@dataclass
class PublishOutcome:
    event: str
    posted: list[InlineComment] = field(default_factory=list)
    skipped: list[SkippedComment] = field(default_factory=list)


def determine_event(findings: list[Finding]) -> str:
    """Choose the GitHub review event based on the highest severity present."""
    if not findings:
        return "APPROVE"
    severities = {f.severity for f in findings}
    if severities & {"critical", "major"}:
        return "REQUEST_CHANGES"
    return "COMMENT"


def review_marker(entry: ReviewResult) -> str:
    return f"<!-- prchorus-review: score={entry.quality_score:g} sha={entry.head_commit_sha or ''} -->"


def parse_review_marker(body: str) -> tuple[float, str | None] | None:
    """Return (score, head sha) from a published review body, or None."""
    match = _MARKER_RE.search(body or "")
    if not match:
        return None
    return float(match.group(1)), match.group(2) or None


def format_comment(finding: Finding) -> str:
    title = finding.title or finding.category
    body = f"**[{finding.severity.upper()}] {title}**\n\n{finding.explanation}"
    if finding.suggested_fix:
        body += f"\n\n**Suggested fix:**\n```\n{finding.suggested_fix}\n```"
    return body


def build_review_body(entry: ReviewResult, skipped: list[SkippedComment] | None = None) -> str:
    """Build the top-level review body posted as the GitHub review description."""
    lines = ["## prchorus review\n", f"> {entry.verdict or 'No verdict provided'}\n"]

    score_line = f"**Quality score:** {entry.quality_score:g}/10"
    if entry.previous_score is not None:
        delta = entry.quality_score - entry.previous_score
        score_line += f" ({delta:+g} since the previous review)"
    if entry.review_sequence and entry.review_sequence > 1:
        score_line += f" · review #{entry.review_sequence}"
    lines.append(score_line + "\n")

    # Per-file severity counts.
    file_counts: dict[str, dict[str, int]] = {}
    for f in entry.findings:
        counts = file_counts.setdefault(f.file, {s: 0 for s in _TABLE_SEVERITIES})
        counts[f.severity] += 1

    if file_counts:
        lines.append(f"**{len(entry.findings)}** finding(s) in **{len(file_counts)}** file(s)\n")
        lines.append("| File | Critical | Major | Minor | Nit | Total |")
        lines.append("|------|:--------:|:-----:|:-----:|:---:|:-----:|")
        for path in sorted(file_counts, key=lambda p: sum(file_counts[p].values()), reverse=True):
            fc = file_counts[path]
            cells = " | ".join(str(fc[s] or "-") for s in _TABLE_SEVERITIES)
            lines.append(f"| `{path}` | {cells} | {sum(fc.values())} |")
    else:
        lines.append("No issues found. The changes look good.")

    if skipped:
        lines.append("\n### Comments Not Placed Inline\n")
        for s in skipped:
            lines.append(f"- `{s.path}:{s.line}` ({s.reason})")
            lines.append("")
            lines.extend(f"  {body_line}" if body_line else "" for body_line in s.body.splitlines())
            lines.append("")

    lines.append(review_marker(entry))
    return "\n".join(lines)


async def publish_review(forge, repo_path: str, entry: ReviewResult, snap_window: int = DEFAULT_SNAP_WINDOW):
    """Post entry as a GitHub review with one inline comment per finding.

    Comments are checked against the PR diff first; any that cannot be
    placed are listed in the review body instead. When the diff cannot be
    fetched every comment is posted as-is.
    """
    comments = [InlineComment(path=f.file, line=f.line, body=format_comment(f)) for f in entry.findings]

    try:
        diff = await forge.get_diff(repo_path, entry.pr_number)
    except Exception as e:
        logger.warning("Could not fetch diff for PR #%d, posting comments unvalidated: %s", entry.pr_number, e)
        diff = None

    if diff:
        valid, skipped = validate_comments(comments, parse_valid_lines(diff), snap_window)
    else:
        valid, skipped = comments, []

    for s in skipped:
        logger.info("Not placing comment inline: %s", s.reason)

    event = determine_event(entry.findings)
    await forge.create_review(repo_path, entry.pr_number, build_review_body(entry, skipped), event, valid)
    logger.info(
        "Published review for PR #%d as %s (%d inline, %d in body)", entry.pr_number, event, len(valid), len(skipped)
    )
    return PublishOutcome(event=event, posted=valid, skipped=skipped)


async def import_published_reviews(forge, history: ReviewHistory, repo_path: str, pr_number: int) -> list[ReviewResult]:
    """Record every marked review on the PR in history. Already-known ones are returned unchanged."""
    pr = await forge.get_pull_request(repo_path, pr_number)
    if pr is None:
        return []
    info = await forge.get_repo_info(repo_path)
    repo_name = info.full_name if info else "unknown/unknown"

    imported = []
    for review in await forge.list_reviews(repo_path, pr_number):
        parsed = parse_review_marker(review["body"])
        if parsed is None:
            continue
        score, sha = parsed
        verdict = _quoted_verdict(review["body"])
        imported.append(
            history.import_from_github(
                pr_number,
                pr.title,
                repo_name,
                score,
                verdict,
                review["submitted_at"],
                head_commit_sha=sha or review.get("commit_id"),
            )
        )
    return imported


def _quoted_verdict(body: str) -> str:
    for line in body.splitlines():
        if line.startswith("> "):
            return line[2:].strip()
    return ""

"""Unified-diff line validity for inline review comments.

GitHub rejects a review (HTTP 422) when any inline comment targets a line
that is not part of the diff. Agents cite lines from the full file, so every
comment is checked against the new-file lines present in the diff before it
is posted.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)

DEFAULT_SNAP_WINDOW = 3

_HUNK_RE = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,\d+)? @@")
_NEW_FILE_RE = re.compile(r"^\+\+\+ b/(.+)")


@dataclass(frozen=True)
class InlineComment:
    path: str
    line: int
    body: str
    side: str = "RIGHT"


@dataclass(frozen=True)
class SkippedComment:
    path: str
    line: int
    body: str
    reason: str


def parse_valid_lines(diff: str) -> dict[str, set[int]]:
    """Map each file in a unified diff to the new-file line numbers it shows.

    Context and added lines are valid and advance the new-file counter.
    Removed lines do neither. Header lines reset hunk state and add nothing.
    """
    valid_lines: dict[str, set[int]] = {}
    current_file: str | None = None
    new_line = 0
    in_hunk = False

    for line in diff.splitlines():
        file_match = _NEW_FILE_RE.match(line)
        if file_match:
            current_file = file_match.group(1)
            in_hunk = False
            valid_lines.setdefault(current_file, set())
            continue

        if line.startswith("--- ") or line == "+++ /dev/null":
            in_hunk = False
            continue

        hunk_match = _HUNK_RE.match(line)
        if hunk_match:
            new_line = int(hunk_match.group(1))
            in_hunk = True
            continue

        if line.startswith("diff "):
            current_file = None
            in_hunk = False
            continue

        if current_file is None or not in_hunk:
            continue

        if line.startswith("-"):
            continue  # removed line, left side only
        if line.startswith("\\"):
            continue  # "\ No newline at end of file"

        valid_lines[current_file].add(new_line)
        new_line += 1

    return valid_lines


def normalize_path(path: str) -> str:
    normalized = path.replace("\\", "/")
    if normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


def validate_comments(
    comments: list[InlineComment],
    valid_lines: dict[str, set[int]],
    snap_window: int = DEFAULT_SNAP_WINDOW,
) -> tuple[list[InlineComment], list[SkippedComment]]:
    """Split comments into postable and skipped.

    A comment whose line is within snap_window of a valid line is moved to
    the closest one (ties go to the lower line). The input list is never
    mutated; accepted comments are new records.
    """
    valid: list[InlineComment] = []
    skipped: list[SkippedComment] = []

    for comment in comments:
        path = normalize_path(comment.path)
        file_lines = valid_lines.get(path)

        if file_lines is None:
            skipped.append(SkippedComment(path, comment.line, comment.body, f'File "{path}" not found in diff'))
            continue

        if comment.line in file_lines:
            valid.append(replace(comment, path=path))
            continue

        snapped = _closest_line(comment.line, file_lines, snap_window)
        if snapped is not None:
            logger.debug("Snapped comment line %d -> %d for %s", comment.line, snapped, path)
            valid.append(replace(comment, path=path, line=snapped))
            continue

        skipped.append(
            SkippedComment(path, comment.line, comment.body, f'Line {comment.line} not in diff for "{path}"')
        )

    return valid, skipped


def _closest_line(line: int, file_lines: set[int], window: int) -> int | None:
    candidates = [n for n in file_lines if abs(n - line) <= window]
    if not candidates:
        return None
    return min(candidates, key=lambda n: (abs(n - line), n))

"""Which changed files belong in the diff an agent reviews."""

from __future__ import annotations

import fnmatch
import posixpath
from dataclasses import dataclass, field

# Assets, archives and lockfiles: nothing an agent can usefully comment on.
# fmt: off
SKIPPED_SUFFIXES = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".webp", ".bmp", ".pdf",
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
    ".mp4", ".mp3", ".wav", ".ogg",
    ".zip", ".tar", ".gz", ".rar", ".7z",
    ".lock",
})
# fmt: on


def is_code_file(path: str) -> bool:
    return posixpath.splitext(path.lower())[1] not in SKIPPED_SUFFIXES


def matches_pattern(path: str, pattern: str) -> bool:
    """A pattern matches by full-path glob, basename glob, or as a directory anywhere in the path."""
    if fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(posixpath.basename(path), pattern):
        return True
    directory = pattern.rstrip("/")
    return f"/{directory}/" in f"/{path}"


def is_excluded(path: str, patterns: list[str]) -> bool:
    return any(matches_pattern(path, p) for p in patterns)


@dataclass
class DiffFileFilter:
    """User exclude patterns plus the built-in non-code skip list."""

    exclude: list[str] = field(default_factory=list)

    def accepts(self, path: str) -> bool:
        return is_code_file(path) and not is_excluded(path, self.exclude)

"""GitHub forge collaborator over PyGithub.

The repository is resolved from the checkout's ``origin`` remote, so every
call takes the local repository path. PyGithub is blocking; each call runs
in a worker thread under an explicit timeout so one slow request cannot
stall a dispatcher queue.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
from typing import Any, Callable

from github import Github, GithubException

from prchorus_core.diff_lines import InlineComment
from prchorus_core.errors import ForgeError
from prchorus_core.models import Issue, PullRequest, RepoInfo
from prchorus_core.utils.files import DiffFileFilter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


def detect_repo_slug(repo_path: str = ".") -> str | None:
    """Try to detect the GitHub repo slug from the git remote URL."""
    try:
        result = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            cwd=repo_path,
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode != 0:
            return None
        url = result.stdout.strip()
        # https://github.com/owner/repo.git -> owner/repo
        # git@github.com:owner/repo.git     -> owner/repo
        if "github.com" not in url:
            return None
        slug = url.split("github.com")[-1].lstrip("/:").removesuffix(".git")
        return slug if "/" in slug else None
    except (FileNotFoundError, NotADirectoryError, subprocess.TimeoutExpired):
        return None


def format_file_diff(filename: str, patch: str, status: str = "modified", previous_filename: str | None = None) -> str:
    """Wrap a GitHub file patch (hunks only) in unified-diff headers."""
    old_name = previous_filename or filename
    old_path = "/dev/null" if status == "added" else f"a/{old_name}"
    new_path = "/dev/null" if status == "removed" else f"b/{filename}"
    hunks = patch.rstrip("\n")
    return f"diff --git a/{old_name} b/{filename}\n--- {old_path}\n+++ {new_path}\n{hunks}\n"


class GithubForge:
    def __init__(self, token: str, timeout: float = DEFAULT_TIMEOUT, exclude: list[str] | None = None):
        self._gh = Github(token)
        self.timeout = timeout
        self.file_filter = DiffFileFilter(list(exclude or []))
        self._slugs: dict[str, str] = {}
        self._repos: dict[str, Any] = {}

    async def _call(self, fn: Callable, *args, **kwargs):
        return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), self.timeout)

    def _repo_sync(self, repo_path: str):
        slug = self._slugs.get(repo_path)
        if slug is None:
            slug = detect_repo_slug(repo_path)
            if slug is None:
                raise ForgeError(f"Could not determine the GitHub repository for {repo_path} from its origin remote")
            self._slugs[repo_path] = slug
        if slug not in self._repos:
            self._repos[slug] = self._gh.get_repo(slug)
        return self._repos[slug]

    async def get_repo_info(self, repo_path: str) -> RepoInfo | None:
        try:
            repo = await self._call(self._repo_sync, repo_path)
        except (ForgeError, GithubException) as e:
            logger.warning("Could not resolve repository for %s: %s", repo_path, e)
            return None
        return RepoInfo(full_name=repo.full_name, default_branch=repo.default_branch or "main", url=repo.html_url or "")

    async def get_pull_request(self, repo_path: str, number: int) -> PullRequest | None:
        def fetch():
            pr = self._repo_sync(repo_path).get_pull(number)
            return PullRequest(
                number=pr.number,
                title=pr.title or "",
                body=pr.body or "",
                head_ref=pr.head.ref,
                base_ref=pr.base.ref,
                head_sha=pr.head.sha,
                draft=bool(pr.draft),
            )

        try:
            return await self._call(fetch)
        except GithubException as e:
            logger.warning("Could not fetch PR #%d: %s", number, e)
            return None

    async def get_issue(self, repo_path: str, number: int) -> Issue | None:
        def fetch():
            issue = self._repo_sync(repo_path).get_issue(number)
            return Issue(
                number=issue.number,
                title=issue.title or "",
                body=issue.body or "",
                labels=[label.name for label in issue.labels],
            )

        try:
            return await self._call(fetch)
        except GithubException as e:
            logger.warning("Could not fetch issue #%d: %s", number, e)
            return None

    async def get_diff(self, repo_path: str, number: int) -> str:
        """The PR's unified diff, minus excluded and non-code files."""

        def fetch():
            files = self._repo_sync(repo_path).get_pull(number).get_files()
            return self._assemble(sorted(files, key=lambda f: f.filename))

        return await self._call(fetch)

    async def get_head_sha(self, repo_path: str, number: int) -> str:
        return await self._call(lambda: self._repo_sync(repo_path).get_pull(number).head.sha)

    async def get_commit_diff(self, repo_path: str, from_sha: str, to_sha: str) -> str:
        """Diff between two commits using GitHub's compare API."""

        def fetch():
            comparison = self._repo_sync(repo_path).compare(from_sha, to_sha)
            return self._assemble(sorted(comparison.files, key=lambda f: f.filename))

        return await self._call(fetch)

    async def create_review(
        self,
        repo_path: str,
        number: int,
        body: str,
        event: str,
        comments: list[InlineComment] | None = None,
    ) -> None:
        def post():
            pr = self._repo_sync(repo_path).get_pull(number)
            payload = [{"path": c.path, "line": c.line, "side": c.side, "body": c.body} for c in comments or []]
            if payload:
                pr.create_review(body=body, event=event, comments=payload)
            else:
                pr.create_review(body=body, event=event)

        await self._call(post)

    async def list_reviews(self, repo_path: str, number: int) -> list[dict]:
        """Published reviews as {body, submitted_at, commit_id} dicts, oldest first."""

        def fetch():
            return [
                {
                    "body": review.body or "",
                    "submitted_at": review.submitted_at.isoformat() if review.submitted_at else "",
                    "commit_id": review.commit_id,
                }
                for review in self._repo_sync(repo_path).get_pull(number).get_reviews()
            ]

        return await self._call(fetch)

    def _assemble(self, files) -> str:
        parts = []
        for f in files:
            if not self.file_filter.accepts(f.filename):
                logger.debug("Skipping %s", f.filename)
                continue
            if not f.patch:
                continue  # binary or too large for GitHub to render
            parts.append(format_file_diff(f.filename, f.patch, f.status, getattr(f, "previous_filename", None)))
        return "".join(parts)

"""Where the GitHub token comes from.

Environment variables win (GITHUB_TOKEN, then GH_TOKEN, which gh itself
honours); otherwise the token of an existing ``gh auth login`` session is
reused.
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


def gh_cli_token(timeout: float = 5) -> str | None:
    """The token stored by the gh CLI, or None when gh is missing, logged out or slow."""
    try:
        result = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, timeout=timeout)
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug("gh auth token unavailable: %s", e)
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def resolve_github_token(timeout: float = 5) -> str | None:
    """Never raises; callers check for None and emit a UsageError."""
    for name in TOKEN_ENV_VARS:
        token = os.environ.get(name)
        if token:
            logger.debug("Using GitHub token from %s", name)
            return token

    token = gh_cli_token(timeout)
    if token:
        logger.debug("Using GitHub token from the gh CLI session")
    return token

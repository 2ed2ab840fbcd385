"""Single-flight, time-boxed cache for CLI tool install/auth status.

Probing a CLI means spawning processes, so concurrent callers share one
in-flight probe and its result is reused until the TTL expires.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_TTL = 60
DEFAULT_PROBE_TIMEOUT = 5


@dataclass
class CliStatus:
    name: str
    installed: bool = False
    version: str | None = None
    authenticated: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "installed": self.installed,
            "version": self.version,
            "authenticated": self.authenticated,
            "error": self.error,
        }


class StatusCache:
    def __init__(
        self,
        probe: Callable[[], Awaitable[CliStatus]],
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._probe = probe
        self._ttl = ttl
        self._clock = clock
        self._cached: CliStatus | None = None
        self._cached_at = 0.0
        self._pending: asyncio.Future | None = None

    async def get_status(self) -> CliStatus:
        if self._cached is not None and self._clock() - self._cached_at < self._ttl:
            return self._cached

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._refresh())
        # shield: one caller being cancelled must not cancel the probe the
        # others are waiting on.
        return await asyncio.shield(self._pending)

    def clear_cache(self) -> None:
        self._cached = None
        self._cached_at = 0.0

    async def _refresh(self) -> CliStatus:
        try:
            status = await self._probe()
            self._cached = status
            self._cached_at = self._clock()
            return status
        finally:
            self._pending = None


def _run(args: list[str], timeout: float) -> subprocess.CompletedProcess:
    return subprocess.run(args, capture_output=True, text=True, timeout=timeout)


async def probe_cli(
    name: str,
    version_args: list[str],
    auth_args: list[str] | None = None,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
    auth_check: Callable[[], bool] | None = None,
) -> CliStatus:
    """Report whether a CLI is installed and logged in.

    Each subprocess carries its own timeout; a missing binary or a timeout
    is reported in the status, never raised.
    """
    status = CliStatus(name=name)
    try:
        result = await asyncio.to_thread(_run, version_args, timeout)
    except FileNotFoundError:
        status.error = f"{name} is not installed"
        return status
    except subprocess.TimeoutExpired:
        status.error = f"{name} --version timed out after {timeout}s"
        return status

    if result.returncode != 0:
        status.error = (result.stderr or result.stdout).strip() or f"{name} exited with {result.returncode}"
        return status
    status.installed = True
    status.version = result.stdout.strip().splitlines()[0] if result.stdout.strip() else None

    if auth_check is not None:
        status.authenticated = await asyncio.to_thread(auth_check)
        if not status.authenticated:
            status.error = "not authenticated"
    elif auth_args:
        try:
            auth = await asyncio.to_thread(_run, auth_args, timeout)
        except subprocess.TimeoutExpired:
            status.error = f"{name} auth check timed out after {timeout}s"
            return status
        status.authenticated = auth.returncode == 0
        if not status.authenticated:
            status.error = (auth.stderr or auth.stdout).strip() or "not authenticated"
    logger.debug("Probed %s: %s", name, status)
    return status


async def probe_gh_cli(timeout: float = DEFAULT_PROBE_TIMEOUT) -> CliStatus:
    return await probe_cli("gh", ["gh", "--version"], ["gh", "auth", "status"], timeout)


async def probe_claude_cli(timeout: float = DEFAULT_PROBE_TIMEOUT) -> CliStatus:
    return await probe_cli("claude", ["claude", "--version"], timeout=timeout, auth_check=_claude_credentials_present)


def _claude_credentials_present() -> bool:
    """An API key in the environment or an OAuth account in ~/.claude.json."""
    if os.environ.get("ANTHROPIC_API_KEY"):
        return True
    try:
        cfg = json.loads((Path.home() / ".claude.json").read_text())
    except (OSError, json.JSONDecodeError):
        return False
    account = cfg.get("oauthAccount") if isinstance(cfg, dict) else None
    return isinstance(account, dict) and bool(account.get("accountUuid"))

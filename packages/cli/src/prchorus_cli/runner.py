"""Wiring shared by the commands that run queued jobs."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

import click
from rich.console import Console

from prchorus_core.activity_log import ActivityLog
from prchorus_core.events import Event, EventBus
from prchorus_core.gh.forge import GithubForge
from prchorus_core.models import QueueItem
from prchorus_core.providers.registry import PROVIDERS

logger = logging.getLogger(__name__)

console = Console()

_STEP_STYLE = {
    "init": "dim",
    "analyzing": "cyan",
    "reading": "blue",
    "searching": "magenta",
    "tool-use": "yellow",
    "processing": "green",
}


def build_forge(config: dict) -> GithubForge:
    token = config.get("github_token")
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    return GithubForge(token, timeout=config.get("forge_timeout", 30), exclude=config.get("exclude") or [])


def check_provider(config: dict) -> None:
    if config.get("provider") not in PROVIDERS:
        raise click.UsageError(f"Unknown provider {config.get('provider')!r}. Choose one of: {', '.join(PROVIDERS)}.")


def activity_log(config: dict, prefix: str) -> ActivityLog:
    return ActivityLog(Path(config.get("log_dir", ".prchorus/logs")), prefix)


def attach_printer(bus: EventBus, events, entity_key: str, label: str) -> None:
    """Print progress steps and outcomes as the dispatcher publishes them."""

    def on_progress(event: Event) -> None:
        step = event.data["step"]
        style = _STEP_STYLE.get(step["step_type"], "white")
        console.print(f"  [bold]{label}{event.data[entity_key]}[/bold] [{style}]{step['message']}[/{style}]")

    def on_complete(event: Event) -> None:
        console.print(f"[green]{label}{event.data[entity_key]} done.[/green]")

    def on_error(event: Event) -> None:
        console.print(f"[red]{label}{event.data[entity_key]}: {event.data['error']}[/red]")

    bus.subscribe(events.PROGRESS, on_progress)
    bus.subscribe(events.COMPLETE, on_complete)
    bus.subscribe(events.ERROR, on_error)


async def run_jobs(dispatcher, submissions: list[tuple[int, dict]], project_path: str) -> list[QueueItem]:
    """Enqueue every submission and wait for the queue to drain.

    Ctrl-C cancels the running job and everything still queued.
    """
    loop = asyncio.get_running_loop()
    numbers = [number for number, _ in submissions]

    async def cancel_all() -> None:
        for number in numbers:
            await dispatcher.cancel(number)

    def on_interrupt() -> None:
        console.print("[yellow]Interrupted, cancelling...[/yellow]")
        asyncio.ensure_future(cancel_all())

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
        handler_installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        handler_installed = False

    try:
        for number, options in submissions:
            await dispatcher.enqueue(number, project_path, **options)
        await dispatcher.wait_idle()
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)

    return [dispatcher.get(number) for number in numbers]

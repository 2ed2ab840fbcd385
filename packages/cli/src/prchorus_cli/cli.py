"""CLI entry point for prchorus.

Commands:
  review     queue AI reviews for one or more pull requests
  validate   queue AI validation for one or more issues
  publish    post a stored review to GitHub
  history    list, chain, delete, clear or import stored reviews
  stats      aggregate scores and findings across review history
  status     install/auth status of the gh and claude CLIs
  logs       today's activity log for a queue
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prchorus_cli.commands.history import history_cmd
from prchorus_cli.commands.logs import logs_cmd
from prchorus_cli.commands.publish import publish_cmd
from prchorus_cli.commands.review import review_cmd
from prchorus_cli.commands.stats import stats_cmd
from prchorus_cli.commands.status import status_cmd
from prchorus_cli.commands.validate import validate_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured key-value store from .prchorus.yml settings.

    Store selection:
      store: gist   -> GistStore   (requires gist_id and a GitHub token)
      store: sqlite -> SQLiteStore (store_path, default .prchorus.db)
      store: memory -> MemoryStore (nothing survives the process)

    This factory lives in cli.py so prchorus_core never knows which backend
    it is writing to.
    """
    from prchorus_store.memory import MemoryStore

    store_type = config.get("store", "sqlite")

    if store_type == "gist":
        from prchorus_store.gist import GistStore

        gist_id = config.get("gist_id")
        token = config.get("github_token")
        if not gist_id or not token:
            console.print("[yellow]GistStore requires gist_id and a GitHub token. Falling back to memory.[/yellow]")
            return MemoryStore()
        return GistStore(gist_id=gist_id, token=token)

    if store_type == "sqlite":
        from prchorus_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path", ".prchorus.db"))

    if store_type != "memory":
        raise click.UsageError(f"Unknown store {store_type!r}. Choose one of: memory, sqlite, gist.")
    return MemoryStore()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("prchorus"),
    prog_name="prchorus",
)
@click.option(
    "--config",
    "config_path",
    default=".prchorus.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRCHORUS_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Queue AI reviews of GitHub pull requests and issues against a local checkout."""
    from prchorus_core.config import load_config
    from prchorus_core.errors import ConfigError
    from prchorus_core.gh.auth import resolve_github_token

    _setup_logging(verbose)
    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.UsageError(str(e))

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(validate_cmd)
main.add_command(publish_cmd)
main.add_command(history_cmd)
main.add_command(stats_cmd)
main.add_command(status_cmd)
main.add_command(logs_cmd)

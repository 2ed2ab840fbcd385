"""Settings from .prchorus.yml layered over built-in defaults."""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from prchorus_core.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict = {
    "provider": "anthropic",  # anthropic | openai | claude-code
    "model": None,  # None = provider default
    "review_mode": "single",  # single | multi-agent
    "guidelines": None,  # None = use built-in default; set to a path string to override
    "exclude": [],  # fnmatch patterns or directory names to drop from the diff (e.g. "migrations/", "*.min.js")
    "max_diff_chars": 100000,
    "store": "sqlite",  # memory | sqlite | gist
    "store_path": ".prchorus.db",
    "gist_id": None,
    "log_dir": ".prchorus/logs",
    "history_limit": 500,
    "chain_limit": 10,
    # The three below are heuristics; tune per repository.
    "snap_window": 3,
    "line_group_size": 5,
    "score_divergence_threshold": 2.0,
    "forge_timeout": 30,
    "probe_timeout": 5,
    "status_ttl": 60,
}

_CHOICES = {
    "provider": ("anthropic", "openai", "claude-code"),
    "review_mode": ("single", "multi-agent"),
    "store": ("memory", "sqlite", "gist"),
}
_POSITIVE_INTS = ("history_limit", "chain_limit", "line_group_size")
_NON_NEGATIVE_NUMBERS = (
    "max_diff_chars",
    "snap_window",
    "score_divergence_threshold",
    "forge_timeout",
    "probe_timeout",
    "status_ttl",
)
_CREDENTIAL_ENV = {
    "github_token": "GITHUB_TOKEN",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
    "openai_api_key": "OPENAI_API_KEY",
}

BUILTIN_GUIDELINES_DIR = Path(__file__).parent / "guidelines"
_BUILTIN_DEFAULT = BUILTIN_GUIDELINES_DIR / "review.md"


def load_config(config_path: str = ".prchorus.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prchorus.yml in the current directory
      3. CLI argument overrides

    Credentials always come from the environment, never from the file.
    Raises ConfigError for a malformed file or an out-of-range value.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    config.update(_read_file(Path(config_path)))
    config.update({k: v for k, v in (cli_overrides or {}).items() if v is not None})
    _validate(config)

    for key, env_var in _CREDENTIAL_ENV.items():
        config[key] = os.environ.get(env_var)
    return config


def _read_file(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping of settings")

    for key in sorted(set(data) - set(DEFAULT_CONFIG)):
        logger.warning("Ignoring unknown setting %r in %s", key, path)
    return {k: v for k, v in data.items() if k in DEFAULT_CONFIG}


def _validate(config: dict) -> None:
    for key, choices in _CHOICES.items():
        if config[key] not in choices:
            raise ConfigError(f"{key} must be one of {', '.join(choices)} (got {config[key]!r})")
    for key in _POSITIVE_INTS:
        value = config[key]
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ConfigError(f"{key} must be a positive integer (got {value!r})")
    for key in _NON_NEGATIVE_NUMBERS:
        value = config[key]
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
            raise ConfigError(f"{key} must be a non-negative number (got {value!r})")
    if not isinstance(config["exclude"], list):
        raise ConfigError("exclude must be a list of patterns")


def load_guidelines(config: dict) -> str:
    """
    Load review guidelines.

    If ``guidelines`` is set in config, loads from that path (relative to cwd).
    Otherwise falls back to the built-in default.
    """
    custom_path = config.get("guidelines")
    if custom_path:
        p = Path(custom_path)
        if not p.exists():
            raise FileNotFoundError(f"Guidelines file not found: {custom_path}")
        return p.read_text()

    if _BUILTIN_DEFAULT.exists():
        return _BUILTIN_DEFAULT.read_text()

    raise FileNotFoundError("No guidelines configured and built-in default is missing.")

"""Exception hierarchy.

Job outcomes are classified by error text, not type (see Dispatcher), so
every message raised here is written to be shown to a user as-is.
"""

from __future__ import annotations


class PrChorusError(Exception):
    """Base class for all prchorus errors."""


class JobError(PrChorusError):
    """An input or lookup failure that ends a job before the agent runs."""


class ForgeError(PrChorusError):
    """The forge could not resolve a repository or complete a request."""


class AgentError(PrChorusError):
    """The agent capability failed or produced unusable output."""


class AgentCancelledError(AgentError):
    """The agent call was stopped by its cancel signal."""

    def __init__(self, label: str = "Agent run"):
        super().__init__(f"{label} cancelled by user")


class ConfigError(PrChorusError):
    """A settings file or value that cannot be used."""


class StoreError(PrChorusError):
    """The history store could not be read, so it must not be written."""


def is_cancellation(message: str) -> bool:
    text = message.lower()
    return "cancelled" in text or "aborted" in text
